"""Transport adapter interface consumed by the routing core.

A transport owns the connection to the chat service. It delivers fully formed
events to subscribed listeners and performs outbound actions. Own messages
must be filtered out by the transport before listeners run. Outbound failures
raise TransportError.

Interactive actions arrive out of band (an HTTP callback rather than the
event stream); whatever receives them hands the raw payload to
``receive_action``.
"""
import logging
from typing import Any, Awaitable, Callable, List, Mapping, Sequence, Union

from chatroute.core.models import Action, MessageRef, Reaction, TextMessage, ThreadMessage
from chatroute.transport.actions import decode_action_payload

logger = logging.getLogger(__name__)

MessageListener = Callable[[TextMessage], Awaitable[None]]
ThreadMessageListener = Callable[[ThreadMessage], Awaitable[None]]
ReactionListener = Callable[[Reaction], Awaitable[None]]
ActionListener = Callable[[Action], Awaitable[None]]


class TransportAdapter:
    """
    Interface for chat transports.
    """

    def __init__(self) -> None:
        self._message_listeners: List[MessageListener] = []
        self._thread_listeners: List[ThreadMessageListener] = []
        self._reaction_added_listeners: List[ReactionListener] = []
        self._reaction_removed_listeners: List[ReactionListener] = []
        self._action_listeners: List[ActionListener] = []

    def on_message(self, listener: MessageListener) -> None:
        self._message_listeners.append(listener)

    def on_thread_message(self, listener: ThreadMessageListener) -> None:
        self._thread_listeners.append(listener)

    def on_reaction_added(self, listener: ReactionListener) -> None:
        self._reaction_added_listeners.append(listener)

    def on_reaction_removed(self, listener: ReactionListener) -> None:
        self._reaction_removed_listeners.append(listener)

    def on_action(self, listener: ActionListener) -> None:
        self._action_listeners.append(listener)

    async def receive_action(self, data: Union[str, Mapping[str, Any]]) -> Action:
        """Decode an interactive-action payload and hand it to action listeners.

        Raises:
            ActionDecodeError: If the payload lacks a required field. No
                listener runs in that case.
        """
        action = decode_action_payload(data)
        logger.debug(
            "Received action %s.%s from %s", action.action_name, action.action_value, action.user_id
        )
        await self._fire(self._action_listeners, action)
        return action

    async def _fire(
        self, listeners: Sequence[Callable[[Any], Awaitable[None]]], event: Any
    ) -> None:
        for listener in listeners:
            try:
                await listener(event)
            except Exception:  # pylint: disable=broad-exception-caught
                # A listener failure must not stop the others
                logger.exception("Error in listener %r", listener)

    async def send_channel_message(self, channel_id: str, text: str) -> MessageRef:
        """Post a message to a channel.

        Args:
            channel_id: Target channel
            text: Message text

        Returns:
            Reference to the posted message
        """
        raise NotImplementedError

    async def send_thread_message(
        self, channel_id: str, thread_id: str, text: str
    ) -> MessageRef:
        """Post a reply in a thread.

        Args:
            channel_id: Channel holding the thread
            thread_id: Thread to reply in
            text: Message text

        Returns:
            Reference to the posted reply
        """
        raise NotImplementedError

    async def send_typing(self, channel_id: str) -> None:
        raise NotImplementedError

    async def add_reactions(self, message_ref: MessageRef, *codes: str) -> None:
        raise NotImplementedError
