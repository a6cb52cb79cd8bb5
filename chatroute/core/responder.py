"""Turns handler responses into outbound transport actions."""
import logging
from typing import Any, Optional

from chatroute.core.binding import InvocationContext
from chatroute.core.responses import Response, ResponseKind
from chatroute.transport.base import TransportAdapter

logger = logging.getLogger(__name__)


class ResponseDispatcher:
    """Performs at most one outbound action per handler response.

    Transport errors are not caught here; they propagate to the router which
    treats them like any other handler failure.
    """

    def __init__(self, transport: TransportAdapter) -> None:
        self.transport = transport

    async def dispatch(self, response: Optional[Any], ctx: InvocationContext) -> None:
        """Perform the action requested by ``response``.

        Args:
            response: Value returned by the handler
            ctx: Context of the invocation that produced it

        Raises:
            TypeError: If the handler returned something other than a Response
        """
        if response is None:
            return
        if not isinstance(response, Response):
            raise TypeError(
                f"Handler returned {type(response).__name__}, expected Response or None"
            )

        event = ctx.event
        channel_id = event.channel_id

        if response.kind is ResponseKind.PLAIN_TEXT:
            if ctx.thread_id is None:
                await self.transport.send_channel_message(channel_id, response.text)
            else:
                await self.transport.send_thread_message(
                    channel_id, ctx.thread_id, response.text
                )
        elif response.kind is ResponseKind.REACTIONS:
            await self.transport.add_reactions(event.message_ref, *response.codes)
        elif response.kind is ResponseKind.CHANNEL_MESSAGE:
            await self.transport.send_channel_message(channel_id, response.text)
        elif response.kind is ResponseKind.THREAD_MESSAGE:
            thread_id = ctx.thread_id if ctx.thread_id is not None else event.timestamp
            await self.transport.send_thread_message(channel_id, thread_id, response.text)
        else:
            raise TypeError(f"Unknown response kind {response.kind!r}")

        logger.debug("Dispatched %s response to channel %s", response.kind.value, channel_id)
