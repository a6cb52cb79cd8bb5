"""Data models for chat events delivered to the router.

Events are immutable once built by a transport. Each one knows the message it
concerns (``message_ref``), which is where reactions are added and threads are
rooted.
"""
import enum
from dataclasses import dataclass
from typing import Optional, Union

from chatroute.core.errors import MalformedEventError


@dataclass(frozen=True)
class MessageRef:
    """Identifies a single message.

    Attributes:
        channel_id: Channel the message lives in
        timestamp: Transport-specific message identifier
    """
    channel_id: str
    timestamp: str


class ReactionKind(enum.Enum):
    ADDED = "added"
    REMOVED = "removed"


@dataclass(frozen=True)
class TextMessage:
    """A plain (non-thread) channel message.

    Attributes:
        timestamp: Message identifier
        channel_id: Channel the message was posted in
        sender_id: ID of the user who sent the message
        content: Message text
    """
    timestamp: str
    channel_id: str
    sender_id: str
    content: str

    @property
    def message_ref(self) -> MessageRef:
        return MessageRef(self.channel_id, self.timestamp)


@dataclass(frozen=True)
class ThreadMessage:
    """A reply posted in a thread.

    Attributes:
        timestamp: Message identifier
        channel_id: Channel the thread lives in
        sender_id: ID of the user who sent the reply
        thread_id: Identifier of the thread
        content: Message text
    """
    timestamp: str
    channel_id: str
    sender_id: str
    thread_id: str
    content: str

    @property
    def message_ref(self) -> MessageRef:
        return MessageRef(self.channel_id, self.timestamp)


@dataclass(frozen=True)
class Reaction:
    """An emoji reaction added to or removed from a message.

    Attributes:
        timestamp: Identifier of the message reacted to
        channel_id: Channel of that message
        user_id: ID of the reacting user
        emoji_code: Emoji name, without colons
        kind: Whether the reaction was added or removed
    """
    timestamp: str
    channel_id: str
    user_id: str
    emoji_code: str
    kind: ReactionKind = ReactionKind.ADDED

    @property
    def message_ref(self) -> MessageRef:
        return MessageRef(self.channel_id, self.timestamp)


@dataclass(frozen=True)
class Action:
    """An interactive-button click.

    Attributes:
        user_id: ID of the user who clicked
        channel_id: Channel of the message carrying the button
        message_timestamp: Identifier of that message
        action_name: Name of the clicked action
        action_value: Value of the clicked action
        callback_id: Callback id of the attachment the action belongs to
    """
    user_id: str
    channel_id: str
    message_timestamp: str
    action_name: str
    action_value: str
    callback_id: str

    @property
    def timestamp(self) -> str:
        return self.message_timestamp

    @property
    def message_ref(self) -> MessageRef:
        return MessageRef(self.channel_id, self.message_timestamp)


Event = Union[TextMessage, ThreadMessage, Reaction, Action]

EVENT_TYPES = (TextMessage, ThreadMessage, Reaction, Action)


def acting_user(event: Event) -> str:
    """Return the ID of the user who caused the event."""
    if isinstance(event, (TextMessage, ThreadMessage)):
        return event.sender_id
    return event.user_id


def event_content(event: Event) -> Optional[str]:
    """Return the message text, or None for reactions and actions."""
    if isinstance(event, (TextMessage, ThreadMessage)):
        return event.content
    return None


def event_thread(event: Event) -> Optional[str]:
    """Return the thread id if the event is a thread reply."""
    if isinstance(event, ThreadMessage):
        return event.thread_id
    return None


def check_event(event: Event) -> None:
    """Validate the identifying fields of an event.

    Raises:
        MalformedEventError: If the message id or channel is missing
    """
    if not event.timestamp:
        raise MalformedEventError(f"{type(event).__name__} without message id")
    if not event.channel_id:
        raise MalformedEventError(f"{type(event).__name__} without channel")
