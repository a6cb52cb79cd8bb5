"""Responses a handler may return.

A handler returns either None or one Response built with the helpers below.
The response dispatcher switches on ``Response.kind``.
"""
import enum
from dataclasses import dataclass, field
from typing import Optional, Tuple


class ResponseKind(enum.Enum):
    PLAIN_TEXT = "plain_text"
    REACTIONS = "reactions"
    CHANNEL_MESSAGE = "channel_message"
    THREAD_MESSAGE = "thread_message"


@dataclass(frozen=True)
class Response:
    """Tagged handler outcome.

    Attributes:
        kind: Which outbound action to perform
        text: Message text for text-bearing kinds
        codes: Emoji codes for REACTIONS
    """
    kind: ResponseKind
    text: Optional[str] = None
    codes: Tuple[str, ...] = field(default_factory=tuple)


def _text_response(kind: ResponseKind, text: str) -> Response:
    if not text:
        raise ValueError("Message can't be empty")
    return Response(kind=kind, text=text)


def plain_text(message: str) -> Response:
    """Reply where the triggering message was posted (channel or thread)."""
    return _text_response(ResponseKind.PLAIN_TEXT, message)


def channel_message(text: str) -> Response:
    """Post to the originating channel, even when triggered from a thread."""
    return _text_response(ResponseKind.CHANNEL_MESSAGE, text)


def thread_message(text: str) -> Response:
    """Reply in the event's thread, or start one on the triggering message."""
    return _text_response(ResponseKind.THREAD_MESSAGE, text)


def reactions(*codes: str) -> Response:
    """React to the triggering message with each of ``codes``."""
    return Response(kind=ResponseKind.REACTIONS, codes=tuple(codes))
