"""Reports handler failures back to the originating channel."""
import logging
from typing import Iterator, Optional, Set

from chatroute.core.errors import user_facing_reason
from chatroute.transport.base import TransportAdapter

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_MESSAGE = "Failed to handle message. Contact bot author(s)."


def iter_causes(exc: BaseException) -> Iterator[BaseException]:
    """Yield ``exc`` and its causes, outermost first, stopping on cycles."""
    seen: Set[int] = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        if current.__cause__ is not None:
            current = current.__cause__
        elif not current.__suppress_context__:
            current = current.__context__
        else:
            current = None


def nested_message(fallback: str, exc: BaseException) -> str:
    """Render ``fallback`` with the innermost cause of ``exc`` appended."""
    *_, root = iter_causes(exc)
    detail = str(root)
    rendered = f"{type(root).__name__}: {detail}" if detail else type(root).__name__
    return f"{fallback}; nested exception is {rendered}"


def error_message(exc: BaseException, fallback: str = DEFAULT_FALLBACK_MESSAGE) -> str:
    """Pick the chat text describing ``exc``.

    The first user-facing exception in the chain, walking from the outermost,
    supplies the text. Without one, the fallback is used.
    """
    for cause in iter_causes(exc):
        reason = user_facing_reason(cause)
        if reason is not None:
            return reason
    return nested_message(fallback, exc)


class ErrorReporter:
    """Sends a user-facing message for a failed handler invocation.

    Attributes:
        transport: Transport used to notify the channel
        fallback_message: Text used when no exception carries a reason
    """

    def __init__(
        self,
        transport: TransportAdapter,
        fallback_message: str = DEFAULT_FALLBACK_MESSAGE,
    ) -> None:
        self.transport = transport
        self.fallback_message = fallback_message

    async def report(self, channel_id: str, exc: BaseException) -> None:
        """Notify ``channel_id`` about ``exc``. Never raises."""
        try:
            message = error_message(exc, self.fallback_message)
            await self.transport.send_channel_message(channel_id, message)
        except Exception:  # pylint: disable=broad-exception-caught
            # Reporting must not take down the dispatch of other handlers
            logger.exception("Failed to report handler error to channel %s", channel_id)
