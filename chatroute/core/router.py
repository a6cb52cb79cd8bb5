"""Event routing from transport callbacks to registered handlers.

The router holds the compiled descriptors per category, matches each incoming
event against them and invokes every match with its own InvocationContext.
Errors in individual handlers are isolated and reported to the channel.
"""
import inspect
import logging
import threading
import time
from collections import OrderedDict
from typing import Callable, Dict, List, Optional, Tuple

from chatroute.core.binding import InvocationContext, build_arguments
from chatroute.core.descriptors import Category, HandlerDescriptor
from chatroute.core.errors import MalformedEventError
from chatroute.core.models import (
    Action,
    Event,
    Reaction,
    ReactionKind,
    TextMessage,
    ThreadMessage,
    acting_user,
    check_event,
    event_content,
    event_thread,
)
from chatroute.core.reporting import ErrorReporter
from chatroute.core.responder import ResponseDispatcher
from chatroute.transport.base import TransportAdapter

logger = logging.getLogger(__name__)

DEFAULT_DEDUP_WINDOW_SECONDS = 15 * 60


class RecentMessages:
    """Sliding-window set of recently delivered messages.

    Entries older than the window are evicted on every insert. Safe to use
    from several trio tasks and OS threads at once.

    Attributes:
        window: Window length in seconds
    """

    def __init__(
        self,
        window: float = DEFAULT_DEDUP_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.window = window
        self._clock = clock
        # key: (channel_id, timestamp), value: time first seen
        self._seen: "OrderedDict[Tuple[str, str], float]" = OrderedDict()
        self._lock = threading.Lock()

    def add(self, key: Tuple[str, str]) -> bool:
        """Record ``key``; return False if it was already seen in the window."""
        with self._lock:
            now = self._clock()
            self._evict(now)
            if key in self._seen:
                return False
            self._seen[key] = now
            return True

    def _evict(self, now: float) -> None:
        cutoff = now - self.window
        while self._seen:
            key, seen_at = next(iter(self._seen.items()))
            if seen_at >= cutoff:
                break
            del self._seen[key]

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._seen

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)


class EventRouter:
    """Routes chat events to registered handler descriptors.

    One instance serves all categories. Descriptors are appended during
    startup and only read afterwards.
    """

    def __init__(
        self,
        transport: TransportAdapter,
        reporter: Optional[ErrorReporter] = None,
        recent: Optional[RecentMessages] = None,
    ) -> None:
        self.transport = transport
        self.responder = ResponseDispatcher(transport)
        self.reporter = reporter if reporter is not None else ErrorReporter(transport)
        self.recent = recent if recent is not None else RecentMessages()
        self._handlers: Dict[Category, List[HandlerDescriptor]] = {c: [] for c in Category}

    def add(self, descriptor: HandlerDescriptor) -> None:
        """Append a descriptor to its category, keeping registration order."""
        self._handlers[descriptor.category].append(descriptor)

    def handlers(self, category: Category) -> Tuple[HandlerDescriptor, ...]:
        return tuple(self._handlers[category])

    async def dispatch(self, event: Event) -> None:
        """Route any event to the entry point for its type."""
        if isinstance(event, TextMessage):
            await self.handle_message(event)
        elif isinstance(event, ThreadMessage):
            await self.handle_thread_message(event)
        elif isinstance(event, Reaction):
            await self._handle_reaction(event, event.kind)
        elif isinstance(event, Action):
            await self.handle_action(event)
        else:
            logger.debug("Ignoring unsupported event %r", event)

    async def handle_message(self, event: TextMessage) -> None:
        if not self._well_formed(event):
            return
        if not self.recent.add((event.channel_id, event.timestamp)):
            logger.debug(
                "Skipping duplicate message %s in channel %s", event.timestamp, event.channel_id
            )
            return
        await self._handle_text(Category.MESSAGE, event)

    async def handle_thread_message(self, event: ThreadMessage) -> None:
        if not self._well_formed(event):
            return
        await self._handle_text(Category.THREAD_MESSAGE, event)

    async def handle_reaction_added(self, event: Reaction) -> None:
        await self._handle_reaction(event, ReactionKind.ADDED)

    async def handle_reaction_removed(self, event: Reaction) -> None:
        await self._handle_reaction(event, ReactionKind.REMOVED)

    async def handle_action(self, event: Action) -> None:
        if not self._well_formed(event):
            return
        for descriptor in self.handlers(Category.ACTION):
            if not descriptor.rule.matches(event.action_name, event.action_value):
                continue
            logger.debug(
                "Handling action %s.%s for %s",
                event.action_name, event.action_value, descriptor.name,
            )
            await self._invoke(descriptor, InvocationContext(event=event, user_id=event.user_id))

    async def _handle_text(self, category: Category, event: Event) -> None:
        content = event_content(event)
        for descriptor in self.handlers(category):
            match = descriptor.rule.match(content)
            if match is None:
                continue
            logger.debug(
                "Handling message for pattern %s in channel %s", descriptor.rule, event.channel_id
            )
            ctx = InvocationContext(
                event=event,
                user_id=acting_user(event),
                content=content,
                match=match,
                thread_id=event_thread(event),
            )
            await self._invoke(descriptor, ctx)

    async def _handle_reaction(self, event: Reaction, kind: ReactionKind) -> None:
        if not self._well_formed(event):
            return
        for descriptor in self.handlers(Category.REACTION):
            if descriptor.rule.kind is not kind or not descriptor.rule.matches(event.emoji_code):
                continue
            logger.debug(
                "Handling reaction %s in channel %s", descriptor.rule, event.channel_id
            )
            await self._invoke(descriptor, InvocationContext(event=event, user_id=event.user_id))

    async def _invoke(self, descriptor: HandlerDescriptor, ctx: InvocationContext) -> None:
        try:
            if descriptor.send_typing:
                await self.transport.send_typing(ctx.event.channel_id)
            args = build_arguments(descriptor.plan, ctx)
            result = descriptor.target(*args)
            if inspect.isawaitable(result):
                result = await result
            await self.responder.dispatch(result, ctx)
        except Exception as e:  # pylint: disable=broad-exception-caught
            # One failing handler must not stop the others matching this event
            logger.exception("Error in handler %s", descriptor.name)
            await self.reporter.report(ctx.event.channel_id, e)

    @staticmethod
    def _well_formed(event: Event) -> bool:
        try:
            check_event(event)
        except MalformedEventError as e:
            logger.debug("Dropping malformed event: %s", e)
            return False
        return True
