"""Shared fixtures: a recording transport and a router built on it."""
from typing import List, Tuple

import pytest

from chatroute.core.errors import TransportError
from chatroute.core.models import MessageRef
from chatroute.core.registry import HandlerRegistry
from chatroute.core.router import EventRouter, RecentMessages
from chatroute.transport.base import TransportAdapter


class FakeTransport(TransportAdapter):
    """Records every outbound call instead of talking to a chat service."""

    def __init__(self) -> None:
        super().__init__()
        self.calls: List[Tuple] = []
        self.fail_sends = False
        self._next_id = 1000

    def _ref(self, channel_id: str) -> MessageRef:
        self._next_id += 1
        return MessageRef(channel_id, str(self._next_id))

    @property
    def channel_messages(self) -> List[Tuple[str, str]]:
        return [c[1:] for c in self.calls if c[0] == "channel"]

    @property
    def thread_messages(self) -> List[Tuple[str, str, str]]:
        return [c[1:] for c in self.calls if c[0] == "thread"]

    @property
    def reactions(self) -> List[Tuple]:
        return [c[1:] for c in self.calls if c[0] == "reactions"]

    async def send_channel_message(self, channel_id: str, text: str) -> MessageRef:
        if self.fail_sends:
            raise TransportError("transport down")
        self.calls.append(("channel", channel_id, text))
        return self._ref(channel_id)

    async def send_thread_message(self, channel_id: str, thread_id: str, text: str) -> MessageRef:
        if self.fail_sends:
            raise TransportError("transport down")
        self.calls.append(("thread", channel_id, thread_id, text))
        return self._ref(channel_id)

    async def send_typing(self, channel_id: str) -> None:
        self.calls.append(("typing", channel_id))

    async def add_reactions(self, message_ref: MessageRef, *codes: str) -> None:
        self.calls.append(("reactions", message_ref, codes))


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def router(transport: FakeTransport, clock: FakeClock) -> EventRouter:
    return EventRouter(transport, recent=RecentMessages(window=15 * 60, clock=clock))


@pytest.fixture
def registry(router: EventRouter) -> HandlerRegistry:
    return HandlerRegistry(router)
