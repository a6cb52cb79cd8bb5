"""Zulip transport for the routing core.

Wraps the blocking ``zulip.Client`` with ``trio.to_thread.run_sync`` and maps
Zulip concepts onto chat events:

- channel id: stream name
- message timestamp: Zulip message id, as a string
- thread: a topic. Messages in the configured channel topic are plain
  channel messages; messages in any other topic are thread replies whose
  thread id is the topic name.

Rate Limiting Strategy:
----------------------
Requests answered with RATE_LIMIT_HIT are retried after the server-provided
delay. Sends give up after MAX_SEND_ATTEMPTS and raise TransportError, as
they do for any other failed result; the routing core does not retry on top
of that. Event polling retries until cancelled.
"""
import functools
import logging
import os
import time
from typing import Any, AsyncIterator, Callable, Dict, Iterable, Optional

import trio
import zulip

from chatroute.core.errors import TransportError
from chatroute.core.models import (
    Event,
    MessageRef,
    Reaction,
    ReactionKind,
    TextMessage,
    ThreadMessage,
)
from chatroute.transport.base import TransportAdapter

logger = logging.getLogger(__name__)

MAX_SEND_ATTEMPTS = 3
DEFAULT_RETRY_DELAY = 60.0
RATE_LIMIT_WARN_FRACTION = 0.2
POLL_TIMEOUT = 90
POLL_ERROR_DELAY = 5
DEFAULT_CHANNEL_TOPIC = "general"


def _rate_limit_headers(res: Dict[str, Any]) -> Dict[str, Any]:
    # zulip passes response headers through in varying case
    return {
        k.lower(): v for k, v in res.items()
        if k.lower() == "retry-after" or k.lower().startswith("x-ratelimit-")
    }


def retry_delay(res: Dict[str, Any]) -> Optional[float]:
    """Seconds to wait before retrying ``res``, or None if it was not rate limited.

    Also warns once fewer than RATE_LIMIT_WARN_FRACTION of the requests in
    the current window remain.
    """
    headers = _rate_limit_headers(res)
    try:
        remaining = int(headers["x-ratelimit-remaining"])
        limit = int(headers["x-ratelimit-limit"])
    except (KeyError, ValueError, TypeError):
        pass
    else:
        if remaining < limit * RATE_LIMIT_WARN_FRACTION:
            logger.warning("Approaching rate limit: %s/%s requests remaining", remaining, limit)

    if res.get("code") != "RATE_LIMIT_HIT":
        return None
    try:
        return float(headers["retry-after"])
    except (KeyError, ValueError, TypeError):
        pass
    try:
        return max(0.0, float(headers["x-ratelimit-reset"]) - time.time())
    except (KeyError, ValueError, TypeError):
        logger.warning("Rate limited without a reset time, waiting %ss", DEFAULT_RETRY_DELAY)
        return DEFAULT_RETRY_DELAY


class ZulipTransport(TransportAdapter):
    """
    Trio-friendly TransportAdapter over zulip.Client.
    """

    def __init__(
        self, client: zulip.Client, channel_topic: str = DEFAULT_CHANNEL_TOPIC
    ) -> None:
        super().__init__()
        self._client = client
        self.channel_topic = channel_topic
        self.own_user_id: Optional[int] = None

    @classmethod
    def from_env_or_rc(cls, channel_topic: str = DEFAULT_CHANNEL_TOPIC) -> "ZulipTransport":
        """Create a ZulipTransport from environment variables or ~/.zuliprc."""
        config_file = os.environ.get("ZULIP_CONFIG_FILE")  # optional override
        if config_file:
            client = zulip.Client(config_file=config_file)
        else:
            client = zulip.Client()
        return cls(client, channel_topic=channel_topic)

    async def _call(
        self, fn: Callable[..., Dict[str, Any]], *args: Any, **kwargs: Any
    ) -> Dict[str, Any]:
        return await trio.to_thread.run_sync(functools.partial(fn, *args, **kwargs))

    async def _request(
        self,
        fn: Callable[..., Dict[str, Any]],
        *args: Any,
        attempts: Optional[int] = None,
        **kwargs: Any,
    ) -> Dict[str, Any]:
        """Like ``_call``, but sleeps out rate limits and tries again.

        Gives up after ``attempts`` calls and returns the last response;
        ``None`` keeps trying.
        """
        attempt = 0
        while True:
            attempt += 1
            res = await self._call(fn, *args, **kwargs)
            delay = retry_delay(res)
            if delay is None or (attempts is not None and attempt >= attempts):
                return res
            logger.warning(
                "Rate limited on %s, retrying in %.1fs (attempt %s)",
                getattr(fn, "__name__", fn), delay, attempt,
            )
            await trio.sleep(delay)

    # Outbound -------------------------------------------------------------

    async def _send(self, request: Dict[str, Any]) -> Dict[str, Any]:
        res = await self._request(self._client.send_message, request, attempts=MAX_SEND_ATTEMPTS)
        if res.get("result") == "success":
            return res
        if res.get("code") == "RATE_LIMIT_HIT":
            raise TransportError(f"Rate limit exceeded after {MAX_SEND_ATTEMPTS} attempts")
        raise TransportError(f"Failed to send message: {res.get('msg', res)}")

    async def send_channel_message(self, channel_id: str, text: str) -> MessageRef:
        return await self.send_thread_message(channel_id, self.channel_topic, text)

    async def send_thread_message(
        self, channel_id: str, thread_id: str, text: str
    ) -> MessageRef:
        logger.debug("Sending message to: %s > %s", channel_id, thread_id)
        res = await self._send(
            {"type": "stream", "to": channel_id, "topic": thread_id, "content": text}
        )
        return MessageRef(channel_id, str(res.get("id")))

    async def send_typing(self, channel_id: str) -> None:
        res = await self._call(self._client.get_stream_id, channel_id)
        if res.get("result") != "success":
            raise TransportError(f"Unknown stream {channel_id}: {res.get('msg', res)}")
        res = await self._call(
            self._client.set_typing_status,
            {
                "op": "start",
                "type": "stream",
                "stream_id": res["stream_id"],
                "topic": self.channel_topic,
            },
        )
        if res.get("result") != "success":
            raise TransportError(f"Failed to send typing status: {res.get('msg', res)}")

    async def add_reactions(self, message_ref: MessageRef, *codes: str) -> None:
        for code in codes:
            res = await self._call(
                self._client.add_reaction,
                {"message_id": int(message_ref.timestamp), "emoji_name": code},
            )
            if res.get("result") != "success":
                raise TransportError(f"Failed to add reaction {code}: {res.get('msg', res)}")

    async def add_user_subscriptions(self, user_id: str, streams: Iterable[str]) -> None:
        """Subscribe a user to one or more streams.

        Args:
            user_id: ID of the user to subscribe
            streams: Stream names to subscribe to
        """
        stream_names = list(streams)
        if not stream_names:
            return
        res = await self._call(
            self._client.add_subscriptions,
            streams=[{"name": s} for s in stream_names],
            principals=[int(user_id)],
        )
        if res.get("result") != "success":
            raise TransportError(
                f"Failed to subscribe user {user_id} to {stream_names}: {res.get('msg', res)}"
            )

    async def get_user_by_id(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Get user information by user ID."""
        res = await self._call(self._client.get_user_by_id, int(user_id))
        if res.get("result") != "success":
            logger.warning("Failed to get user by id %s: %s", user_id, res)
            return None
        return res.get("user")

    async def get_own_user(self) -> Optional[Dict[str, Any]]:
        """Get the bot's own user profile."""
        res = await self._call(self._client.get_profile)
        if res.get("result") != "success":
            logger.warning("Failed to get own profile: %s", res)
            return None
        return res

    # Inbound --------------------------------------------------------------

    async def to_event(self, raw: Dict[str, Any]) -> Optional[Event]:
        """Translate a raw Zulip event into a chat event.

        Returns None for events the core does not handle, including the
        bot's own traffic and private messages.
        """
        if raw.get("type") == "message":
            return self._message_event(raw.get("message", {}))
        if raw.get("type") == "reaction":
            return await self._reaction_event(raw)
        return None

    def _message_event(self, msg: Dict[str, Any]) -> Optional[Event]:
        if msg.get("type") != "stream":
            return None
        if self.own_user_id is not None and msg.get("sender_id") == self.own_user_id:
            return None

        timestamp = str(msg.get("id") or "")
        channel_id = msg.get("display_recipient") or ""
        sender_id = str(msg.get("sender_id") or "")
        content = msg.get("content") or ""
        topic = msg.get("subject") or ""

        if not topic or topic == self.channel_topic:
            return TextMessage(timestamp, channel_id, sender_id, content)
        return ThreadMessage(timestamp, channel_id, sender_id, topic, content)

    async def _reaction_event(self, raw: Dict[str, Any]) -> Optional[Reaction]:
        if self.own_user_id is not None and raw.get("user_id") == self.own_user_id:
            return None
        op = raw.get("op")
        if op not in ("add", "remove"):
            return None
        message_id = raw.get("message_id")
        channel_id = await self._stream_of(message_id) if message_id else None
        return Reaction(
            timestamp=str(message_id or ""),
            channel_id=channel_id or "",
            user_id=str(raw.get("user_id") or ""),
            emoji_code=raw.get("emoji_name") or "",
            kind=ReactionKind.ADDED if op == "add" else ReactionKind.REMOVED,
        )

    async def _stream_of(self, message_id: int) -> Optional[str]:
        res = await self._call(self._client.get_raw_message, message_id)
        if res.get("result") != "success":
            logger.debug("Could not resolve message_id=%s: %s", message_id, res)
            return None
        recipient = res.get("message", {}).get("display_recipient")
        return recipient if isinstance(recipient, str) else None

    async def deliver(self, raw: Dict[str, Any]) -> None:
        """Translate ``raw`` and hand it to the subscribed listeners."""
        event = await self.to_event(raw)
        if event is None:
            return

        if isinstance(event, TextMessage):
            listeners = self._message_listeners
        elif isinstance(event, ThreadMessage):
            listeners = self._thread_listeners
        elif event.kind is ReactionKind.ADDED:
            listeners = self._reaction_added_listeners
        else:
            listeners = self._reaction_removed_listeners

        await self._fire(listeners, event)

    async def register(self, **kwargs: Any) -> Dict[str, Any]:
        """Register an event queue with the Zulip server."""
        return await self._call(self._client.register, **kwargs)

    async def events(self, queue: Dict[str, Any]) -> AsyncIterator[Dict[str, Any]]:
        """Yield raw events from a registered queue, long-polling forever."""
        queue_id = queue["queue_id"]
        last_event_id = queue["last_event_id"]

        while True:
            try:
                res = await self._request(
                    self._client.get_events,
                    queue_id=queue_id,
                    last_event_id=last_event_id,
                    dont_block=False,
                    timeout=POLL_TIMEOUT,
                )
            except Exception:  # pylint: disable=broad-exception-caught
                logger.exception("Polling queue %s failed", queue_id)
                await trio.sleep(POLL_ERROR_DELAY)
                continue

            if res.get("result") != "success":
                logger.warning("get_events on queue %s failed: %s", queue_id, res.get("msg", res))
                await trio.sleep(POLL_ERROR_DELAY)
                continue

            for raw in res.get("events", []):
                last_event_id = max(last_event_id, raw.get("id", last_event_id))
                yield raw

    async def run(self) -> None:
        """Register a queue and deliver events until cancelled.

        Each event is delivered in its own task, so a slow handler for one
        event does not hold up others.
        """
        own = await self.get_own_user()
        if own:
            self.own_user_id = own.get("user_id")
            logger.info(
                "Bot authenticated as: %s (email: %s, user_id: %s)",
                own.get("full_name"), own.get("email"), self.own_user_id,
            )
        else:
            logger.warning("Could not retrieve bot user information")

        queue = await self.register(
            event_types=["message", "reaction"],
            client_gravatar=False,
            apply_markdown=False,
        )
        logger.info("Registered event queue id=%s", queue.get("queue_id"))

        async with trio.open_nursery() as nursery:
            async for raw in self.events(queue):
                logger.debug("Received event: type=%s", raw.get("type"))
                nursery.start_soon(self.deliver, raw)
