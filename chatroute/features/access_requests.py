"""Access requests feature.

Watches streams for trigger phrases and subscribes the sender to a target
stream, reacting with :saluting_face:.
"""
import logging
import re
from dataclasses import dataclass
from typing import Annotated, Any, Callable, Dict, List, Optional

from chatroute.config import ConfigManager
from chatroute.core.binding import ChannelId, UserId
from chatroute.core.registry import HandlerComponent, HandlerDeclaration, on_message
from chatroute.core.responses import Response, reactions
from chatroute.transport.zulip import ZulipTransport

logger = logging.getLogger(__name__)


@dataclass
class WatchRule:
    stream: str
    phrase: str
    target_stream: str


def phrase_pattern(phrase: str) -> re.Pattern:
    """Whitespace-tolerant, case-insensitive whole-message pattern for ``phrase``."""
    return re.compile(r"\s*" + re.escape(phrase.strip()) + r"\s*", re.IGNORECASE)


class AccessRequestsFeature(HandlerComponent):
    """
    Subscribes users who post a configured phrase in a watched stream.
    """

    def __init__(self, transport: ZulipTransport, config_mgr: ConfigManager) -> None:
        self.transport = transport
        self.config_mgr = config_mgr

    def _load_rules(self) -> List[WatchRule]:
        cfg = self.config_mgr.section("access_requests")
        if not cfg.get("enabled", False):
            return []
        rules_conf: List[Dict[str, Any]] = cfg.get("watch_rules", [])
        rules: List[WatchRule] = []
        for r in rules_conf:
            try:
                rules.append(
                    WatchRule(
                        stream=r["stream"],
                        phrase=r["phrase"],
                        target_stream=r["target_stream"],
                    )
                )
            except (KeyError, TypeError):
                logger.warning("Invalid watch rule in config: %s", r)
        return rules

    def declarations(self) -> List[HandlerDeclaration]:
        return [
            on_message(phrase_pattern(rule.phrase), self._grant_handler(rule))
            for rule in self._load_rules()
        ]

    def _grant_handler(self, rule: WatchRule) -> Callable[..., Any]:
        async def grant(
            channel_id: Annotated[str, ChannelId],
            user_id: Annotated[str, UserId],
        ) -> Optional[Response]:
            if channel_id != rule.stream:
                return None
            logger.info(
                "AccessRequests: subscribing sender_id=%s to target_stream=%s due to phrase match",
                user_id,
                rule.target_stream,
            )
            await self.transport.add_user_subscriptions(user_id, [rule.target_stream])
            return reactions("saluting_face")

        grant.__qualname__ = f"{type(self).__name__}.grant[{rule.target_stream}]"
        return grant
