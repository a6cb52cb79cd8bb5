"""Main entry point for a chatroute bot on Zulip.

Wires the Zulip transport, the event router and the built-in features:
- Access requests
- Admin controls
"""
import logging
import os

import trio

from chatroute.config import ConfigManager
from chatroute.core.registry import HandlerRegistry
from chatroute.core.reporting import ErrorReporter
from chatroute.core.router import EventRouter, RecentMessages
from chatroute.features.access_requests import AccessRequestsFeature
from chatroute.features.admin_controls import AdminControlsFeature
from chatroute.transport.zulip import ZulipTransport

logger = logging.getLogger(__name__)


def build_router(transport: ZulipTransport, config_mgr: ConfigManager) -> EventRouter:
    """Create the router and register every feature's handlers.

    Raises:
        RegistrationError: If any handler is mis-declared
    """
    dispatch_cfg = config_mgr.section("dispatch")
    router = EventRouter(
        transport,
        reporter=ErrorReporter(
            transport, fallback_message=dispatch_cfg["error_fallback_message"]
        ),
        recent=RecentMessages(window=float(dispatch_cfg["dedup_window_minutes"]) * 60),
    )

    registry = HandlerRegistry(router)
    registry.register_components(
        [
            AdminControlsFeature(transport=transport, config_mgr=config_mgr),
            AccessRequestsFeature(transport=transport, config_mgr=config_mgr),
        ]
    )
    registry.attach(transport)
    return router


async def main() -> None:
    """Initialize and run the bot with all configured features."""
    config_path = os.environ.get("CHATROUTE_CONFIG", "config.yaml")
    config_mgr = ConfigManager(config_path)
    config_mgr.load()

    logging.basicConfig(
        level=config_mgr.section("logging").get("level", "INFO"),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting chatroute")

    transport = ZulipTransport.from_env_or_rc(
        channel_topic=config_mgr.section("zulip").get("channel_topic", "general")
    )
    build_router(transport, config_mgr)

    logger.info("Bot is now listening for messages...")
    await transport.run()


def run() -> None:
    trio.run(main)


if __name__ == "__main__":
    run()
