"""End-to-end tests for the built-in features through the router."""
from unittest.mock import AsyncMock

import pytest

from chatroute.config import ConfigManager
from chatroute.core.models import MessageRef, TextMessage
from chatroute.features.access_requests import AccessRequestsFeature
from chatroute.features.admin_controls import AdminControlsFeature


def _config(tmp_path, text: str) -> ConfigManager:
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    mgr = ConfigManager(str(path))
    mgr.load()
    return mgr


ACCESS_CONFIG = """
access_requests:
  enabled: true
  watch_rules:
    - stream: access-requests
      phrase: "I want to play a game"
      target_stream: game-room
    - stream: broken-rule
"""


@pytest.mark.trio
async def test_access_phrase_subscribes_and_salutes(tmp_path, registry, router, transport):
    transport.add_user_subscriptions = AsyncMock()
    feature = AccessRequestsFeature(transport, _config(tmp_path, ACCESS_CONFIG))
    registry.register_component(feature)

    await router.handle_message(
        TextMessage("55", "access-requests", "7", "  i want to PLAY a game ")
    )

    transport.add_user_subscriptions.assert_awaited_once_with("7", ["game-room"])
    assert transport.reactions == [(MessageRef("access-requests", "55"), ("saluting_face",))]


@pytest.mark.trio
async def test_access_phrase_in_other_stream_is_ignored(tmp_path, registry, router, transport):
    transport.add_user_subscriptions = AsyncMock()
    registry.register_component(AccessRequestsFeature(transport, _config(tmp_path, ACCESS_CONFIG)))

    await router.handle_message(TextMessage("56", "general", "7", "I want to play a game"))

    transport.add_user_subscriptions.assert_not_awaited()
    assert transport.calls == []


@pytest.mark.trio
async def test_admin_sees_config_section(tmp_path, registry, router, transport):
    transport.get_user_by_id = AsyncMock(return_value={"is_admin": True})
    registry.register_component(AdminControlsFeature(transport, _config(tmp_path, "{}")))

    await router.handle_message(TextMessage("60", "ops", "1", "!config show zulip"))

    assert transport.calls[0] == ("typing", "ops")
    ((channel, text),) = transport.channel_messages
    assert channel == "ops"
    assert "channel_topic: general" in text
    assert "dispatch" not in text


@pytest.mark.trio
async def test_non_admin_gets_permission_error(tmp_path, registry, router, transport):
    transport.get_user_by_id = AsyncMock(return_value={"is_admin": False, "is_owner": False})
    registry.register_component(AdminControlsFeature(transport, _config(tmp_path, "{}")))

    await router.handle_message(TextMessage("61", "ops", "2", "!config show"))

    assert transport.channel_messages == [
        ("ops", "Only organization admins can use admin commands.")
    ]


@pytest.mark.trio
async def test_unknown_section_is_reported(tmp_path, registry, router, transport):
    transport.get_user_by_id = AsyncMock(return_value={"is_owner": True})
    registry.register_component(AdminControlsFeature(transport, _config(tmp_path, "{}")))

    await router.handle_message(TextMessage("62", "ops", "1", "!config show nope"))

    assert transport.channel_messages == [("ops", "Unknown config section `nope`.")]
