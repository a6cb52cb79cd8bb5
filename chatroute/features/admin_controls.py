"""Admin controls feature.

Lets organization admins inspect the running configuration from chat.
"""
import logging
from typing import Annotated, List, Optional

import yaml

from chatroute.config import ConfigManager
from chatroute.core.binding import RegexGroup, UserId
from chatroute.core.errors import UserFacingError
from chatroute.core.registry import HandlerComponent, HandlerDeclaration, on_message
from chatroute.core.responses import Response, plain_text
from chatroute.transport.zulip import ZulipTransport

logger = logging.getLogger(__name__)


class PermissionDenied(UserFacingError):
    reason = "Only organization admins can use admin commands."


class UnknownSection(UserFacingError):
    """Raised for ``!config show <section>`` with an unknown section."""


class AdminControlsFeature(HandlerComponent):
    """Admin-only commands for runtime bot configuration.

    Attributes:
        transport: Zulip transport, used to look up user roles
        config_mgr: Configuration manager
    """

    def __init__(self, transport: ZulipTransport, config_mgr: ConfigManager) -> None:
        self.transport = transport
        self.config_mgr = config_mgr

    def declarations(self) -> List[HandlerDeclaration]:
        return [
            on_message(r"\s*!config\s+show(?:\s+(\w+))?\s*", self.show_config, send_typing=True),
        ]

    async def _require_admin(self, user_id: str) -> None:
        user = await self.transport.get_user_by_id(user_id)
        # Zulip user roles: is_admin or is_owner usually mark admins
        if not user or not (user.get("is_admin") or user.get("is_owner")):
            logger.info("Rejected admin command from user_id=%s", user_id)
            raise PermissionDenied()

    async def show_config(
        self,
        user_id: Annotated[str, UserId],
        section: Annotated[Optional[str], RegexGroup(1)],
    ) -> Response:
        """Handle ``!config show [section]``."""
        await self._require_admin(user_id)

        cfg = self.config_mgr.get()
        if section is not None:
            if section not in cfg:
                raise UnknownSection(f"Unknown config section `{section}`.")
            cfg = {section: cfg[section]}

        text = yaml.safe_dump(cfg, sort_keys=False)
        return plain_text(f"Current config:\n```yaml\n{text}\n```")
