"""Configuration management for chatroute.

Provides a ConfigManager class that loads bot configuration from a YAML file,
writing a default file on first start.
"""
import copy
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict

import yaml

from chatroute.core.reporting import DEFAULT_FALLBACK_MESSAGE

logger = logging.getLogger(__name__)


DEFAULT_CONFIG: Dict[str, Any] = {
    "dispatch": {
        # sliding window for duplicate channel messages
        "dedup_window_minutes": 15,
        "error_fallback_message": DEFAULT_FALLBACK_MESSAGE,
    },
    "zulip": {
        # topic holding plain channel messages; other topics are threads
        "channel_topic": "general",
    },
    "access_requests": {
        "enabled": True,
        "watch_rules": [
            {
                "stream": "access-requests",
                "phrase": "Default string 1",
                "target_stream": "private-room-1",
            },
        ],
    },
    "logging": {
        "level": "INFO",
    },
}


def _write_atomic(path: str, data: Dict[str, Any]) -> None:
    tmp_path = path + ".tmp"
    with open(tmp_path, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f, sort_keys=False)
    os.replace(tmp_path, path)


@dataclass
class ConfigManager:
    """Loads bot configuration from YAML, merged over DEFAULT_CONFIG.

    Attributes:
        path: Path to the YAML configuration file
    """
    path: str
    _config: Dict[str, Any] = field(init=False, default_factory=dict)

    def load(self) -> Dict[str, Any]:
        """Load configuration from file, creating defaults if needed."""
        if not os.path.exists(self.path):
            logger.info("Config file %s not found, creating default config", self.path)
            _write_atomic(self.path, DEFAULT_CONFIG)
            self._config = copy.deepcopy(DEFAULT_CONFIG)
            return self._config

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError:
            logger.exception("Failed to parse YAML file %s", self.path)
            data = None

        if not isinstance(data, dict):
            logger.warning("Config file %s malformed, using defaults", self.path)
            self._config = copy.deepcopy(DEFAULT_CONFIG)
            return self._config

        # Merge defaults per section (shallow within a section)
        merged = copy.deepcopy(DEFAULT_CONFIG)
        for k, v in data.items():
            if isinstance(v, dict) and isinstance(merged.get(k), dict):
                merged[k].update(v)
            else:
                merged[k] = v
        self._config = merged
        return self._config

    def get(self) -> Dict[str, Any]:
        """Get the current configuration dictionary."""
        return self._config

    def section(self, name: str) -> Dict[str, Any]:
        """Get one configuration section, empty if absent."""
        value = self._config.get(name, {})
        return value if isinstance(value, dict) else {}
