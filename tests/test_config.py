"""Tests for YAML configuration loading."""
import yaml

from chatroute.config import DEFAULT_CONFIG, ConfigManager


def test_missing_file_writes_defaults(tmp_path):
    path = tmp_path / "config.yaml"

    config = ConfigManager(str(path)).load()

    assert config == DEFAULT_CONFIG
    assert yaml.safe_load(path.read_text(encoding="utf-8")) == DEFAULT_CONFIG


def test_sections_are_merged_over_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("dispatch:\n  dedup_window_minutes: 5\n", encoding="utf-8")

    mgr = ConfigManager(str(path))
    mgr.load()

    assert mgr.section("dispatch")["dedup_window_minutes"] == 5
    assert mgr.section("dispatch")["error_fallback_message"].startswith("Failed to handle")
    assert mgr.section("zulip") == {"channel_topic": "general"}


def test_malformed_file_uses_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")

    assert ConfigManager(str(path)).load() == DEFAULT_CONFIG


def test_defaults_are_not_mutated_by_callers(tmp_path):
    mgr = ConfigManager(str(tmp_path / "config.yaml"))
    mgr.load()
    mgr.section("zulip")["channel_topic"] = "changed"

    assert DEFAULT_CONFIG["zulip"]["channel_topic"] == "general"
