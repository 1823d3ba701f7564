"""Tests for application settings."""

import pytest

from ledger_api.core.config import Settings


def test_defaults() -> None:
    """Test the defaults used when nothing is configured."""
    settings = Settings(_env_file=None)

    assert settings.default_currency == "NPR"
    assert settings.default_timezone == "Asia/Kathmandu"
    assert settings.token_refresh_buffer_seconds == 300
    assert settings.gmail_api_base_url == "https://gmail.googleapis.com/gmail/v1"


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test settings are read from the environment, case-insensitively."""
    monkeypatch.setenv("GMAIL_PUBSUB_TOPIC", "projects/p/topics/t")
    monkeypatch.setenv("lookup_timeout_seconds", "2.5")

    settings = Settings(_env_file=None)

    assert settings.gmail_pubsub_topic == "projects/p/topics/t"
    assert settings.lookup_timeout_seconds == 2.5
