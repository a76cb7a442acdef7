"""Tests for Sentry initialization."""

from typing import Any

import pytest

from taxlens.core import sentry
from taxlens.core.config import settings


class TestInitSentry:
    """Tests for init_sentry."""

    def test_skipped_without_dsn(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """No DSN means no initialization."""
        monkeypatch.setattr(settings, "sentry_dsn", None)
        assert sentry.init_sentry() is False

    def test_initializes_without_pii(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """A DSN initializes the SDK with PII disabled."""
        calls: list[dict[str, Any]] = []
        monkeypatch.setattr(settings, "sentry_dsn", "https://key@sentry.example.com/1")
        monkeypatch.setattr(settings, "environment", "staging")
        monkeypatch.setattr(sentry.sentry_sdk, "init", lambda **kwargs: calls.append(kwargs))

        assert sentry.init_sentry() is True
        assert len(calls) == 1
        assert calls[0]["dsn"] == "https://key@sentry.example.com/1"
        assert calls[0]["environment"] == "staging"
        assert calls[0]["send_default_pii"] is False
