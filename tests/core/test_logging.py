"""Tests for structured logging configuration."""

import json
from decimal import Decimal

import structlog

from taxlens.core.config import settings
from taxlens.core.logging import (
    _add_analysis_context,
    _orjson_serializer,
    analysis_context,
    analysis_id_ctx,
    configure_logging,
    tax_year_context,
    tax_year_ctx,
)


def _reset_structlog() -> None:
    """Reset structlog defaults to avoid test cross-talk."""
    structlog.reset_defaults()


def test_configure_logging_uses_json_when_log_format_json() -> None:
    """Use JSON logging when log_format=json, even in development."""
    original_env = settings.environment
    original_format = settings.log_format

    try:
        settings.environment = "development"
        settings.log_format = "json"
        configure_logging()

        processors = structlog.get_config()["processors"]
        assert any(
            isinstance(processor, structlog.processors.JSONRenderer)
            for processor in processors
        )
        assert any(
            isinstance(processor, structlog.processors.EventRenamer)
            for processor in processors
        )
    finally:
        settings.environment = original_env
        settings.log_format = original_format
        _reset_structlog()


def test_configure_logging_uses_console_when_log_format_console() -> None:
    """Use console logging when log_format=console in development."""
    original_env = settings.environment
    original_format = settings.log_format

    try:
        settings.environment = "development"
        settings.log_format = "console"
        configure_logging()

        processors = structlog.get_config()["processors"]
        assert any(
            isinstance(processor, structlog.dev.ConsoleRenderer)
            for processor in processors
        )
        assert not any(
            isinstance(processor, structlog.processors.JSONRenderer)
            for processor in processors
        )
    finally:
        settings.environment = original_env
        settings.log_format = original_format
        _reset_structlog()


def test_configure_logging_defaults_to_json_outside_development() -> None:
    """Production without an override renders JSON."""
    original_env = settings.environment
    original_format = settings.log_format

    try:
        settings.environment = "production"
        settings.log_format = None
        configure_logging()

        processors = structlog.get_config()["processors"]
        assert any(
            isinstance(processor, structlog.processors.JSONRenderer)
            for processor in processors
        )
    finally:
        settings.environment = original_env
        settings.log_format = original_format
        _reset_structlog()


def test_context_vars_added_to_events() -> None:
    """Analysis id and tax year are attached when set."""
    analysis_token = analysis_id_ctx.set("abc-123")
    year_token = tax_year_ctx.set(2023)
    try:
        event = _add_analysis_context(None, "info", {"event": "x"})
    finally:
        analysis_id_ctx.reset(analysis_token)
        tax_year_ctx.reset(year_token)

    assert event["analysis_id"] == "abc-123"
    assert event["tax_year"] == 2023


def test_context_vars_absent_when_unset() -> None:
    """Nothing is added outside an analysis."""
    event = _add_analysis_context(None, "info", {"event": "x"})
    assert "analysis_id" not in event
    assert "tax_year" not in event


def test_orjson_serializer_renders_decimals() -> None:
    """Decimal amounts serialize as strings."""
    rendered = _orjson_serializer({"amount": Decimal("12.50")})
    assert json.loads(rendered) == {"amount": "12.50"}


def test_context_managers_bind_and_restore() -> None:
    """Bound values apply inside the block and are cleared after it."""
    with analysis_context("run-1") as analysis_id, tax_year_context(2022):
        event = _add_analysis_context(None, "info", {"event": "x", "tax_year": 2021})
        assert analysis_id == "run-1"
        assert analysis_id_ctx.get() == "run-1"

    assert event == {"event": "x", "analysis_id": "run-1", "tax_year": 2021}
    assert analysis_id_ctx.get() is None
    assert tax_year_ctx.get() is None
