"""Configuration parsing tests."""

from decimal import Decimal
from pathlib import Path

import pytest
from pydantic import ValidationError

from taxlens.core.config import Settings


def test_defaults() -> None:
    """Unset fields fall back to their documented defaults."""
    cfg = Settings(_env_file=None)
    assert cfg.environment == "development"
    assert cfg.extraction_concurrency == 2
    assert cfg.materiality_threshold == Decimal("10")
    assert cfg.timeline_lookahead_days == 365
    assert cfg.rules_dir is None


def test_env_overrides(monkeypatch) -> None:
    """Environment variables are read case-insensitively."""
    monkeypatch.setenv("MATERIALITY_THRESHOLD", "25.50")
    monkeypatch.setenv("rules_dir", "/srv/rules")
    monkeypatch.setenv("OUTLIER_Z_THRESHOLD", "3")

    cfg = Settings(_env_file=None)

    assert cfg.materiality_threshold == Decimal("25.50")
    assert cfg.rules_dir == Path("/srv/rules")
    assert cfg.outlier_z_threshold == 3.0


@pytest.mark.parametrize("field", ["EXTRACTION_CONCURRENCY", "MAX_DOCUMENTS"])
def test_limits_must_be_positive(monkeypatch, field: str) -> None:
    """Zero concurrency or document limits are rejected."""
    monkeypatch.setenv(field, "0")
    with pytest.raises(ValidationError, match="at least 1"):
        Settings(_env_file=None)


def test_similarity_threshold_is_a_ratio(monkeypatch) -> None:
    """Similarity thresholds outside [0, 1] fail with a clear message."""
    monkeypatch.setenv("NAME_SIMILARITY_THRESHOLD", "1.5")
    try:
        Settings(_env_file=None)
    except ValidationError as exc:
        assert "NAME_SIMILARITY_THRESHOLD" in str(exc)
    else:
        raise AssertionError("Expected invalid NAME_SIMILARITY_THRESHOLD to fail")
