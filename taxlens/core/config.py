"""Application configuration using Pydantic Settings."""

from decimal import Decimal
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Error Tracking
    sentry_dsn: str | None = None
    """Sentry DSN for error tracking. Optional."""

    # Environment
    environment: str = "development"
    """Current environment (development, staging, production)."""

    debug: bool = False
    """Enable debug mode."""

    log_format: str | None = None
    """Logging format override (json or console). Defaults by environment."""

    # Extraction
    extraction_concurrency: int = 2
    """Max concurrent calls to the text-extraction collaborator."""

    max_documents: int = 10
    """Maximum number of transcripts accepted in a single analysis run."""

    # Rule data
    rules_dir: Path | None = None
    """Directory holding per-year rule YAML files. Defaults to packaged data."""

    # Analysis thresholds
    materiality_threshold: Decimal = Decimal("10")
    """Minimum absolute dollar difference that produces a discrepancy finding."""

    name_similarity_threshold: float = 0.8
    """Name similarity below this ratio is reported as a warning."""

    outlier_z_threshold: float = 2.0
    """Absolute z-score above which a year's income is an outlier."""

    timeline_lookahead_days: int = 365
    """Statute deadlines within this many days are placed on the timeline."""

    output_dir: str = "/tmp/output"
    """Default output directory for generated workbooks."""

    @field_validator("extraction_concurrency", "max_documents")
    @classmethod
    def require_positive(cls, value: int) -> int:
        """Reject zero or negative limits."""
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    @field_validator("name_similarity_threshold")
    @classmethod
    def require_ratio(cls, value: float) -> float:
        """Similarity thresholds are ratios between 0 and 1."""
        if not 0 <= value <= 1:
            raise ValueError("NAME_SIMILARITY_THRESHOLD must be between 0 and 1")
        return value


try:
    settings = Settings()
except Exception as exc:
    env_file = Path(".env")
    raise RuntimeError(
        "Failed to initialize application settings. "
        f"Check environment variables in {env_file.resolve() if env_file.exists() else '.env'}.\n"
        + f"Error: {exc}\n"
        + "EXTRACTION_CONCURRENCY and MAX_DOCUMENTS must be positive integers."
    ) from exc
