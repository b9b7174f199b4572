from __future__ import annotations

from dataclasses import dataclass

from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"
    ALLOWED_ORIGINS: str = ""
    ARCHIVE_RATE_LIMIT: str = "30 per minute"

    WAYBACK_ORIGIN: str = "https://web.archive.org"
    WAYBACK_AVAILABILITY_URL: str = "https://archive.org/wayback/available"
    WAYBACK_CDX_URL: str = "https://web.archive.org/cdx/search/cdx"
    WAYBACK_SAVE_URL: str = "https://web.archive.org/save"
    USER_AGENT: str = "ArchiveReader/1.0 (+https://github.com/archive-reader)"

    REQUEST_DEADLINE_SECONDS: float = 9.0
    DEADLINE_RESERVE_SECONDS: float = 0.75
    API_TIMEOUT_SECONDS: float = 3.0
    SNAPSHOT_TIMEOUT_SECONDS: float = 6.0
    SAVE_TIMEOUT_SECONDS: float = 5.0
    MIN_CALL_TIMEOUT_SECONDS: float = 0.25
    MIN_ATTEMPT_SECONDS: float = 1.5
    VARIANT_MIN_SECONDS: float = 2.0
    HISTORY_LIMIT: int = 6


settings = AppSettings()


@dataclass(frozen=True)
class RequestBudget:
    """Per-request timing and fan-out limits, built once per incoming request."""

    deadline_seconds: float
    reserve_seconds: float
    api_timeout: float
    snapshot_timeout: float
    save_timeout: float
    min_call_timeout: float
    min_attempt_seconds: float
    variant_min_seconds: float
    history_limit: int
    max_captures: int = 2
    max_replay_modes: int = 2

    @classmethod
    def from_settings(cls, config: AppSettings | None = None) -> RequestBudget:
        """Create a RequestBudget from application settings."""
        config = config or settings
        return cls(
            deadline_seconds=config.REQUEST_DEADLINE_SECONDS,
            reserve_seconds=config.DEADLINE_RESERVE_SECONDS,
            api_timeout=config.API_TIMEOUT_SECONDS,
            snapshot_timeout=config.SNAPSHOT_TIMEOUT_SECONDS,
            save_timeout=config.SAVE_TIMEOUT_SECONDS,
            min_call_timeout=config.MIN_CALL_TIMEOUT_SECONDS,
            min_attempt_seconds=config.MIN_ATTEMPT_SECONDS,
            variant_min_seconds=config.VARIANT_MIN_SECONDS,
            history_limit=max(1, config.HISTORY_LIMIT),
        )


@dataclass(frozen=True)
class WaybackEndpoints:
    """Archive service endpoints used by the locator, fetcher and submitter."""

    origin: str
    availability_url: str
    cdx_url: str
    save_url: str
    user_agent: str

    @classmethod
    def from_settings(cls, config: AppSettings | None = None) -> WaybackEndpoints:
        config = config or settings
        return cls(
            origin=config.WAYBACK_ORIGIN.rstrip("/"),
            availability_url=config.WAYBACK_AVAILABILITY_URL,
            cdx_url=config.WAYBACK_CDX_URL,
            save_url=config.WAYBACK_SAVE_URL.rstrip("/"),
            user_agent=config.USER_AGENT,
        )


@dataclass(frozen=True)
class ExtractionThresholds:
    """Heuristic constants shared by the extractor and the quality scorer.

    The values were tuned empirically against real captures; treat them as
    tunable defaults rather than guaranteed-correct cut-offs.
    """

    # Completeness warning
    warning_min_source: int = 1500
    warning_min_extracted: int = 200
    warning_coverage_cutoff: float = 0.6
    warning_min_gap: int = 1000

    # Source length resolution
    body_override_floor: int = 1500
    body_override_ratio: float = 1.8

    # DOM candidate fallback
    fallback_trigger_length: int = 1200
    fallback_trigger_coverage: float = 0.7
    fallback_min_length: int = 1200
    fallback_min_ratio: float = 1.2
    fallback_min_gain: int = 800

    # JSON-LD articleBody fallback
    structured_min_length: int = 600
    structured_min_ratio: float = 1.3
    structured_min_gain: int = 500
    structured_max_depth: int = 12

    # compare_extractions length override
    override_min_ratio: float = 1.25
    override_min_delta: int = 1200

    # Search continuation
    alternate_mode_coverage: float = 0.75
    alternate_mode_gap: int = 1200
    alternate_mode_min_unscored: int = 1500
    additional_capture_coverage: float = 0.6
    additional_capture_gap: int = 2000
    additional_capture_min_unscored: int = 800

    excerpt_max_length: int = 280


DEFAULT_THRESHOLDS = ExtractionThresholds()
