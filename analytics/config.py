"""
Centralized configuration for the member analytics engine.

This module provides a single source of truth for all configuration values.
Configuration is loaded from environment variables with sensible defaults.

Usage:
    from analytics.config import config

    page_size = config.fetch.page_size
    policy = config.analytics.new_depositor_policy
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent
DEFAULT_DB_PATH = BASE_DIR / "data" / "analytics.duckdb"


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name, "").strip()
    return int(value) if value.lstrip("-").isdigit() else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name, "").strip()
    try:
        return float(value) if value else default
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name, "").strip().lower()
    if not value:
        return default
    return value in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class TableSpec:
    """A store table and how it encodes the month column."""

    name: str
    month_representation: str = "name"  # "name" (January) or "number" (1..12)


@dataclass(frozen=True)
class StoreConfig:
    """Row store configuration."""

    db_path: str = field(
        default_factory=lambda: os.getenv("ANALYTICS_DB_PATH", str(DEFAULT_DB_PATH))
    )
    default_currency: str = field(default_factory=lambda: os.getenv("DEFAULT_CURRENCY", "MYR"))
    # Per-request row cap and filter-list cap enforced by the store
    max_rows_per_request: int = field(default_factory=lambda: _env_int("STORE_MAX_ROWS", 10000))
    max_in_values: int = field(default_factory=lambda: _env_int("STORE_MAX_IN_VALUES", 1000))

    tables: Dict[str, TableSpec] = field(default_factory=lambda: {
        "member_transactions": TableSpec("member_transactions", "name"),
        "new_registrations": TableSpec("new_registrations", "number"),
    })

    def table(self, key: str) -> TableSpec:
        """Get table spec by logical name."""
        return self.tables[key]


@dataclass(frozen=True)
class FetchConfig:
    """Batched fetching configuration."""

    page_size: int = field(default_factory=lambda: _env_int("FETCH_PAGE_SIZE", 5000))
    safety_ceiling: int = field(default_factory=lambda: _env_int("FETCH_SAFETY_CEILING", 500000))
    in_batch_size: int = field(default_factory=lambda: _env_int("FETCH_IN_BATCH_SIZE", 500))
    # Above this many keys, fetch the superset and filter in memory
    in_crossover: int = field(default_factory=lambda: _env_int("FETCH_IN_CROSSOVER", 5000))

    retry_attempts: int = field(default_factory=lambda: _env_int("FETCH_RETRY_ATTEMPTS", 3))
    retry_base_delay: float = field(default_factory=lambda: _env_float("FETCH_RETRY_DELAY", 0.5))


@dataclass(frozen=True)
class AnalyticsConfig:
    """Cohort and lifecycle behaviour."""

    # "current": first deposit in the requested month counts as NEW
    # "previous": first deposit in the month before the requested month
    new_depositor_policy: str = field(
        default_factory=lambda: os.getenv("NEW_DEPOSITOR_POLICY", "current").strip().lower()
    )
    top_movers_limit: int = field(default_factory=lambda: _env_int("TOP_MOVERS_LIMIT", 20))


@dataclass(frozen=True)
class WebConfig:
    """Web API configuration."""

    host: str = field(default_factory=lambda: os.getenv("WEB_HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: _env_int("WEB_PORT", 8080))

    # Rate limiting
    rate_limit: str = field(default_factory=lambda: os.getenv("RATE_LIMIT", "30/minute"))
    rate_limit_enabled: bool = field(default_factory=lambda: _env_bool("RATE_LIMIT_ENABLED", True))

    request_timeout: float = field(default_factory=lambda: _env_float("REQUEST_TIMEOUT", 30.0))


@dataclass(frozen=True)
class AppConfig:
    """Main application configuration."""

    version: str = "1.0.0"
    store: StoreConfig = field(default_factory=StoreConfig)
    fetch: FetchConfig = field(default_factory=FetchConfig)
    analytics: AnalyticsConfig = field(default_factory=AnalyticsConfig)
    web: WebConfig = field(default_factory=WebConfig)


# Global config instance
config = AppConfig()

VERSION = config.version

SAFETY_CEILING_MIN = 100_000
SAFETY_CEILING_MAX = 1_000_000
NEW_DEPOSITOR_POLICIES = ("current", "previous")


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


def validate_config(app_config: AppConfig = None) -> None:
    """
    Validate configuration values.

    Call this on application startup to fail fast with clear error messages
    instead of cryptic runtime failures.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    app_config = app_config or config
    errors = []

    fetch = app_config.fetch
    if fetch.page_size <= 0:
        errors.append("FETCH_PAGE_SIZE must be positive")
    if not SAFETY_CEILING_MIN <= fetch.safety_ceiling <= SAFETY_CEILING_MAX:
        errors.append(
            f"FETCH_SAFETY_CEILING must be between {SAFETY_CEILING_MIN} and {SAFETY_CEILING_MAX}"
        )
    if fetch.in_batch_size <= 0:
        errors.append("FETCH_IN_BATCH_SIZE must be positive")
    if fetch.in_crossover < fetch.in_batch_size:
        errors.append("FETCH_IN_CROSSOVER must not be smaller than FETCH_IN_BATCH_SIZE")
    if fetch.retry_attempts < 1:
        errors.append("FETCH_RETRY_ATTEMPTS must be at least 1")

    store = app_config.store
    if store.max_rows_per_request <= 0:
        errors.append("STORE_MAX_ROWS must be positive")
    if store.max_in_values <= 0:
        errors.append("STORE_MAX_IN_VALUES must be positive")
    for key, spec in store.tables.items():
        if spec.month_representation not in ("name", "number"):
            errors.append(f"Table {key} has unknown month representation {spec.month_representation!r}")

    if app_config.analytics.new_depositor_policy not in NEW_DEPOSITOR_POLICIES:
        errors.append(
            "NEW_DEPOSITOR_POLICY must be one of: " + ", ".join(NEW_DEPOSITOR_POLICIES)
        )

    if errors:
        error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        raise ConfigurationError(error_msg)
