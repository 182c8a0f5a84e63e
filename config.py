"""
Application configuration. Loads from environment variables.

A `.env` file in the working directory is loaded first, so local runs can
keep their settings there. Every variable is prefixed with CRONWATCH_.
Detection thresholds left at 0 fall back to the built-in defaults in
schemas/thresholds.py.
"""

import os
import pathlib
from datetime import timedelta
from functools import lru_cache

from dotenv import load_dotenv
from pydantic import TypeAdapter, ValidationError

from schemas.thresholds import DetectionThresholds, GroupOverride

load_dotenv()

ENV_PREFIX = "CRONWATCH_"
_DEFAULT_FIXTURE = pathlib.Path(__file__).parent / "fixtures" / "cron_schedule.json"
_GROUP_OVERRIDES = TypeAdapter(list[GroupOverride])
_DEBOUNCE_MODES = ("shared", "literal", "per_heuristic")


class ConfigError(ValueError):
    """The environment holds an invalid configuration value."""


@lru_cache(maxsize=1)
def get_settings() -> "Settings":
    """Return cached settings instance."""
    return Settings()


def _env(name: str, default: str = "") -> str:
    return os.getenv(ENV_PREFIX + name, default).strip()


def _env_int(name: str, default: int) -> int:
    raw = _env(name, str(default))
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}") from None
    if value < 0:
        raise ConfigError(f"{ENV_PREFIX}{name} must not be negative, got {value}")
    return value


def _env_bool(name: str, default: bool) -> bool:
    return _env(name, "true" if default else "false").lower() in ("1", "true", "yes", "on")


class Settings:
    """Application settings loaded from environment."""

    # Source. No database URL means fixture mode
    database_url: str | None = None
    table: str = "cron_schedule"
    fixture_path: pathlib.Path = _DEFAULT_FIXTURE

    # Polling
    poll_interval_seconds: int = 120

    # Detection
    debounce_mode: str = "shared"
    suppression_window_seconds: int = 300
    state_ttl_hours: int = 24

    # Logging
    log_file: str = "cronwatch.log"
    log_level: str = "info"
    log_format: str = "text"  # text or json

    # Notifications. An empty webhook list disables them
    webhook_urls: list[str] = []
    alert_cooldown_seconds: int = 1800
    recovery_cooldown_seconds: int = 0
    send_recovery: bool = True
    notify_timeout_seconds: int = 10

    # Diagnostics API
    api_host: str = "127.0.0.1"
    api_port: int = 8000

    def __init__(self) -> None:
        self.database_url = _env("DATABASE_URL") or None
        self.table = _env("TABLE", self.table)
        self.fixture_path = pathlib.Path(_env("FIXTURE_PATH") or self.fixture_path)

        self.poll_interval_seconds = _env_int("POLL_INTERVAL_SECONDS", self.poll_interval_seconds)
        if self.poll_interval_seconds == 0:
            raise ConfigError(f"{ENV_PREFIX}POLL_INTERVAL_SECONDS must be positive")

        self.thresholds = DetectionThresholds(
            max_running_time=timedelta(minutes=_env_int("MAX_RUNNING_MINUTES", 0)),
            max_pending_count=_env_int("MAX_PENDING_COUNT", 0),
            consecutive_errors=_env_int("CONSECUTIVE_ERRORS", 0),
            max_missed_count=_env_int("MAX_MISSED_COUNT", 0),
            lookback_window=timedelta(minutes=_env_int("LOOKBACK_MINUTES", 0)),
            threshold_checks=_env_int("THRESHOLD_CHECKS", 0),
            scheduler_inactivity_minutes=_env_int("SCHEDULER_INACTIVITY_MINUTES", 0),
            scheduler_lookahead_minutes=_env_int("SCHEDULER_LOOKAHEAD_MINUTES", 0),
        )
        self.group_overrides = self._load_group_overrides()

        self.debounce_mode = _env("DEBOUNCE_MODE", self.debounce_mode).lower()
        if self.debounce_mode not in _DEBOUNCE_MODES:
            raise ConfigError(
                f"{ENV_PREFIX}DEBOUNCE_MODE must be one of {', '.join(_DEBOUNCE_MODES)}, "
                f"got {self.debounce_mode!r}"
            )
        self.suppression_window_seconds = _env_int(
            "SUPPRESSION_WINDOW_SECONDS", self.suppression_window_seconds
        )
        self.state_ttl_hours = _env_int("STATE_TTL_HOURS", self.state_ttl_hours)

        self.log_file = _env("LOG_FILE", self.log_file)
        self.log_level = _env("LOG_LEVEL", self.log_level).lower()
        self.log_format = _env("LOG_FORMAT", self.log_format).lower()
        if self.log_format not in ("text", "json"):
            raise ConfigError(f"{ENV_PREFIX}LOG_FORMAT must be 'text' or 'json'")
        if self.log_level not in ("debug", "info", "warning", "warn", "error"):
            raise ConfigError(f"{ENV_PREFIX}LOG_LEVEL must be debug, info, warning or error")

        # Comma-separated; empty = notifications disabled
        _urls = _env("WEBHOOK_URLS")
        self.webhook_urls = [u.strip() for u in _urls.split(",") if u.strip()]
        self.alert_cooldown_seconds = _env_int("ALERT_COOLDOWN_SECONDS", self.alert_cooldown_seconds)
        self.recovery_cooldown_seconds = _env_int(
            "RECOVERY_COOLDOWN_SECONDS", self.recovery_cooldown_seconds
        )
        self.send_recovery = _env_bool("SEND_RECOVERY", self.send_recovery)
        self.notify_timeout_seconds = _env_int("NOTIFY_TIMEOUT_SECONDS", self.notify_timeout_seconds)

        self.api_host = _env("API_HOST", self.api_host)
        self.api_port = _env_int("API_PORT", self.api_port)

    @property
    def poll_interval(self) -> timedelta:
        return timedelta(seconds=self.poll_interval_seconds)

    @property
    def lookback_window(self) -> timedelta:
        return self.thresholds.with_defaults().lookback_window

    def _load_group_overrides(self) -> list[GroupOverride]:
        raw = _env("GROUP_OVERRIDES")
        if not raw:
            return []
        try:
            return _GROUP_OVERRIDES.validate_json(raw)
        except ValidationError as exc:
            raise ConfigError(f"{ENV_PREFIX}GROUP_OVERRIDES is invalid: {exc}") from exc
