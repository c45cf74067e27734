"""
Centralized configuration with environment variable overrides.

Scheduling policy (slot granularity, lead time, spillover), booking
concurrency limits, and workflow switches all live here. Nothing is
hardcoded in the scheduling or workflow logic.
"""

import logging
import os
from dataclasses import dataclass, field
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from service_scheduler.logging_context import request_handler

load_dotenv()

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


def _safe_bool(env_var: str, default: str) -> bool:
    """Parse a boolean flag (true/false, yes/no, 1/0, on/off)."""
    raw = os.getenv(env_var, default).strip().lower()
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    raise ValueError(f"Invalid boolean for {env_var}: {raw!r}")


@dataclass(frozen=True)
class SchedulingConfig:
    """Slot generation and technician matching policy."""

    slot_granularity_minutes: int = _safe_int("SLOT_GRANULARITY_MINUTES", "30")
    allow_spillover: bool = _safe_bool("ALLOW_SPILLOVER", "true")
    min_skill_proficiency: int = _safe_int("MIN_SKILL_PROFICIENCY", "3")
    recommended_match_threshold: float = _safe_float("RECOMMENDED_MATCH_THRESHOLD", "70.0")
    default_timezone: str = os.getenv("DEFAULT_TIMEZONE", "Asia/Ho_Chi_Minh")


@dataclass(frozen=True)
class BookingConfig:
    """Booking transaction policy and concurrency limits."""

    min_lead_time_minutes: int = _safe_int("MIN_LEAD_TIME_MINUTES", "120")
    lock_timeout_sec: float = _safe_float("LOCK_TIMEOUT_SEC", "5.0")
    max_lock_retries: int = _safe_int("MAX_LOCK_RETRIES", "1")
    max_reschedules: int = _safe_int("MAX_RESCHEDULES", "2")


@dataclass(frozen=True)
class WorkflowConfig:
    """Appointment workflow switches."""

    auto_start_work: bool = _safe_bool("AUTO_START_WORK", "true")
    early_arrival_days: int = _safe_int("EARLY_ARRIVAL_DAYS", "0")


@dataclass(frozen=True)
class TechnicianConfig:
    """Technician roster defaults."""

    default_daily_capacity: int = _safe_int("TECHNICIAN_DAILY_CAPACITY", "8")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    scheduling: SchedulingConfig = field(default_factory=SchedulingConfig)
    booking: BookingConfig = field(default_factory=BookingConfig)
    workflow: WorkflowConfig = field(default_factory=WorkflowConfig)
    technicians: TechnicianConfig = field(default_factory=TechnicianConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    service_name: str = os.getenv("SERVICE_NAME", "ev-service-scheduler")
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = _safe_int("API_PORT", "8000")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    granularity = config.scheduling.slot_granularity_minutes
    if not 5 <= granularity <= 240 or (24 * 60) % granularity != 0:
        raise ValueError(
            "SLOT_GRANULARITY_MINUTES must be between 5 and 240 and divide a day evenly, "
            f"got {granularity}"
        )
    if not 1 <= config.scheduling.min_skill_proficiency <= 5:
        raise ValueError(
            "MIN_SKILL_PROFICIENCY must be between 1 and 5, "
            f"got {config.scheduling.min_skill_proficiency}"
        )
    if not 0.0 <= config.scheduling.recommended_match_threshold <= 100.0:
        raise ValueError(
            "RECOMMENDED_MATCH_THRESHOLD must be between 0 and 100, "
            f"got {config.scheduling.recommended_match_threshold}"
        )
    try:
        ZoneInfo(config.scheduling.default_timezone)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(
            f"DEFAULT_TIMEZONE is not a known zone: {config.scheduling.default_timezone!r}"
        ) from None

    if config.booking.min_lead_time_minutes < 0:
        raise ValueError(
            f"MIN_LEAD_TIME_MINUTES must be >= 0, got {config.booking.min_lead_time_minutes}"
        )
    if config.booking.lock_timeout_sec <= 0:
        raise ValueError(
            f"LOCK_TIMEOUT_SEC must be > 0, got {config.booking.lock_timeout_sec}"
        )
    if config.booking.max_lock_retries < 0:
        raise ValueError(
            f"MAX_LOCK_RETRIES must be >= 0, got {config.booking.max_lock_retries}"
        )
    if config.booking.max_reschedules < 0:
        raise ValueError(
            f"MAX_RESCHEDULES must be >= 0, got {config.booking.max_reschedules}"
        )
    if config.workflow.early_arrival_days < 0:
        raise ValueError(
            f"EARLY_ARRIVAL_DAYS must be >= 0, got {config.workflow.early_arrival_days}"
        )
    if config.technicians.default_daily_capacity < 1:
        raise ValueError(
            "TECHNICIAN_DAILY_CAPACITY must be >= 1, "
            f"got {config.technicians.default_daily_capacity}"
        )


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        handlers=[request_handler()],
    )
    logger.info("Configuration loaded for '%s'", config.service_name)
    return config


# Singleton instance
settings = load_config()
