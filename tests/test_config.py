"""Tests for configuration loading and validation."""

from dataclasses import replace

import pytest

from service_scheduler.config import (
    AppConfig,
    BookingConfig,
    SchedulingConfig,
    TechnicianConfig,
    WorkflowConfig,
    _safe_bool,
    _safe_float,
    _safe_int,
    _validate_config,
)


class TestConfigValidation:
    def test_default_config_passes_validation(self):
        _validate_config(AppConfig())  # should not raise

    def test_defaults_match_policy(self):
        config = AppConfig()
        assert config.scheduling.slot_granularity_minutes == 30
        assert config.booking.min_lead_time_minutes == 120
        assert config.booking.max_lock_retries == 1
        assert config.scheduling.min_skill_proficiency == 3

    @pytest.mark.parametrize("granularity", [0, 4, 7, 241])
    def test_invalid_granularity(self, granularity):
        config = replace(AppConfig(), scheduling=SchedulingConfig(slot_granularity_minutes=granularity))
        with pytest.raises(ValueError, match="SLOT_GRANULARITY_MINUTES"):
            _validate_config(config)

    def test_invalid_proficiency(self):
        config = replace(AppConfig(), scheduling=SchedulingConfig(min_skill_proficiency=6))
        with pytest.raises(ValueError, match="MIN_SKILL_PROFICIENCY"):
            _validate_config(config)

    def test_invalid_threshold(self):
        config = replace(AppConfig(), scheduling=SchedulingConfig(recommended_match_threshold=120.0))
        with pytest.raises(ValueError, match="RECOMMENDED_MATCH_THRESHOLD"):
            _validate_config(config)

    def test_unknown_timezone(self):
        config = replace(AppConfig(), scheduling=SchedulingConfig(default_timezone="Mars/Olympus"))
        with pytest.raises(ValueError, match="DEFAULT_TIMEZONE"):
            _validate_config(config)

    def test_negative_lead_time(self):
        config = replace(AppConfig(), booking=BookingConfig(min_lead_time_minutes=-1))
        with pytest.raises(ValueError, match="MIN_LEAD_TIME_MINUTES"):
            _validate_config(config)

    def test_zero_lock_timeout(self):
        config = replace(AppConfig(), booking=BookingConfig(lock_timeout_sec=0))
        with pytest.raises(ValueError, match="LOCK_TIMEOUT_SEC"):
            _validate_config(config)

    def test_negative_early_arrival(self):
        config = replace(AppConfig(), workflow=WorkflowConfig(early_arrival_days=-1))
        with pytest.raises(ValueError, match="EARLY_ARRIVAL_DAYS"):
            _validate_config(config)

    def test_zero_capacity(self):
        config = replace(AppConfig(), technicians=TechnicianConfig(default_daily_capacity=0))
        with pytest.raises(ValueError, match="TECHNICIAN_DAILY_CAPACITY"):
            _validate_config(config)


class TestEnvParsing:
    def test_safe_int_reads_env(self, monkeypatch):
        monkeypatch.setenv("TEST_INT", "45")
        assert _safe_int("TEST_INT", "1") == 45

    def test_safe_int_default(self, monkeypatch):
        monkeypatch.delenv("TEST_INT", raising=False)
        assert _safe_int("TEST_INT", "7") == 7

    def test_safe_int_rejects_garbage(self, monkeypatch):
        monkeypatch.setenv("TEST_INT", "thirty")
        with pytest.raises(ValueError, match="TEST_INT"):
            _safe_int("TEST_INT", "1")

    def test_safe_float_rejects_garbage(self, monkeypatch):
        monkeypatch.setenv("TEST_FLOAT", "fast")
        with pytest.raises(ValueError, match="TEST_FLOAT"):
            _safe_float("TEST_FLOAT", "1.0")

    @pytest.mark.parametrize("raw,expected", [
        ("true", True), ("YES", True), ("1", True), ("on", True),
        ("false", False), ("No", False), ("0", False), ("off", False),
    ])
    def test_safe_bool(self, monkeypatch, raw, expected):
        monkeypatch.setenv("TEST_BOOL", raw)
        assert _safe_bool("TEST_BOOL", "false") is expected

    def test_safe_bool_rejects_garbage(self, monkeypatch):
        monkeypatch.setenv("TEST_BOOL", "maybe")
        with pytest.raises(ValueError, match="TEST_BOOL"):
            _safe_bool("TEST_BOOL", "true")
