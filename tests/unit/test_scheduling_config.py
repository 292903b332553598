"""Tests for meetsync/config_models.py"""

from pathlib import Path

import pytest

from meetsync.config_models import (
    DEFAULT_CONFIG_FILE,
    PermissionsConfig,
    SchedulingConfig,
    UsersConfig,
    load_and_validate,
)


class TestSchedulingConfig:
    def test_defaults(self):
        config = SchedulingConfig()
        assert config.permissions.once_expiry_days == 7
        assert config.permissions.user_request_expiry_days == 7
        assert config.permissions.email_request_expiry_days == 30
        assert "gmail.com" in config.permissions.personal_domains
        assert config.calendar.default_buffer_minutes == 30
        assert config.users.default_rule_days == [0, 1, 2, 3, 4]

    def test_valid_overrides(self):
        config = SchedulingConfig(
            permissions={"once_expiry_days": 3},
            calendar={"default_buffer_minutes": 0, "fetch_timeout_seconds": 2.5},
        )
        assert config.permissions.once_expiry_days == 3
        assert config.calendar.default_buffer_minutes == 0
        assert config.calendar.fetch_timeout_seconds == 2.5

    def test_extra_keys_allowed(self):
        config = SchedulingConfig(calendar={"provider": "google", "colour": "blue"})
        assert config.calendar.provider == "google"

    def test_invalid_expiry_rejected(self):
        with pytest.raises(ValueError):
            PermissionsConfig(once_expiry_days=0)

    def test_personal_domains_normalized(self):
        config = PermissionsConfig(personal_domains=[" @GMail.com ", "", "proton.me"])
        assert config.personal_domains == ["gmail.com", "proton.me"]

    def test_weekday_out_of_range(self):
        with pytest.raises(ValueError):
            UsersConfig(default_rule_days=[0, 7])

    def test_bad_rule_clock(self):
        with pytest.raises(ValueError):
            UsersConfig(default_rule_start="9am")


class TestLoadAndValidate:
    def test_shipped_config_loads(self):
        assert DEFAULT_CONFIG_FILE.exists()
        config = load_and_validate()
        assert config.permissions.email_request_expiry_days == 30
        assert config.users.default_rule_start == "09:00"

    def test_missing_file_uses_defaults(self, tmp_path: Path):
        config = load_and_validate(tmp_path / "nope.yaml")
        assert config == SchedulingConfig()

    def test_top_level_section_is_optional(self, tmp_path: Path):
        path = tmp_path / "scheduling.yaml"
        path.write_text("permissions:\n  once_expiry_days: 2\n")

        assert load_and_validate(path).permissions.once_expiry_days == 2

    def test_nested_under_scheduling(self, tmp_path: Path):
        path = tmp_path / "scheduling.yaml"
        path.write_text("scheduling:\n  calendar:\n    default_buffer_minutes: 10\n")

        assert load_and_validate(path).calendar.default_buffer_minutes == 10

    def test_invalid_values_fall_back_to_defaults(self, tmp_path: Path):
        path = tmp_path / "scheduling.yaml"
        path.write_text("scheduling:\n  permissions:\n    once_expiry_days: -4\n")

        assert load_and_validate(path).permissions.once_expiry_days == 7
