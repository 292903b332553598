from __future__ import annotations

import functools
import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from meetsync import CONFIG_PATH

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = CONFIG_PATH / "scheduling.yaml"

PERSONAL_EMAIL_DOMAINS = [
    "gmail.com",
    "yahoo.com",
    "hotmail.com",
    "outlook.com",
    "icloud.com",
    "aol.com",
    "protonmail.com",
    "mail.com",
    "zoho.com",
    "yandex.com",
    "live.com",
    "me.com",
    "msn.com",
]


# =============================================================================
# SchedulingConfig (args/scheduling.yaml)
# =============================================================================


class PermissionsConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    once_expiry_days: int = Field(default=7, ge=1)
    user_request_expiry_days: int = Field(default=7, ge=1)
    email_request_expiry_days: int = Field(default=30, ge=1)
    personal_domains: list[str] = Field(default_factory=lambda: list(PERSONAL_EMAIL_DOMAINS))

    @field_validator("personal_domains")
    @classmethod
    def _lowercase_domains(cls, value: list[str]) -> list[str]:
        return [d.strip().lower().lstrip("@") for d in value if d.strip()]


class CalendarConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    provider: str = Field(default="google")
    default_buffer_minutes: int = Field(default=30, ge=0)
    fetch_timeout_seconds: float = Field(default=10.0, gt=0)


class UsersConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    default_timezone: str = Field(default="America/New_York")
    default_rule_days: list[int] = Field(default_factory=lambda: [0, 1, 2, 3, 4])
    default_rule_start: str = Field(default="09:00", pattern=r"^\d{2}:\d{2}$")
    default_rule_end: str = Field(default="17:00", pattern=r"^\d{2}:\d{2}$")

    @field_validator("default_rule_days")
    @classmethod
    def _valid_weekdays(cls, value: list[int]) -> list[int]:
        for day in value:
            if not 0 <= day <= 6:
                raise ValueError(f"weekday out of range: {day}")
        return value


class SchedulingConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    permissions: PermissionsConfig = Field(default_factory=PermissionsConfig)
    calendar: CalendarConfig = Field(default_factory=CalendarConfig)
    users: UsersConfig = Field(default_factory=UsersConfig)


def load_and_validate(path: Path | None = None) -> SchedulingConfig:
    yaml_path = path or DEFAULT_CONFIG_FILE

    try:
        if yaml_path.exists():
            with open(yaml_path) as f:
                raw = yaml.safe_load(f) or {}
        else:
            raw = {}

        return SchedulingConfig.model_validate(raw.get("scheduling", raw))
    except Exception as e:
        logger.warning(f"Config validation failed for {yaml_path}: {e}, using defaults")
        return SchedulingConfig()


@functools.lru_cache(maxsize=1)
def get_config() -> SchedulingConfig:
    return load_and_validate()
