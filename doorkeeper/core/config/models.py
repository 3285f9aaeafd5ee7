from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from doorkeeper.core.identity.hashing import DEFAULT_MIN_CODE_LENGTH
from doorkeeper.core.identity.models import Target
from doorkeeper.core.logger import LOG_LEVELS


class HourWindow(BaseModel):
    """Half-open range of local hours: start <= hour < end."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    start: int = Field(ge=0, le=23)
    end: int = Field(ge=1, le=24)

    @model_validator(mode="after")
    def _ordered(self) -> "HourWindow":
        if self.start >= self.end:
            raise ValueError("start must be before end")
        return self

    def contains(self, hour: int) -> bool:
        return self.start <= hour < self.end


class PolicyConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    fulltime_user_hours: HourWindow = HourWindow(start=7, end=24)
    regular_user_hours: HourWindow = HourWindow(start=11, end=22)
    legacy_hours: HourWindow = HourWindow(start=11, end=22)
    legacy_target: Target = Target.downstairs


class AuditConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    path: str = "logs/access.jsonl"


class DoorkeeperConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    config_version: int = Field(default=1, ge=1)
    user_file: str = "users.csv"
    min_code_length: int = Field(default=DEFAULT_MIN_CODE_LENGTH, ge=1, le=64)
    timezone: Optional[str] = None  # IANA name; None = host local time
    log_dir: str = "logs"
    log_level: str = "INFO"
    policy: PolicyConfig = Field(default_factory=PolicyConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown timezone '{v}'") from e
        return v

    @field_validator("log_level")
    @classmethod
    def _known_log_level(cls, v: str) -> str:
        name = v.strip().upper()
        if name not in LOG_LEVELS:
            raise ValueError(f"unknown log level '{v}'")
        return name
