from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from doorkeeper.core.identity.hashing import hash_auth_code


class Level(str, Enum):
    member = "member"
    fulltime_user = "fulltime_user"
    user = "user"
    hiatus = "hiatus"
    legacy = "legacy"


class Target(str, Enum):
    gate = "gate"
    upstairs = "upstairs"
    downstairs = "downstairs"
    elevator = "elevator"


class User(BaseModel):
    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    name: str = Field(min_length=1, max_length=200)
    contact_info: str = ""
    level: Level
    codes: List[str] = Field(default_factory=list)  # hashed
    valid_from: Optional[dt.datetime] = None
    valid_to: Optional[dt.datetime] = None
    sponsors: List[str] = Field(default_factory=list)  # hashed codes of sponsors

    @field_validator("name")
    @classmethod
    def _storable_name(cls, v: str) -> str:
        # the user file reads '#'-led lines as comments
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        if v.startswith("#"):
            raise ValueError("name must not start with '#'")
        return v

    @field_validator("valid_from", "valid_to")
    @classmethod
    def _assume_utc(cls, v: Optional[dt.datetime]) -> Optional[dt.datetime]:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=dt.timezone.utc)
        return v

    def add_auth_code(self, plain: str) -> str:
        """Hash a raw credential and attach it. Returns the stored key."""
        key = hash_auth_code(plain)
        self.codes = [*self.codes, key]
        return key

    def in_validity_period(self, now: dt.datetime) -> bool:
        if self.valid_from is not None and now < self.valid_from:
            return False
        if self.valid_to is not None and now >= self.valid_to:
            return False
        return True
