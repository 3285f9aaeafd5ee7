from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Any, Tuple

from doorkeeper.core.config.models import PolicyConfig
from doorkeeper.core.identity.models import Level, Target


@dataclass(frozen=True)
class AccessPolicy:
    """
    Level + target + local hour -> (granted, reason).

    Pure: no I/O, no clock of its own. Anything not matched explicitly below
    is denied.
    """

    cfg: PolicyConfig = field(default_factory=PolicyConfig)

    def decide(self, level: Any, target: Any, now: dt.datetime) -> Tuple[bool, str]:
        hour = now.hour

        if level == Level.member:
            return True, ""

        if level == Level.fulltime_user:
            if not self.cfg.fulltime_user_hours.contains(hour):
                return False, "Fulltime user outside daytime"
            return True, ""

        if level == Level.user:
            if not self.cfg.regular_user_hours.contains(hour):
                return False, "Regular user outside daytime"
            return True, ""

        if level == Level.hiatus:
            return False, "On hiatus"

        if level == Level.legacy:
            if not self.cfg.legacy_hours.contains(hour):
                return False, "Legacy user outside daytime"
            if _as_target(target) != self.cfg.legacy_target:
                return False, f"Legacy user limited to {self.cfg.legacy_target.value}"
            return True, ""

        return False, "Unknown user level"


def _as_target(target: Any) -> Any:
    try:
        return Target(target)
    except ValueError:
        return None
