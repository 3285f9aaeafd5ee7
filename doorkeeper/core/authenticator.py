from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from typing import Optional, Tuple

from doorkeeper.core.audit import AccessAuditLogger
from doorkeeper.core.clock import Clock, RealClock
from doorkeeper.core.config.models import DoorkeeperConfig
from doorkeeper.core.identity.hashing import DEFAULT_MIN_CODE_LENGTH, has_minimal_code_requirements, hash_auth_code
from doorkeeper.core.identity.models import Level, Target, User
from doorkeeper.core.identity.store import CredentialStore
from doorkeeper.core.logger import get_logger
from doorkeeper.core.policy.access import AccessPolicy
from doorkeeper.core.trace import trace_context


class Authenticator(ABC):
    @abstractmethod
    def auth_user(self, code: str, target: Target) -> Tuple[bool, str]:
        """Is the holder of `code` allowed to open `target` right now?"""

    @abstractmethod
    def add_new_user(self, sponsor_code: str, user: User) -> Tuple[bool, str]:
        """Add `user`, vouched for by the member holding `sponsor_code`. Persists."""

    @abstractmethod
    def find_user(self, plain_code: str) -> Optional[User]:
        """Copy of the user holding `plain_code`, or None."""


class FileBasedAuthenticator(Authenticator):
    """
    Authenticator over a CSV user file.

    Public methods never raise: every outcome is an (ok, reason) pair. Only
    construction fails hard (UserFileError) when the user file is unusable.
    """

    def __init__(
        self,
        user_file: str,
        *,
        clock: Optional[Clock] = None,
        policy: Optional[AccessPolicy] = None,
        min_code_length: int = DEFAULT_MIN_CODE_LENGTH,
        logger: Optional[logging.Logger] = None,
        audit_logger: Optional[AccessAuditLogger] = None,
    ):
        self.logger = logger or get_logger("auth")
        self.clock = clock or RealClock()
        self.policy = policy or AccessPolicy()
        self.min_code_length = int(min_code_length)
        self.audit_logger = audit_logger
        self.store = CredentialStore(user_file, logger=self.logger)

    @classmethod
    def from_config(cls, cfg: DoorkeeperConfig, *, base_dir: str = ".", logger: Optional[logging.Logger] = None) -> "FileBasedAuthenticator":
        def _path(p: str) -> str:
            return p if os.path.isabs(p) else os.path.join(base_dir, p)

        audit = AccessAuditLogger(path=_path(cfg.audit.path)) if cfg.audit.enabled else None
        return cls(
            _path(cfg.user_file),
            clock=RealClock(cfg.timezone),
            policy=AccessPolicy(cfg.policy),
            min_code_length=cfg.min_code_length,
            logger=logger,
            audit_logger=audit,
        )

    # ---------- public API ----------
    def auth_user(self, code: str, target: Target) -> Tuple[bool, str]:
        with trace_context() as trace_id:
            ok, reason, user = self._check_access(code, target)
            who = user.name if user is not None else "-"
            if ok:
                self.logger.info("[%s] access granted to %s for %s", trace_id, _tag(target), who)
            else:
                self.logger.info("[%s] access denied to %s for %s: %s", trace_id, _tag(target), who, reason)
            self._audit(
                trace_id=trace_id,
                event="access.granted" if ok else "access.denied",
                outcome="granted" if ok else "denied",
                target=_tag(target),
                reason=reason,
                details={"user": who, "level": user.level.value if user is not None else None},
            )
            return ok, reason

    def add_new_user(self, sponsor_code: str, user: User) -> Tuple[bool, str]:
        with trace_context() as trace_id:
            ok, reason, sponsor_name = self._add_new_user(sponsor_code, user)
            if ok:
                self.logger.info("[%s] %s added '%s' (%s)", trace_id, sponsor_name, user.name, user.level.value)
            else:
                self.logger.warning("[%s] AddNewUser '%s' rejected: %s", trace_id, user.name, reason)
            self._audit(
                trace_id=trace_id,
                event="user.added" if ok else "user.add_rejected",
                outcome="ok" if ok else "rejected",
                reason=reason,
                details={"user": user.name, "level": user.level.value, "sponsor": sponsor_name},
            )
            return ok, reason

    def find_user(self, plain_code: str) -> Optional[User]:
        return self.store.lookup(plain_code)

    # ---------- internals ----------
    def _check_access(self, code: str, target: Target) -> Tuple[bool, str, Optional[User]]:
        if not has_minimal_code_requirements(code, self.min_code_length):
            return False, "Auth failed: too short code.", None
        self.store.reload_if_changed()
        user = self.store.lookup(code)
        if user is None:
            return False, "No user for code", None
        # Someone on leave showing up may be a stolen token: name them in the log.
        if user.level == Level.hiatus:
            return False, f"User on hiatus '{user.name} <{user.contact_info}>'", user
        now = self.clock.now()
        if not user.in_validity_period(now):
            return False, "Code not valid yet/expired", user
        ok, reason = self.policy.decide(user.level, target, now)
        return ok, reason, user

    def _add_new_user(self, sponsor_code: str, user: User) -> Tuple[bool, str, Optional[str]]:
        # check uniqueness against what is on disk now, not a stale snapshot
        self.store.reload_if_changed()
        sponsor = self.store.lookup(sponsor_code)
        if sponsor is None:
            return False, "Couldn't find member with authentication code", None
        if sponsor.level != Level.member:
            return False, "Non-member AddNewUser attempt", sponsor.name
        now = self.clock.now()
        if not sponsor.in_validity_period(now):
            return False, "Auth-Member not in valid time-frame", sponsor.name

        candidate = user.model_copy(deep=True)
        # single sponsor for now
        candidate.sponsors = [hash_auth_code(sponsor_code)]
        if candidate.valid_from is None:
            candidate.valid_from = now
        if not candidate.codes:
            return False, "New user has no codes", sponsor.name
        if not self.store.insert(candidate):
            return False, "Duplicate codes while adding user", sponsor.name

        # Not rolled back on failure: memory keeps the user until the next reload.
        try:
            self.store.append(candidate)
        except OSError as e:
            self.logger.error("Could not append '%s' to %s: %s", candidate.name, self.store.path, e)
            return False, str(e), sponsor.name
        return True, "", sponsor.name

    def _audit(self, **kwargs) -> None:
        if self.audit_logger is None:
            return
        try:
            self.audit_logger.log(**kwargs)
        except OSError as e:
            self.logger.warning("Audit log write failed: %s", e)


def _tag(target: object) -> str:
    return str(getattr(target, "value", target))
