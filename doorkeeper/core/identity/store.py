from __future__ import annotations

import csv
import logging
import os
import threading
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from doorkeeper.core.errors import UserFileError
from doorkeeper.core.identity.hashing import hash_auth_code
from doorkeeper.core.identity.models import Level, User
from doorkeeper.core.identity.user_file import append_user, iter_user_file
from doorkeeper.core.logger import get_logger


@dataclass(frozen=True)
class LoadResult:
    total: int
    counts: Dict[Level, int] = field(default_factory=dict)
    skipped: int = 0


def _index(table: Dict[str, User], user: User) -> bool:
    """All-or-nothing: either every code of `user` is added or none is."""
    if any(code in table for code in user.codes):
        return False
    for code in user.codes:
        table[code] = user
    return True


class CredentialStore:
    """
    Hashed code -> User table backed by the user file.

    Every table access goes through `_lock`; file I/O never happens while
    holding it. Reload builds a fresh table and swaps it in, so readers see
    either the old snapshot or the new one. Lookups hand out copies.
    """

    def __init__(self, path: str, *, logger: Optional[logging.Logger] = None):
        self.path = path
        self.logger = logger or get_logger("store")
        self._lock = threading.Lock()
        self._append_lock = threading.Lock()
        self._users: Dict[str, User] = {}
        self._mtime_ns: Optional[int] = None
        if not path:
            raise UserFileError("User file not provided.")
        try:
            self.load()
        except (OSError, ValueError, csv.Error) as e:
            raise UserFileError("Could not read user file.", path=path, error=str(e)) from e

    # ---------- loading ----------
    def load(self) -> LoadResult:
        table, mtime_ns, result = self._read_table()
        with self._lock:
            self._users = table
            self._mtime_ns = mtime_ns
        return result

    def _read_table(self) -> Tuple[Dict[str, User], int, LoadResult]:
        # stat before reading: a concurrent edit leaves us with an older marker and one extra reload
        mtime_ns = os.stat(self.path).st_mtime_ns
        table: Dict[str, User] = {}
        counts: Dict[Level, int] = {}
        total = 0
        skipped = 0
        self.logger.info("Reading %s", self.path)
        for parsed in iter_user_file(self.path):
            user = parsed.user
            if user is None:
                if parsed.skipped_reason != "comment":
                    skipped += 1
                    self.logger.warning("%s:%d skipped: %s", self.path, parsed.line_no, parsed.skipped_reason)
                continue
            if not _index(table, user):
                skipped += 1
                self.logger.warning("%s:%d ignoring '%s': code already in use", self.path, parsed.line_no, user.name)
                continue
            counts[user.level] = counts.get(user.level, 0) + 1
            total += 1
        self.logger.info("Read %d users from %s", total, self.path)
        for level, count in counts.items():
            self.logger.info("%13s %4d", level.value, count)
        return table, mtime_ns, LoadResult(total=total, counts=counts, skipped=skipped)

    def reload_if_changed(self) -> bool:
        """
        Swap in a fresh snapshot if the file's mtime moved since the last load.
        Failures are logged; the current snapshot then stays authoritative.
        """
        try:
            mtime_ns = os.stat(self.path).st_mtime_ns
        except OSError as e:
            self.logger.warning("Cannot stat %s, keeping current users: %s", self.path, e)
            return False
        with self._lock:
            previous = self._mtime_ns
        if mtime_ns == previous:
            return False
        self.logger.info("Refreshing changed %s", self.path)
        try:
            table, new_mtime_ns, _ = self._read_table()
        except (OSError, ValueError, csv.Error) as e:
            self.logger.warning("Reload of %s failed, keeping current users: %s", self.path, e)
            return False
        with self._lock:
            self._users = table
            self._mtime_ns = new_mtime_ns
        return True

    # ---------- table access ----------
    def lookup(self, plain_code: str) -> Optional[User]:
        return self.lookup_hashed(hash_auth_code(plain_code))

    def lookup_hashed(self, key: str) -> Optional[User]:
        with self._lock:
            user = self._users.get(key)
            return user.model_copy(deep=True) if user is not None else None

    def insert(self, user: User) -> bool:
        own = user.model_copy(deep=True)
        with self._lock:
            ok = _index(self._users, own)
        if not ok:
            self.logger.info("Rejecting '%s': code already in use", user.name)
        return ok

    def append(self, user: User) -> None:
        """
        Persist one record at the end of the file. Raises OSError on failure.

        The recorded mtime only follows our own write when nobody else touched
        the file since the last load; otherwise the next reload picks both up.
        """
        with self._append_lock:
            before = os.stat(self.path).st_mtime_ns
            append_user(self.path, user)
            after = os.stat(self.path).st_mtime_ns
            with self._lock:
                if self._mtime_ns == before:
                    self._mtime_ns = after

    def counts(self) -> Dict[Level, int]:
        with self._lock:
            distinct = {id(u): u for u in self._users.values()}
        out: Dict[Level, int] = {}
        for u in distinct.values():
            out[u.level] = out.get(u.level, 0) + 1
        return out

    def __len__(self) -> int:
        with self._lock:
            return len({id(u) for u in self._users.values()})
