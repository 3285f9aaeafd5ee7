"""
CSV codec for the user file.

One record per line:

    name,level,contact,valid_from,valid_to,sponsors,code[,code...]

Timestamps are ISO-8601 (empty = unset), sponsors are space separated, codes
are already hashed. Lines starting with '#' are comments.
"""

from __future__ import annotations

import csv
import datetime as dt
import os
from dataclasses import dataclass
from typing import Iterator, List, Optional

from pydantic import ValidationError

from doorkeeper.core.identity.models import Level, User

MIN_FIELDS = 7


@dataclass(frozen=True)
class ParsedLine:
    line_no: int
    user: Optional[User]
    skipped_reason: Optional[str] = None


def _parse_ts(raw: str) -> Optional[dt.datetime]:
    raw = raw.strip()
    if not raw:
        return None
    return dt.datetime.fromisoformat(raw)


def _format_ts(ts: Optional[dt.datetime]) -> str:
    return ts.isoformat() if ts is not None else ""


def parse_row(row: List[str]) -> User:
    """Raises ValueError on anything that does not describe a usable record."""
    if len(row) < MIN_FIELDS:
        raise ValueError(f"short line ({len(row)} fields)")
    name, level, contact, valid_from, valid_to, sponsors = (c.strip() for c in row[:6])
    codes = [c.strip() for c in row[6:] if c.strip()]
    if not codes:
        raise ValueError("no codes")
    try:
        lvl = Level(level.lower())
    except ValueError:
        raise ValueError(f"unknown level '{level}'") from None
    try:
        return User(
            name=name,
            level=lvl,
            contact_info=contact,
            valid_from=_parse_ts(valid_from),
            valid_to=_parse_ts(valid_to),
            sponsors=sponsors.split(),
            codes=codes,
        )
    except ValidationError as e:
        raise ValueError(f"invalid record: {e.error_count()} error(s)") from None


def format_row(user: User) -> List[str]:
    return [
        user.name,
        user.level.value,
        user.contact_info,
        _format_ts(user.valid_from),
        _format_ts(user.valid_to),
        " ".join(user.sponsors),
        *user.codes,
    ]


def _is_utf8(row: List[str]) -> bool:
    try:
        for cell in row:
            cell.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def iter_user_file(path: str) -> Iterator[ParsedLine]:
    """
    Yield every non-blank line of the file. Comments and malformed lines
    (including bytes that are not UTF-8) carry `user=None` and a reason
    instead of raising; open/read errors propagate.
    """
    # undecodable bytes survive as lone surrogates; such rows are skipped below
    with open(path, "r", encoding="utf-8", errors="surrogateescape", newline="") as f:
        reader = csv.reader(f)
        while True:
            try:
                row = next(reader)
            except StopIteration:
                return
            except csv.Error as e:
                yield ParsedLine(line_no=reader.line_num, user=None, skipped_reason=f"unparsable: {e}")
                continue
            line_no = reader.line_num
            if not row or not "".join(row).strip():
                continue
            if not _is_utf8(row):
                yield ParsedLine(line_no=line_no, user=None, skipped_reason="not valid UTF-8")
                continue
            if row[0].lstrip().startswith("#"):
                yield ParsedLine(line_no=line_no, user=None, skipped_reason="comment")
                continue
            try:
                yield ParsedLine(line_no=line_no, user=parse_row(row))
            except ValueError as e:
                yield ParsedLine(line_no=line_no, user=None, skipped_reason=str(e))


def _ends_without_newline(path: str) -> bool:
    with open(path, "rb") as f:
        f.seek(0, os.SEEK_END)
        if f.tell() == 0:
            return False
        f.seek(-1, os.SEEK_END)
        return f.read(1) != b"\n"


def append_user(path: str, user: User) -> None:
    """Append-only: existing lines are never rewritten."""
    if not os.path.exists(path):
        raise FileNotFoundError(path)
    lead = "\n" if _ends_without_newline(path) else ""
    with open(path, "a", encoding="utf-8", newline="") as f:
        f.write(lead)
        csv.writer(f, lineterminator="\n").writerow(format_row(user))
