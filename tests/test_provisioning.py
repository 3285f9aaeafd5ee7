from __future__ import annotations

import datetime as dt
import os
import threading

from doorkeeper.core.authenticator import FileBasedAuthenticator
from doorkeeper.core.identity.hashing import hash_auth_code
from doorkeeper.core.identity.models import Level, Target, User
from doorkeeper.core.identity.store import CredentialStore

from .helpers.users import (
    EXPIRED_MEMBER_CODE,
    FULLTIME_CODE,
    MEMBER_CODE,
    REGULAR_CODE,
    build_user,
    bump_mtime,
    default_users,
    write_user_file,
)


def _read(path: str) -> str:
    with open(path, encoding="utf-8") as f:
        return f.read()


def test_member_adds_user(auth, clock, user_file):
    before = _read(user_file)
    candidate = build_user("Nina New", Level.user, "13579246", contact_info="nina@example.org")

    assert auth.add_new_user(MEMBER_CODE, candidate) == (True, "")

    added = auth.find_user("13579246")
    assert added.name == "Nina New"
    assert added.sponsors == [hash_auth_code(MEMBER_CODE)]
    assert added.valid_from == clock.now()
    # append only
    after = _read(user_file)
    assert after.startswith(before)
    assert "Nina New" in after[len(before):]
    assert "13579246" not in after


def test_added_user_can_open_doors(auth, clock):
    auth.add_new_user(MEMBER_CODE, build_user("Nina New", Level.user, "13579246"))
    clock.advance(hours=1)
    assert auth.auth_user("13579246", Target.gate) == (True, "")


def test_added_user_survives_restart(auth, user_file, clock):
    auth.add_new_user(MEMBER_CODE, build_user("Nina New", Level.user, "13579246"))
    fresh = FileBasedAuthenticator(user_file, clock=clock)
    u = fresh.find_user("13579246")
    assert u.name == "Nina New"
    assert u.sponsors == [hash_auth_code(MEMBER_CODE)]


def test_caller_candidate_not_mutated(auth):
    candidate = build_user("Nina New", Level.user, "13579246")
    auth.add_new_user(MEMBER_CODE, candidate)
    assert candidate.sponsors == []
    assert candidate.valid_from is None


def test_explicit_valid_from_is_kept(auth):
    start = dt.datetime(2024, 6, 1, tzinfo=dt.timezone.utc)
    auth.add_new_user(MEMBER_CODE, build_user("Later", Level.user, "13579246", valid_from=start))
    assert auth.find_user("13579246").valid_from == start


def test_sponsor_stamp_overrides_caller_sponsors(auth):
    candidate = build_user("Nina New", Level.user, "13579246")
    candidate.sponsors = ["forged"]
    auth.add_new_user(MEMBER_CODE, candidate)
    assert auth.find_user("13579246").sponsors == [hash_auth_code(MEMBER_CODE)]


def test_duplicate_code_rejected_and_store_unchanged(auth, user_file):
    assert auth.add_new_user(MEMBER_CODE, build_user("Nina New", Level.user, "13579246"))[0] is True
    file_after_first = _read(user_file)

    again = build_user("Copy Cat", Level.member, "97531864", "13579246")
    assert auth.add_new_user(MEMBER_CODE, again) == (False, "Duplicate codes while adding user")

    assert auth.find_user("13579246").name == "Nina New"
    assert auth.find_user("97531864") is None
    assert _read(user_file) == file_after_first


def test_duplicate_of_existing_user_rejected(auth):
    ok, reason = auth.add_new_user(MEMBER_CODE, build_user("Copy Cat", Level.user, REGULAR_CODE))
    assert (ok, reason) == (False, "Duplicate codes while adding user")
    assert auth.find_user(REGULAR_CODE).name == "Rae Regular"


def test_unknown_sponsor(auth):
    assert auth.add_new_user("ZZZZZZZZ", build_user("X", Level.user, "13579246")) == (
        False,
        "Couldn't find member with authentication code",
    )
    assert auth.find_user("13579246") is None


def test_non_member_cannot_sponsor(auth):
    assert auth.add_new_user(FULLTIME_CODE, build_user("X", Level.user, "13579246")) == (False, "Non-member AddNewUser attempt")
    assert auth.find_user("13579246") is None


def test_expired_member_cannot_sponsor(auth):
    ok, reason = auth.add_new_user(EXPIRED_MEMBER_CODE, build_user("X", Level.user, "13579246"))
    assert (ok, reason) == (False, "Auth-Member not in valid time-frame")


def test_candidate_without_codes_rejected(auth, user_file):
    before = _read(user_file)
    assert auth.add_new_user(MEMBER_CODE, User(name="Empty", level=Level.user)) == (False, "New user has no codes")
    assert _read(user_file) == before


def test_self_write_does_not_force_reload(auth, monkeypatch):
    auth.add_new_user(MEMBER_CODE, build_user("Nina New", Level.user, "13579246"))

    def _no_reload():
        raise AssertionError("self-write treated as external change")

    monkeypatch.setattr(auth.store, "_read_table", _no_reload)
    assert auth.auth_user("13579246", Target.gate)[0] is True


def test_persistence_failure_reported_but_memory_kept(auth, user_file):
    os.remove(user_file)
    ok, reason = auth.add_new_user(MEMBER_CODE, build_user("Nina New", Level.user, "13579246"))
    assert ok is False
    assert "No such file" in reason or "users.csv" in reason
    # no rollback: the in-memory insert stands until the next successful reload
    assert auth.find_user("13579246") is not None


def test_provisioning_sees_external_edits(auth, user_file):
    write_user_file(user_file, default_users() + [build_user("Outside", Level.user, "13579246")])
    bump_mtime(user_file)
    ok, reason = auth.add_new_user(MEMBER_CODE, build_user("Nina New", Level.user, "13579246"))
    assert (ok, reason) == (False, "Duplicate codes while adding user")


def test_concurrent_provisioning_disjoint_codes(auth, user_file):
    results = []
    lock = threading.Lock()
    barrier = threading.Barrier(8)

    def add(i: int):
        barrier.wait()
        r = auth.add_new_user(MEMBER_CODE, build_user(f"Batch {i}", Level.user, f"9{i:07d}"))
        with lock:
            results.append(r)

    threads = [threading.Thread(target=add, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)

    assert results == [(True, "")] * 8
    reloaded = CredentialStore(user_file)
    for i in range(8):
        assert reloaded.lookup(f"9{i:07d}").name == f"Batch {i}"


def test_awkward_names_survive_restart(auth, user_file, clock):
    for i, name in enumerate(["Smith, Jane", 'Ann "The Key" Lee', "Lee #2"]):
        assert auth.add_new_user(MEMBER_CODE, build_user(name, Level.user, f"9090909{i}")) == (True, "")
    fresh = FileBasedAuthenticator(user_file, clock=clock)
    assert fresh.find_user("90909090").name == "Smith, Jane"
    assert fresh.find_user("90909091").name == 'Ann "The Key" Lee'
    assert fresh.find_user("90909092").name == "Lee #2"


def test_stamped_valid_from_survives_restart(auth, user_file, clock):
    clock.set(dt.datetime(2024, 5, 1, 15, 0, 7, 654321, tzinfo=dt.timezone.utc))
    auth.add_new_user(MEMBER_CODE, build_user("Nina New", Level.user, "13579246"))
    in_memory = auth.find_user("13579246").valid_from
    fresh = FileBasedAuthenticator(user_file, clock=clock)
    assert fresh.find_user("13579246").valid_from == in_memory == clock.now()
    # a restart at the same instant must not lock the new user out
    assert fresh.auth_user("13579246", Target.gate) == (True, "")
