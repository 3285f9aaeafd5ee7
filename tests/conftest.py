from __future__ import annotations

import pytest

from doorkeeper.core.authenticator import FileBasedAuthenticator

from .helpers.fakes import FakeClock
from .helpers.users import default_users, write_user_file


@pytest.fixture
def user_file(tmp_path):
    """
    Default population plus a few lines the loader must skip.
    """
    return write_user_file(
        str(tmp_path / "users.csv"),
        default_users(),
        extra_lines=[
            "too,short",
            "Nobody,wizard,,,,,d41d8cd98f00b204e9800998ecf8427e",
            "No Codes,member,,,,,",
        ],
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def auth(user_file, clock):
    return FileBasedAuthenticator(user_file, clock=clock)
