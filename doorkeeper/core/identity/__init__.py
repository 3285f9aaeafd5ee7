from __future__ import annotations

"""
Identity records and the credential store.

Codes are hashed exactly once, where a raw credential enters: on lookup of a
presented code, and in `User.add_auth_code` for provisioned ones. The user
file only ever holds hashed keys.
"""

from doorkeeper.core.identity.hashing import has_minimal_code_requirements, hash_auth_code
from doorkeeper.core.identity.models import Level, Target, User
from doorkeeper.core.identity.store import CredentialStore, LoadResult

__all__ = [
    "CredentialStore",
    "LoadResult",
    "Level",
    "Target",
    "User",
    "has_minimal_code_requirements",
    "hash_auth_code",
]
