from __future__ import annotations

import hashlib

# Fixed prefix kept stable so user files written by earlier deployments still match.
HASH_PREFIX = "MakeThisALittleBitLongerToChewOnEarlFoo"

# 32bit Mifare ids are 8 hex chars; this imposes a minimum 'strength' on PINs.
DEFAULT_MIN_CODE_LENGTH = 6


def hash_auth_code(plain: str) -> str:
    """
    One-way key for a raw PIN or card id.

    This does not protect against brute force: PINs are short and older cards
    only carry 32bit ids, so anyone with the user file and some CPU can
    recover codes. It only avoids revealing a code (or its length) to someone
    browsing the file.
    """
    h = hashlib.md5(usedforsecurity=False)
    h.update((HASH_PREFIX + str(plain)).encode("utf-8"))
    return h.hexdigest()


def has_minimal_code_requirements(code: str, min_length: int = DEFAULT_MIN_CODE_LENGTH) -> bool:
    return code is not None and len(code) >= int(min_length)
