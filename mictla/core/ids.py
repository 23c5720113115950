from __future__ import annotations

import os
import secrets
import time
from typing import List

_CROCKFORD32 = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
_INVITE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
INVITE_CODE_LENGTH = 8


def _encode_crockford(value: int, length: int) -> str:
    chars: List[str] = []
    for _ in range(length):
        chars.append(_CROCKFORD32[value & 31])
        value >>= 5
    return "".join(reversed(chars))


def new_ulid() -> str:
    # 48-bit time (ms) + 80-bit randomness
    ms = int(time.time() * 1000) & ((1 << 48) - 1)
    rnd = int.from_bytes(os.urandom(10), "big")
    v = (ms << 80) | rnd
    return _encode_crockford(v, 26)


def new_id(prefix: str) -> str:
    """Entity id like ``memorial_01J...``; sorts by creation time within a prefix."""
    return f"{prefix}_{new_ulid()}"


def new_invite_code() -> str:
    return "".join(secrets.choice(_INVITE_ALPHABET) for _ in range(INVITE_CODE_LENGTH))


def new_user_id() -> str:
    return new_id("user")
