"""Primary keys and tokens."""

from __future__ import annotations

import os
import secrets
import string
import time
import uuid

_KEY_ALPHABET = string.ascii_uppercase + string.digits


def prefixed_key(prefix: str, length: int = 8) -> str:
    """Short readable key for tenants and users, e.g. CO-7Q2M0ZKD."""
    body = "".join(secrets.choice(_KEY_ALPHABET) for _ in range(length))
    return f"{prefix}-{body}" if prefix else body


def company_key() -> str:
    return prefixed_key("CO")


def user_key() -> str:
    return prefixed_key("USR")


def security_event_key() -> str:
    return prefixed_key("SEC", 12)


def generate_uuid7() -> str:
    """
    Time-ordered UUIDv7 for audit rows, so newest-first listings follow
    the primary key: 48-bit ms timestamp, version nibble 7, random tail.
    """
    raw = bytearray(int(time.time() * 1000).to_bytes(6, "big") + os.urandom(10))
    raw[6] = (raw[6] & 0x0F) | 0x70
    raw[8] = (raw[8] & 0x3F) | 0x80
    return str(uuid.UUID(bytes=bytes(raw)))


def generate_public_token() -> str:
    return str(uuid.uuid4())


def is_uuid(value: object) -> bool:
    """True for a canonical 36-character UUID string (public link tokens)."""
    text = str(value or "").strip()
    if len(text) != 36:
        return False
    try:
        uuid.UUID(text)
    except ValueError:
        return False
    return True
