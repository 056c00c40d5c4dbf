"""
security helpers:
- Argon2 password hashing via argon2-cffi
- Role normalisation for the closed {user, admin} set
"""
from __future__ import annotations

import uuid
from functools import lru_cache
from typing import Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

ROLE_USER = "user"
ROLE_ADMIN = "admin"
ROLES = (ROLE_USER, ROLE_ADMIN)

ph = PasswordHasher()


def hash_password(password: str) -> str:
    """Hash a plaintext password using Argon2
    """
    return ph.hash(password)


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    """ Verify a plaintext password using argon2.
    Accounts created through an identity provider have no hash and never match.
    """
    if not password_hash:
        return False
    try:
        return ph.verify(password_hash, password)
    except (VerificationError, InvalidHashError):
        return False


@lru_cache(maxsize=1)
def decoy_hash() -> str:
    """Hash of a random secret. Logins without a real hash verify against it,
    so every failed attempt costs one argon2 verify."""
    return ph.hash(uuid.uuid4().hex)


def needs_rehash(password_hash: str) -> bool:
    return ph.check_needs_rehash(password_hash)


def normalize_role(value) -> str:
    if isinstance(value, str) and value.strip().lower() in ROLES:
        return value.strip().lower()
    return ROLE_USER
