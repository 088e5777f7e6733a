"""Password and refresh-token hashing helpers (argon2 via pwdlib)."""

from __future__ import annotations

import hashlib

from pwdlib import PasswordHash

_password_hash = PasswordHash.recommended()


def hash_password(password: str) -> str:
    """Hash ``password`` with the recommended argon2 parameters."""

    candidate = password.strip()
    if not candidate:
        msg = "Password must not be empty"
        raise ValueError(msg)

    return _password_hash.hash(candidate)


def verify_password(password: str, hashed: str) -> bool:
    """Return ``True`` if ``password`` matches ``hashed``."""

    if not hashed:
        return False
    return _password_hash.verify(password.strip(), hashed)


def hash_refresh_token(token: str) -> str:
    # Stored form of a refresh token; lookups digest the presented token the same way.
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


__all__ = ["hash_password", "verify_password", "hash_refresh_token"]
