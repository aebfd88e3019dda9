"""Bcrypt password hasher adapter."""

from __future__ import annotations

import hashlib
import logging

import bcrypt

from terminator_quiz.application.ports.password_hasher_port import (
    HashingFailureError,
    PasswordHasherPort,
)

DEFAULT_BCRYPT_ROUNDS = 12
MIN_BCRYPT_ROUNDS = 4
MAX_BCRYPT_ROUNDS = 31
logger = logging.getLogger(__name__)


class BcryptPasswordHasher(PasswordHasherPort):
    """Password hashing adapter using bcrypt with a SHA-256 pre-hash."""

    def __init__(self, *, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> None:
        if not MIN_BCRYPT_ROUNDS <= rounds <= MAX_BCRYPT_ROUNDS:
            raise ValueError(
                f"bcrypt rounds must be between {MIN_BCRYPT_ROUNDS} and {MAX_BCRYPT_ROUNDS}"
            )
        self._rounds = rounds

    def hash_password(self, password: str) -> str:
        try:
            salt = bcrypt.gensalt(rounds=self._rounds)
            return bcrypt.hashpw(_prehash(password), salt).decode("utf-8")
        except (OSError, RuntimeError, ValueError) as exc:
            logger.error("password_hash_failed error=%s", type(exc).__name__)
            raise HashingFailureError("unable to hash password") from exc

    def verify_password(self, *, password: str, password_hash: str) -> bool:
        try:
            return bcrypt.checkpw(_prehash(password), password_hash.encode("utf-8"))
        except ValueError:
            return False


def _prehash(password: str) -> bytes:
    # bcrypt only reads the first 72 bytes; the hex digest is always 64.
    return hashlib.sha256(password.encode("utf-8", "surrogatepass")).hexdigest().encode("ascii")
