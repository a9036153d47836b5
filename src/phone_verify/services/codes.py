"""One-time code generation and one-way hashing."""

from __future__ import annotations

import asyncio
import secrets

import bcrypt

CODE_LENGTH = 6
_CODE_MIN = 10 ** (CODE_LENGTH - 1)
_CODE_MAX = 10**CODE_LENGTH - 1


def generate_code() -> str:
    """Return a 6-digit code drawn uniformly from ``[100000, 999999]``."""
    return str(_CODE_MIN + secrets.randbelow(_CODE_MAX - _CODE_MIN + 1))


class CodeHasher:
    """Salted bcrypt hashing for codes and passwords.

    ``rounds`` is the bcrypt work factor.  Comparison goes through
    ``bcrypt.checkpw``, which compares in constant time.
    """

    def __init__(self, rounds: int = 10) -> None:
        self._rounds = rounds

    def hash(self, secret: str) -> str:
        salt = bcrypt.gensalt(rounds=self._rounds)
        return bcrypt.hashpw(secret.encode("utf-8"), salt).decode("ascii")

    def compare(self, secret: str, hashed: str) -> bool:
        try:
            return bcrypt.checkpw(secret.encode("utf-8"), hashed.encode("ascii"))
        except (ValueError, UnicodeEncodeError):
            # Not a bcrypt hash at all.
            return False

    # bcrypt is CPU-bound; keep it off the event loop.

    async def hash_async(self, secret: str) -> str:
        return await asyncio.to_thread(self.hash, secret)

    async def compare_async(self, secret: str, hashed: str) -> bool:
        return await asyncio.to_thread(self.compare, secret, hashed)
