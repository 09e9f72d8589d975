"""
auth/passwords.py -- bcrypt password hashing.

Security design decisions:
  bcrypt is used directly (no passlib wrapper). passlib's wrap-bug detection
  builds a password longer than 72 bytes, which bcrypt 4.x rejects outright.

  The cost factor (rounds) is tunable per PasswordHasher. Each +1 doubles the
  work; the default of 10 keeps a verify well under a second on commodity
  hardware. Tests use 4, the bcrypt minimum.

  bcrypt only reads the first 72 bytes of its input. hash() refuses longer
  plaintexts rather than storing a digest that silently ignores the tail.

  dummy_verify() runs a full verify against a digest computed once at
  construction. The login flow calls it for unknown usernames so response
  time does not reveal whether a username exists.

Nothing in this module logs a plaintext or a digest.

Layer rule: no imports from core/ or main.py.
"""

from __future__ import annotations

import bcrypt

from auth.errors import ConfigurationError

DEFAULT_ROUNDS = 10
MIN_ROUNDS = 4
MAX_ROUNDS = 31

# bcrypt ignores input past this many bytes.
MAX_PASSWORD_BYTES = 72


class PasswordHasher:
    """One-way adaptive hash + verify.

    Usage:
        hasher = PasswordHasher(rounds=12)
        digest = hasher.hash("s3cret")
        hasher.verify("s3cret", digest)   # True
    """

    def __init__(self, rounds: int = DEFAULT_ROUNDS) -> None:
        if not MIN_ROUNDS <= rounds <= MAX_ROUNDS:
            raise ConfigurationError(f"bcrypt rounds must be between {MIN_ROUNDS} and {MAX_ROUNDS}, got {rounds}")
        self.rounds = rounds
        # Same cost as a real hash, so the unknown-user path costs the same.
        self._dummy_hash = self.hash("gatekeeper_timing_dummy")

    def hash(self, plaintext: str) -> str:
        """Return a salted bcrypt digest. Two calls on the same input differ."""
        raw = plaintext.encode("utf-8")
        if len(raw) > MAX_PASSWORD_BYTES:
            raise ValueError(f"password exceeds {MAX_PASSWORD_BYTES} bytes")
        return bcrypt.hashpw(raw, bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plaintext: str, digest: str) -> bool:
        """Return True if plaintext hashes to digest under digest's own salt.

        A malformed digest or an over-long plaintext verifies False instead of
        raising, so callers can treat every failure as a credential mismatch.
        """
        raw = plaintext.encode("utf-8")
        if len(raw) > MAX_PASSWORD_BYTES:
            return False
        try:
            return bcrypt.checkpw(raw, digest.encode("utf-8"))
        except ValueError:
            return False

    def dummy_verify(self, plaintext: str) -> None:
        """Burn one verify's worth of CPU. Result is always discarded."""
        self.verify(plaintext, self._dummy_hash)
