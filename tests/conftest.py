"""
tests/conftest.py -- Shared fixtures for the Gatekeeper test suite.

This module provides:
  - hasher: a PasswordHasher at bcrypt's minimum cost so tests stay fast
  - store: an InMemoryCredentialStore seeded with the demo accounts
  - sql_store: an in-memory SQLite SqlCredentialStore
  - FakeClock / clock: a manually advanced clock for session expiry tests
  - service: an AuthenticationService over the seeded in-memory store

Cost 4 is far too cheap for production; it only keeps bcrypt out of the
way in tests. Nothing here depends on the environment or a .env file.
"""

from __future__ import annotations

from collections.abc import Generator

import pytest

from auth.passwords import PasswordHasher
from auth.service import AuthConfig, AuthenticationService
from auth.sessions import SessionRegistry
from auth.store import InMemoryCredentialStore, SqlCredentialStore, demo_users

TEST_ROUNDS = 4


class FakeClock:
    """Callable clock that only moves when advance() is called."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(scope="session")
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=TEST_ROUNDS)


@pytest.fixture
def store(hasher) -> InMemoryCredentialStore:
    """user1 (ADMIN) and user2 (USER), both with password 1234."""
    return InMemoryCredentialStore(demo_users(hasher))


@pytest.fixture
def sql_store() -> Generator[SqlCredentialStore, None, None]:
    s = SqlCredentialStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config() -> AuthConfig:
    return AuthConfig(bcrypt_rounds=TEST_ROUNDS)


@pytest.fixture
def service(store, config, hasher, clock) -> AuthenticationService:
    sessions = SessionRegistry(
        max_concurrent_sessions=config.max_concurrent_sessions,
        block_new_on_exceed=config.block_new_on_exceed,
        timeout_seconds=config.session_timeout_seconds,
        clock=clock,
    )
    return AuthenticationService(store, config, hasher=hasher, sessions=sessions)
