"""
auth/service.py -- AuthenticationService: login, authorize, logout, register.

Login flow:
  1. Look the username up in the CredentialStore.
  2. Verify the password with bcrypt. An unknown username still pays for one
     verify (PasswordHasher.dummy_verify), so timing and result are the same
     as for a wrong password. Both return INVALID_CREDENTIALS.
  3. Check AccountStatus (only after the password matched, so a disabled
     account is not revealed to someone without its password).
  4. Ask the SessionRegistry for a slot. A rejected admission returns
     SESSION_LIMIT_EXCEEDED.

No session state is written before step 4. A caller-supplied deadline
(time.monotonic() value) is checked before hashing and again before step 4,
so a login abandoned mid-hash commits nothing.

Authorize flow: session id -> Session (or unauthenticated) -> role closure
via RoleHierarchy -> AccessDecisionEngine.decide().

Store failures (StoreUnavailableError) become SERVICE_UNAVAILABLE results.
Nothing here logs a password or a hash.

Layer rule: may import from core.config (kernel) for the Settings type only.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from auth.errors import ConfigurationError, DuplicateUsernameError, StoreUnavailableError
from auth.hierarchy import RoleHierarchy, normalize_role
from auth.models import (
    AuthorizationRule,
    Decision,
    LoginOutcome,
    LoginResult,
    Principal,
    RegistrationOutcome,
    Requirement,
    User,
)
from auth.passwords import DEFAULT_ROUNDS, MAX_ROUNDS, MIN_ROUNDS, PasswordHasher
from auth.rules import AccessDecisionEngine, authenticated, default_rules, has_any_role, permit_all
from auth.sessions import DEFAULT_TIMEOUT_SECONDS, SessionRegistry
from auth.store import CredentialStore

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("gatekeeper.auth")

_RULE_BUILDERS = {
    "permit_all": lambda s: permit_all(*s.patterns),
    "authenticated": lambda s: authenticated(*s.patterns),
    "has_any_role": lambda s: has_any_role(s.roles, *s.patterns),
}


@dataclass(frozen=True)
class AuthConfig:
    """Everything the core needs at startup, passed once to AuthenticationService."""

    rules: Sequence[AuthorizationRule] = field(default_factory=default_rules)
    hierarchy: RoleHierarchy = field(default_factory=lambda: RoleHierarchy.parse("C > B\nB > A"))
    max_concurrent_sessions: int = 1
    block_new_on_exceed: bool = True
    bcrypt_rounds: int = DEFAULT_ROUNDS
    session_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    default_requirement: Requirement = Requirement.AUTHENTICATED

    def __post_init__(self) -> None:
        if self.max_concurrent_sessions < 1:
            raise ConfigurationError("max_concurrent_sessions must be at least 1")
        if not MIN_ROUNDS <= self.bcrypt_rounds <= MAX_ROUNDS:
            raise ConfigurationError(f"bcrypt rounds must be between {MIN_ROUNDS} and {MAX_ROUNDS}")
        if self.session_timeout_seconds < 0:
            raise ConfigurationError("session timeout cannot be negative")
        # Compiling the engine validates every pattern; keep its normalized, frozen rule tuple.
        engine = AccessDecisionEngine(self.rules, default=self.default_requirement)
        object.__setattr__(self, "rules", engine.rules)

    @classmethod
    def from_settings(cls, settings: Settings) -> AuthConfig:
        rules: list[AuthorizationRule] = []
        for entry in settings.authorization_rules:
            rules.extend(_RULE_BUILDERS[entry.access](entry))
        default = Requirement.PUBLIC if settings.default_access == "permit_all" else Requirement.AUTHENTICATED
        return cls(
            rules=rules,
            hierarchy=RoleHierarchy.parse(settings.role_hierarchy),
            max_concurrent_sessions=settings.max_concurrent_sessions,
            block_new_on_exceed=settings.block_new_on_exceed,
            bcrypt_rounds=settings.bcrypt_rounds,
            session_timeout_seconds=settings.session_timeout_seconds,
            default_requirement=default,
        )


def _past(deadline: float | None) -> bool:
    return deadline is not None and time.monotonic() >= deadline


class AuthenticationService:
    """Composes store, hasher, hierarchy, rules and sessions.

    Construction validates the whole configuration; a ConfigurationError here
    means the service never becomes ready.

    Usage:
        service = AuthenticationService(store, AuthConfig())
        result = service.login("user1", "1234")
        if result.ok:
            service.authorize(result.session_id, "/admin")   # Decision.ALLOW
            service.logout(result.session_id)
    """

    def __init__(
        self,
        store: CredentialStore,
        config: AuthConfig | None = None,
        hasher: PasswordHasher | None = None,
        sessions: SessionRegistry | None = None,
    ) -> None:
        self.config = config if config is not None else AuthConfig()
        self.store = store
        self.hasher = hasher if hasher is not None else PasswordHasher(self.config.bcrypt_rounds)
        self.hierarchy = self.config.hierarchy
        self.engine = AccessDecisionEngine(self.config.rules, default=self.config.default_requirement)
        if sessions is None:
            sessions = SessionRegistry(
                max_concurrent_sessions=self.config.max_concurrent_sessions,
                block_new_on_exceed=self.config.block_new_on_exceed,
                timeout_seconds=self.config.session_timeout_seconds,
            )
        self.sessions = sessions

    # ------------------------------------------------------------------
    # Login / logout
    # ------------------------------------------------------------------

    def login(self, username: str, password: str, deadline: float | None = None) -> LoginResult:
        """Verify credentials and open a session. Never raises for expected failures."""
        if _past(deadline):
            return LoginResult(LoginOutcome.DEADLINE_EXCEEDED)

        try:
            user = self.store.get_by_username(username)
        except StoreUnavailableError:
            logger.warning("Login for %r failed: credential store unavailable", username)
            return LoginResult(LoginOutcome.SERVICE_UNAVAILABLE)

        if user is None:
            self.hasher.dummy_verify(password)
            logger.info("Login failed for %r: invalid credentials", username)
            return LoginResult(LoginOutcome.INVALID_CREDENTIALS)

        if not self.hasher.verify(password, user.password_hash):
            logger.info("Login failed for %r: invalid credentials", username)
            return LoginResult(LoginOutcome.INVALID_CREDENTIALS)

        if not user.status.is_usable:
            logger.info("Login refused for %r: account not usable", username)
            return LoginResult(LoginOutcome.ACCOUNT_DISABLED)

        if _past(deadline):
            logger.info("Login for %r abandoned: deadline passed during verification", username)
            return LoginResult(LoginOutcome.DEADLINE_EXCEEDED)

        role = normalize_role(user.role)
        admission = self.sessions.admit(user.username, role)
        if not admission.admitted:
            return LoginResult(LoginOutcome.SESSION_LIMIT_EXCEEDED)

        logger.info("Login succeeded for %r", username)
        return LoginResult(LoginOutcome.SUCCESS, session_id=admission.session_id, role=role)

    def logout(self, session_id: str | None) -> None:
        self.sessions.invalidate(session_id)

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    def principal(self, session_id: str | None) -> Principal | None:
        """Resolve a session id to its principal, or None if absent or expired."""
        session = self.sessions.get(session_id)
        if session is None:
            return None
        return Principal(username=session.username, role=session.role)

    def authorize(self, session_id: str | None, path: str) -> Decision:
        principal = self.principal(session_id)
        if principal is None:
            return self.engine.decide(path, is_authenticated=False)
        return self.engine.decide(path, True, self.hierarchy.expand(principal.role))

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, username: str, password: str, role: str = "USER") -> RegistrationOutcome:
        """Create a user with a freshly hashed password.

        Raises ValueError for an empty username or a password bcrypt cannot
        hash (over 72 bytes); those are input errors, not outcomes.
        """
        if not username.strip():
            raise ValueError("username must not be empty")
        try:
            if self.store.exists_by_username(username):
                return RegistrationOutcome.USERNAME_TAKEN
            self.store.create_user(User(username=username, password_hash=self.hasher.hash(password), role=role))
        except DuplicateUsernameError:
            # Lost a race with a concurrent registration for the same name.
            return RegistrationOutcome.USERNAME_TAKEN
        except StoreUnavailableError:
            logger.warning("Registration for %r failed: credential store unavailable", username)
            return RegistrationOutcome.SERVICE_UNAVAILABLE
        logger.info("Registered %r with role %s", username, normalize_role(role))
        return RegistrationOutcome.CREATED
