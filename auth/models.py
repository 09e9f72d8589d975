"""
auth/models.py -- Domain dataclasses and result enums for authentication.

Pattern: Data class (pure data container, near-zero logic). Stores, the
session registry and the service do the work; these types only carry shape.

Results that callers branch on (LoginOutcome, Decision) are enums rather
than exceptions: a wrong password or a full session slot is an expected
outcome, not an error.

Layer rule: no imports from core/ or main.py.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


@dataclass(frozen=True)
class AccountStatus:
    """Account-level flags checked after a successful password match.

    All defaults describe a usable account. The flags exist so accounts can be
    disabled or locked without changing the login flow.
    """

    account_expired: bool = False
    account_locked: bool = False
    credentials_expired: bool = False
    enabled: bool = True

    @property
    def is_usable(self) -> bool:
        return self.enabled and not (self.account_expired or self.account_locked or self.credentials_expired)


@dataclass
class User:
    """A stored user record.

    password_hash is an opaque bcrypt digest. It is excluded from repr so a
    stray log line or traceback never renders it.

    role is the single primary role label, stored without the ROLE_ prefix
    (see auth.hierarchy.normalize_role).
    """

    username: str
    password_hash: str = field(repr=False)
    role: str
    status: AccountStatus = field(default_factory=AccountStatus)
    id: int | None = None
    created_at: str | None = None


@dataclass
class Session:
    """An active login owned by the SessionRegistry.

    Timestamps are seconds from the registry's clock (time.time by default).
    """

    session_id: str
    username: str
    role: str
    created_at: float
    last_accessed: float


@dataclass(frozen=True)
class Principal:
    username: str
    role: str


class Requirement(str, Enum):
    PUBLIC = "public"
    AUTHENTICATED = "authenticated"
    REQUIRES_ROLE = "requires_role"


@dataclass(frozen=True)
class AuthorizationRule:
    """One entry of the ordered rule list: a path pattern and what it requires.

    roles is only meaningful for Requirement.REQUIRES_ROLE; a principal passes
    if any of its effective roles is in the set.
    """

    pattern: str
    requirement: Requirement
    roles: frozenset[str] = frozenset()


class Decision(str, Enum):
    ALLOW = "allow"
    DENY_UNAUTHENTICATED = "deny_unauthenticated"
    DENY_FORBIDDEN = "deny_forbidden"


class LoginOutcome(str, Enum):
    SUCCESS = "success"
    INVALID_CREDENTIALS = "invalid_credentials"
    SESSION_LIMIT_EXCEEDED = "session_limit_exceeded"
    ACCOUNT_DISABLED = "account_disabled"
    SERVICE_UNAVAILABLE = "service_unavailable"
    DEADLINE_EXCEEDED = "deadline_exceeded"


@dataclass(frozen=True)
class LoginResult:
    """Outcome of AuthenticationService.login().

    session_id and role are set only when outcome is SUCCESS.
    """

    outcome: LoginOutcome
    session_id: str | None = None
    role: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is LoginOutcome.SUCCESS


class RegistrationOutcome(str, Enum):
    CREATED = "created"
    USERNAME_TAKEN = "username_taken"
    SERVICE_UNAVAILABLE = "service_unavailable"


@dataclass(frozen=True)
class Admission:
    """Result of SessionRegistry.admit().

    evicted lists session ids removed to make room (eviction policy only).
    """

    admitted: bool
    session_id: str | None = None
    evicted: tuple[str, ...] = ()
