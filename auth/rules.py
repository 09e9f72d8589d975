"""
auth/rules.py -- Ordered path rules and the authorization decision engine.

Rules are evaluated in declaration order and the FIRST matching pattern
decides. Pattern specificity plays no part: a broad rule declared before a
narrow one shadows it. Paths matched by no rule fall back to the engine's
default requirement (authenticated-only unless configured otherwise).

Supported patterns:
  /admin      exact match
  /my/**      /my itself and anything under /my/
  /**         every path

Any other use of "*" is rejected with ConfigurationError when the rule is
compiled, so a typo cannot silently become a rule that never matches.

Layer rule: no imports from core/ or main.py.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import replace

from auth.errors import ConfigurationError
from auth.hierarchy import normalize_role
from auth.models import AuthorizationRule, Decision, Requirement

_WILDCARD_SUFFIX = "/**"

# ---------------------------------------------------------------------------
# Pattern compilation
# ---------------------------------------------------------------------------


def validate_pattern(pattern: str) -> None:
    """Raise ConfigurationError unless pattern is an exact or trailing-wildcard path."""
    if not pattern or not pattern.startswith("/"):
        raise ConfigurationError(f"rule pattern must start with '/': {pattern!r}")
    stem = pattern[: -len(_WILDCARD_SUFFIX)] if pattern.endswith(_WILDCARD_SUFFIX) else pattern
    if "*" in stem:
        raise ConfigurationError(f"wildcards are only allowed as a trailing '/**': {pattern!r}")


def matches(pattern: str, path: str) -> bool:
    if pattern.endswith(_WILDCARD_SUFFIX):
        prefix = pattern[: -len(_WILDCARD_SUFFIX)]
        if not prefix:
            return True
        return path == prefix or path.startswith(prefix + "/")
    return path == pattern


def _strip_query(path: str) -> str:
    for sep in ("?", "#"):
        path = path.split(sep, 1)[0]
    return path or "/"


# ---------------------------------------------------------------------------
# Rule builders -- one rule per pattern, in the order given
# ---------------------------------------------------------------------------


def permit_all(*patterns: str) -> list[AuthorizationRule]:
    return [AuthorizationRule(p, Requirement.PUBLIC) for p in patterns]


def authenticated(*patterns: str) -> list[AuthorizationRule]:
    return [AuthorizationRule(p, Requirement.AUTHENTICATED) for p in patterns]


def has_any_role(roles: Iterable[str], *patterns: str) -> list[AuthorizationRule]:
    role_set = frozenset(normalize_role(r) for r in roles)
    if not role_set:
        raise ConfigurationError("role rule needs at least one role")
    return [AuthorizationRule(p, Requirement.REQUIRES_ROLE, role_set) for p in patterns]


def has_role(role: str, *patterns: str) -> list[AuthorizationRule]:
    return has_any_role([role], *patterns)


def default_rules() -> list[AuthorizationRule]:
    """Stock rule table: login/join pages open, /admin for ADMIN, /my/** for ADMIN or USER."""
    return [
        *permit_all("/", "/login", "/loginProc", "/join", "/joinProc"),
        *has_role("ADMIN", "/admin"),
        *has_any_role(["ADMIN", "USER"], "/my/**"),
    ]


# ---------------------------------------------------------------------------
# Decision engine
# ---------------------------------------------------------------------------


class AccessDecisionEngine:
    """First-match evaluation of an ordered AuthorizationRule list.

    The rule list is copied into a tuple at construction, with role names
    normalized (ROLE_ prefix stripped); later changes to the caller's list do
    not affect decisions.
    """

    def __init__(
        self,
        rules: Sequence[AuthorizationRule],
        default: Requirement = Requirement.AUTHENTICATED,
    ) -> None:
        compiled: list[AuthorizationRule] = []
        for rule in rules:
            validate_pattern(rule.pattern)
            roles = frozenset(normalize_role(r) for r in rule.roles)
            if rule.requirement is Requirement.REQUIRES_ROLE and not roles:
                raise ConfigurationError(f"rule {rule.pattern!r} requires a role but names none")
            compiled.append(replace(rule, roles=roles))
        if default is Requirement.REQUIRES_ROLE:
            raise ConfigurationError("default requirement cannot be role-based")
        self.rules: tuple[AuthorizationRule, ...] = tuple(compiled)
        self.default = default

    def match(self, path: str) -> AuthorizationRule | None:
        """Return the first rule whose pattern matches path, or None."""
        path = _strip_query(path)
        for rule in self.rules:
            if matches(rule.pattern, path):
                return rule
        return None

    def decide(self, path: str, is_authenticated: bool, effective_roles: Iterable[str] = ()) -> Decision:
        rule = self.match(path)
        requirement = rule.requirement if rule is not None else self.default

        if requirement is Requirement.PUBLIC:
            return Decision.ALLOW
        if not is_authenticated:
            return Decision.DENY_UNAUTHENTICATED
        if requirement is Requirement.AUTHENTICATED:
            return Decision.ALLOW
        if rule.roles.intersection(effective_roles):
            return Decision.ALLOW
        return Decision.DENY_FORBIDDEN
