"""Unit tests for auth/rules.py -- pattern matching and first-match decisions.

Covers:
- Exact and trailing-wildcard matching, including the /** catch-all
- Malformed patterns rejected at engine construction
- Declaration order decides, not pattern specificity
- Public / authenticated / role requirements for anonymous and signed-in callers
- Default requirement for unmatched paths
"""

import pytest

from auth.errors import ConfigurationError
from auth.models import AuthorizationRule, Decision, Requirement
from auth.rules import (
    AccessDecisionEngine,
    authenticated,
    default_rules,
    has_any_role,
    has_role,
    matches,
    permit_all,
)

# ---------------------------------------------------------------------------
# Pattern matching
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "pattern,path,expected",
    [
        ("/admin", "/admin", True),
        ("/admin", "/admin/", False),
        ("/admin", "/administrator", False),
        ("/my/**", "/my/profile", True),
        ("/my/**", "/my/a/b/c", True),
        ("/my/**", "/my", True),
        ("/my/**", "/myself", False),
        ("/**", "/anything/at/all", True),
        ("/", "/", True),
        ("/", "/login", False),
    ],
)
def test_matches(pattern, path, expected):
    assert matches(pattern, path) is expected


@pytest.mark.parametrize("pattern", ["", "admin", "/a*", "/*/x", "/my/*", "/**/x", "/a/**/b/**"])
def test_malformed_patterns_rejected(pattern):
    with pytest.raises(ConfigurationError):
        AccessDecisionEngine([AuthorizationRule(pattern, Requirement.PUBLIC)])


def test_role_rule_without_roles_rejected():
    with pytest.raises(ConfigurationError):
        AccessDecisionEngine([AuthorizationRule("/x", Requirement.REQUIRES_ROLE)])
    with pytest.raises(ConfigurationError):
        has_any_role([], "/x")


def test_role_default_rejected():
    with pytest.raises(ConfigurationError):
        AccessDecisionEngine([], default=Requirement.REQUIRES_ROLE)


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------


@pytest.fixture
def engine() -> AccessDecisionEngine:
    return AccessDecisionEngine(
        [
            *has_role("ADMIN", "/admin"),
            *has_any_role(["ADMIN", "USER"], "/my/**"),
        ]
    )


def test_user_forbidden_from_admin(engine):
    assert engine.decide("/admin", True, {"USER"}) is Decision.DENY_FORBIDDEN


def test_user_allowed_under_my(engine):
    assert engine.decide("/my/profile", True, {"USER"}) is Decision.ALLOW


def test_anonymous_on_unmatched_path_is_unauthenticated(engine):
    assert engine.decide("/public", False) is Decision.DENY_UNAUTHENTICATED


def test_anonymous_on_role_path_is_unauthenticated(engine):
    assert engine.decide("/admin", False) is Decision.DENY_UNAUTHENTICATED


def test_authenticated_on_unmatched_path_is_allowed(engine):
    assert engine.decide("/dashboard", True, set()) is Decision.ALLOW


def test_admin_allowed_everywhere(engine):
    for path in ("/admin", "/my/settings", "/other"):
        assert engine.decide(path, True, {"ADMIN"}) is Decision.ALLOW


def test_any_effective_role_suffices(engine):
    assert engine.decide("/admin", True, {"A", "B", "ADMIN"}) is Decision.ALLOW


def test_public_rule_ignores_authentication():
    engine = AccessDecisionEngine(permit_all("/login"))
    assert engine.decide("/login", False) is Decision.ALLOW
    assert engine.decide("/login", True, {"USER"}) is Decision.ALLOW


def test_first_match_wins_over_more_specific_rule():
    engine = AccessDecisionEngine([*permit_all("/docs/**"), *has_role("ADMIN", "/docs/internal")])
    assert engine.decide("/docs/internal", False) is Decision.ALLOW


def test_earlier_restrictive_rule_shadows_later_public_one():
    engine = AccessDecisionEngine([*authenticated("/**"), *permit_all("/login")])
    assert engine.decide("/login", False) is Decision.DENY_UNAUTHENTICATED


def test_public_default():
    engine = AccessDecisionEngine(has_role("ADMIN", "/admin"), default=Requirement.PUBLIC)
    assert engine.decide("/anything", False) is Decision.ALLOW
    assert engine.decide("/admin", False) is Decision.DENY_UNAUTHENTICATED


def test_query_string_ignored_for_matching(engine):
    assert engine.decide("/admin?tab=users", True, {"USER"}) is Decision.DENY_FORBIDDEN
    assert engine.match("/my/profile#top").pattern == "/my/**"


def test_rule_order_is_preserved_and_frozen():
    rules = [*permit_all("/a"), *has_role("ADMIN", "/b")]
    engine = AccessDecisionEngine(rules)
    rules.clear()
    assert [r.pattern for r in engine.rules] == ["/a", "/b"]


def test_builders_normalize_roles():
    (rule,) = has_role("ROLE_ADMIN", "/admin")
    assert rule.roles == {"ADMIN"}


def test_default_rules_table():
    engine = AccessDecisionEngine(default_rules())
    for path in ("/", "/login", "/loginProc", "/join", "/joinProc"):
        assert engine.decide(path, False) is Decision.ALLOW
    assert engine.decide("/admin", True, {"USER"}) is Decision.DENY_FORBIDDEN
    assert engine.decide("/my/page", True, {"USER"}) is Decision.ALLOW
    assert engine.decide("/my/page", True, {"GUEST"}) is Decision.DENY_FORBIDDEN
    assert engine.decide("/elsewhere", False) is Decision.DENY_UNAUTHENTICATED


def test_directly_built_rule_roles_are_normalized():
    rule = AuthorizationRule("/admin", Requirement.REQUIRES_ROLE, frozenset({"ROLE_ADMIN"}))
    engine = AccessDecisionEngine([rule])
    assert engine.decide("/admin", True, {"ADMIN"}) is Decision.ALLOW
    assert engine.rules[0].roles == {"ADMIN"}


def test_rule_roles_given_as_list_are_accepted():
    rule = AuthorizationRule("/admin", Requirement.REQUIRES_ROLE, ["ADMIN", "ROLE_OPS"])
    engine = AccessDecisionEngine([rule])
    assert engine.decide("/admin", True, {"OPS"}) is Decision.ALLOW
    assert engine.decide("/admin", True, {"USER"}) is Decision.DENY_FORBIDDEN
