"""
auth/hierarchy.py -- Role hierarchy resolution.

A hierarchy is a set of (junior, senior) pairs: ("B", "C") means C > B, so a
principal holding C is also treated as holding B. expand() returns the
reflexive-transitive closure: the role itself plus every role below it.

The closure is computed once in __init__ and stored as frozensets inside a
read-only mapping. Nothing mutates it afterwards, so concurrent readers need
no lock.

Textual form (RoleHierarchy.parse) follows the familiar one-relation-per-line
notation, senior on the left:

    C > B
    B > A

Chains on one line ("C > B > A") are accepted too. ROLE_ prefixes are
stripped, so "ROLE_C > ROLE_B" is equivalent to "C > B".

Layer rule: no imports from core/ or main.py.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from types import MappingProxyType

from auth.errors import ConfigurationError

ROLE_PREFIX = "ROLE_"


def normalize_role(role: str) -> str:
    """Return role without surrounding whitespace or the ROLE_ authority prefix."""
    role = role.strip()
    if role.startswith(ROLE_PREFIX):
        role = role[len(ROLE_PREFIX) :]
    return role


class RoleHierarchy:
    """Immutable role closure table.

    Usage:
        hierarchy = RoleHierarchy.parse("C > B\\nB > A")
        hierarchy.expand("C")   # frozenset({"A", "B", "C"})
    """

    def __init__(self, pairs: Iterable[tuple[str, str]] = ()) -> None:
        below: dict[str, set[str]] = {}
        for junior, senior in pairs:
            junior, senior = normalize_role(junior), normalize_role(senior)
            if not junior or not senior:
                raise ConfigurationError("role hierarchy entries must name two roles")
            if junior == senior:
                raise ConfigurationError(f"role hierarchy cycle: {senior} > {senior}")
            below.setdefault(senior, set()).add(junior)
            below.setdefault(junior, set())

        closure = {role: frozenset(self._reach(role, below)) for role in below}
        self._closure: Mapping[str, frozenset[str]] = MappingProxyType(closure)

    @staticmethod
    def _reach(start: str, below: dict[str, set[str]]) -> set[str]:
        # Iterative DFS; a path back to start means a cycle.
        seen = {start}
        stack = list(below[start])
        while stack:
            role = stack.pop()
            if role == start:
                raise ConfigurationError(f"role hierarchy cycle through {start}")
            if role in seen:
                continue
            seen.add(role)
            stack.extend(below[role])
        return seen

    @classmethod
    def parse(cls, text: str) -> RoleHierarchy:
        """Build a hierarchy from "SENIOR > JUNIOR" lines. Blank lines are ignored."""
        pairs: list[tuple[str, str]] = []
        for line in text.splitlines():
            if not line.strip():
                continue
            chain = [part.strip() for part in line.split(">")]
            if len(chain) < 2 or not all(chain):
                raise ConfigurationError(f"malformed role hierarchy line: {line.strip()!r}")
            for senior, junior in zip(chain, chain[1:]):
                pairs.append((junior, senior))
        return cls(pairs)

    def expand(self, role: str) -> frozenset[str]:
        """Return role plus every role it implies. Unknown roles imply only themselves."""
        role = normalize_role(role)
        return self._closure.get(role, frozenset({role}))

    @property
    def roles(self) -> frozenset[str]:
        return frozenset(self._closure)
