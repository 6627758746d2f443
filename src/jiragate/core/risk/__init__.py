"""
Deterministic risk classification for governed operations.

Every audit entry carries a risk level.  When the caller does not supply
one, it is derived from keywords in the operation and resource names.
Rules are evaluated from most to least severe; the first match wins.
Identical inputs always produce identical output.

Usage::

    assert classify_operation("delete_attachment", "attachment") == RiskLevel.CRITICAL
    assert classify_operation("update_issue", "issue") == RiskLevel.MEDIUM
    assert classify_operation("list_projects", "project") == RiskLevel.LOW
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class RiskLevel(StrEnum):
    """Risk level attached to every audit entry."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _RANK[self]

    def at_least(self, other: RiskLevel) -> bool:
        return self.rank >= other.rank


_RANK: dict[RiskLevel, int] = {
    RiskLevel.LOW: 0,
    RiskLevel.MEDIUM: 1,
    RiskLevel.HIGH: 2,
    RiskLevel.CRITICAL: 3,
}


@dataclass(frozen=True)
class RiskRule:
    """Keyword rule: matches when any keyword is a substring of the name."""

    level: RiskLevel
    operation_keywords: tuple[str, ...]
    resource_keywords: tuple[str, ...] = ()

    def matches(self, operation: str, resource: str) -> bool:
        op = operation.lower()
        res = resource.lower()
        return any(k in op for k in self.operation_keywords) or any(
            k in res for k in self.resource_keywords
        )


# Ordered most to least severe.
RISK_RULES: tuple[RiskRule, ...] = (
    RiskRule(RiskLevel.CRITICAL, ("delete", "remove", "destroy", "purge")),
    RiskRule(
        RiskLevel.HIGH,
        ("bulk", "mass", "complete", "close", "resolve", "transition"),
        ("sprint", "attachment", "permission"),
    ),
    RiskRule(
        RiskLevel.MEDIUM,
        ("update", "modify", "edit", "move", "assign"),
        ("issue", "comment", "worklog"),
    ),
)


def classify_operation(operation: str, resource: str) -> RiskLevel:
    """Derive the risk level of *operation* on *resource*.  Pure function."""
    for rule in RISK_RULES:
        if rule.matches(operation, resource):
            return rule.level
    return RiskLevel.LOW


def parse_risk_level(value: str) -> RiskLevel:
    """Parse a configured level name.  ``"all"`` is an alias for ``low``."""
    v = value.strip().lower()
    if v == "all":
        return RiskLevel.LOW
    return RiskLevel(v)
