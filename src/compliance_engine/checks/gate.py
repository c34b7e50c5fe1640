"""Delivery gate: derive whether a delivery may complete from its checks.

Pure computation over a snapshot of checks; no side effects. Works on anything
exposing ``blocks_delivery`` and ``status`` (ORM rows or response schemas).
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, Protocol, Sequence

from compliance_engine.checks.states import RESOLVED_STATUSES, CheckStatus


class GatedCheck(Protocol):
    blocks_delivery: bool
    status: str


@dataclass(frozen=True)
class GateResult:
    can_complete: bool
    blocking_checks: list = field(default_factory=list)
    all_passed: bool = False
    status_counts: dict[str, int] = field(default_factory=dict)


def _status(check: GatedCheck) -> CheckStatus:
    return CheckStatus(check.status)


def blocking_checks(checks: Iterable[GatedCheck]) -> list:
    """Blocking checks not yet passed or overridden, in input order."""
    return [
        c for c in checks
        if c.blocks_delivery and _status(c) not in RESOLVED_STATUSES
    ]


def can_complete(checks: Iterable[GatedCheck]) -> bool:
    return not blocking_checks(checks)


def evaluate(checks: Sequence[GatedCheck]) -> GateResult:
    blocking = blocking_checks(checks)
    settled = RESOLVED_STATUSES | {CheckStatus.SKIPPED}
    return GateResult(
        can_complete=not blocking,
        blocking_checks=blocking,
        all_passed=bool(checks) and all(_status(c) in settled for c in checks),
        status_counts=dict(Counter(_status(c).value for c in checks)),
    )
