"""Deterministic rule evaluation for automatically verifiable checks.

Every function here is pure: the verdict depends only on the payload, which
already carries the policy thresholds and the observed facts. Missing
observations fail the check (fail-closed) with a reason saying what is missing.
"""

from dataclasses import dataclass
from datetime import date, time
from typing import Callable, Optional

from compliance_engine.checks.payloads import (
    AgeVerificationData,
    CheckData,
    CustomerStatusData,
    LicensedZoneData,
    QuantityLimitData,
    TimeRestrictionData,
)
from compliance_engine.checks.states import CheckType

OUTSIDE_ZONE_REASON = "Delivery address is outside licensed delivery area"


@dataclass(frozen=True)
class Verdict:
    passed: bool
    reason: Optional[str] = None


def compute_age(dob: date, as_of: date) -> int:
    """Whole years between dob and as_of."""
    before_birthday = (as_of.month, as_of.day) < (dob.month, dob.day)
    return as_of.year - dob.year - int(before_birthday)


def within_window(start: time, end: time, at: time) -> bool:
    """Inclusive window check; a window with start > end wraps past midnight."""
    if start <= end:
        return start <= at <= end
    return at >= start or at <= end


def evaluate_age(data: AgeVerificationData) -> Verdict:
    age = data.customer_age
    if data.customer_dob is not None and data.as_of is not None:
        age = compute_age(data.customer_dob, data.as_of)
    if age is None:
        return Verdict(False, "Customer age not verified")
    if age < data.minimum_age:
        return Verdict(
            False,
            f"Customer age ({age}) is below minimum required age ({data.minimum_age})",
        )
    return Verdict(True)


def evaluate_zone(data: LicensedZoneData) -> Verdict:
    if data.in_licensed_zone:
        return Verdict(True)
    if data.in_licensed_zone is None:
        return Verdict(False, "Licensed zone membership not determined")
    return Verdict(False, OUTSIDE_ZONE_REASON)


def evaluate_time(data: TimeRestrictionData) -> Verdict:
    if data.delivery_time is None:
        return Verdict(False, "Delivery time not provided")

    allowed_days = {d.capitalize() for d in data.allowed_days}
    if len(allowed_days) < 7:
        if data.day_of_week is None:
            return Verdict(False, "Delivery day not provided")
        if data.day_of_week.capitalize() not in allowed_days:
            return Verdict(False, f"Deliveries are not allowed on {data.day_of_week.capitalize()}")

    if not within_window(data.allowed_start, data.allowed_end, data.delivery_time):
        return Verdict(
            False,
            f"Delivery time ({data.delivery_time:%H:%M}) is outside allowed hours "
            f"({data.allowed_start:%H:%M} - {data.allowed_end:%H:%M})",
        )
    return Verdict(True)


def evaluate_quantity(data: QuantityLimitData) -> Verdict:
    if data.total_thc_mg is None and data.total_weight_g is None:
        return Verdict(False, "Order quantity totals not provided")

    problems = []
    if data.total_thc_mg is not None and data.total_thc_mg > data.max_thc_mg:
        problems.append(f"exceeds {data.max_thc_mg:g}mg THC limit ({data.total_thc_mg:g}mg)")
    if data.total_weight_g is not None and data.total_weight_g > data.max_weight_g:
        problems.append(f"exceeds {data.max_weight_g:g}g weight limit ({data.total_weight_g:g}g)")
    if problems:
        return Verdict(False, "Order " + " and ".join(problems))
    return Verdict(True)


def evaluate_customer_status(data: CustomerStatusData) -> Verdict:
    if data.is_active and data.is_verified:
        return Verdict(True)
    return Verdict(False, "Customer account is not active or verified")


EVALUATORS: dict[CheckType, Callable[..., Verdict]] = {
    CheckType.AGE_VERIFICATION: evaluate_age,
    CheckType.LICENSED_ZONE: evaluate_zone,
    CheckType.TIME_RESTRICTION: evaluate_time,
    CheckType.QUANTITY_LIMIT: evaluate_quantity,
    CheckType.CUSTOMER_STATUS: evaluate_customer_status,
}

# Confirmed by a person, never by the system.
MANUAL_ONLY: frozenset[CheckType] = frozenset({CheckType.ID_ON_FILE})

_unhandled = set(CheckType) - set(EVALUATORS) - MANUAL_ONLY
if _unhandled or set(EVALUATORS) & MANUAL_ONLY:
    raise RuntimeError(
        "Every check type needs an evaluator or a MANUAL_ONLY entry, not both: "
        f"{sorted(t.value for t in _unhandled)}"
    )


def has_evaluator(check_type: CheckType) -> bool:
    return check_type in EVALUATORS


def evaluate(check_type: CheckType, data: CheckData) -> Verdict:
    """Run the evaluator for check_type. KeyError for manual-only types."""
    return EVALUATORS[check_type](data)
