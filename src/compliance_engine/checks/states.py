"""Check types, statuses and the allowed status transitions."""

from enum import Enum

from compliance_engine.common.exceptions import ConflictError, ValidationError


class CheckType(str, Enum):
    AGE_VERIFICATION = "age_verification"
    ID_ON_FILE = "id_on_file"
    LICENSED_ZONE = "licensed_zone"
    TIME_RESTRICTION = "time_restriction"
    QUANTITY_LIMIT = "quantity_limit"
    CUSTOMER_STATUS = "customer_status"


class CheckStatus(str, Enum):
    PENDING = "pending"
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"
    OVERRIDE = "override"


class VerificationMethod(str, Enum):
    SYSTEM = "system"
    MANUAL = "manual"


class AuditAction(str, Enum):
    INITIALIZED = "initialized"
    AUTO_VERIFIED = "auto_verified"
    MANUALLY_VERIFIED = "manually_verified"
    OVERRIDDEN = "overridden"
    SKIPPED = "skipped"


TRANSITIONS: dict[CheckStatus, frozenset[CheckStatus]] = {
    CheckStatus.PENDING: frozenset(
        {CheckStatus.PASSED, CheckStatus.FAILED, CheckStatus.SKIPPED}
    ),
    CheckStatus.FAILED: frozenset({CheckStatus.OVERRIDE}),
    CheckStatus.PASSED: frozenset(),
    CheckStatus.SKIPPED: frozenset(),
    CheckStatus.OVERRIDE: frozenset(),
}

# Statuses that satisfy a blocking check.
RESOLVED_STATUSES = frozenset({CheckStatus.PASSED, CheckStatus.OVERRIDE})


def parse_check_type(value: str) -> CheckType:
    try:
        return CheckType(value)
    except ValueError:
        raise ValidationError(f"Unknown check type '{value}'") from None


def is_terminal(status: CheckStatus) -> bool:
    return not TRANSITIONS[status]


def ensure_transition(current: CheckStatus, target: CheckStatus) -> None:
    """Raise ConflictError unless current -> target is an allowed transition."""
    if target not in TRANSITIONS[current]:
        raise ConflictError(
            f"Transition {current.value} -> {target.value} is not allowed"
        )
