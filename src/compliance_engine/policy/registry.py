"""Policy scopes: which checks a delivery needs and which of them block it.

Each scope maps to an ordered list of check definitions plus the thresholds
the rule evaluators compare against.

Enforcement philosophy:
- Unknown scope → error, never an empty checklist
- Every check in a scope is created pending, in the order listed
- blocks_delivery is copied onto the check at creation and never changes
"""

import json
from dataclasses import asdict, dataclass, field, fields
from datetime import time
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from compliance_engine.checks.states import CheckType, parse_check_type
from compliance_engine.common.exceptions import UnknownPolicyScopeError, ValidationError

WEEKDAYS = (
    "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday",
)


@dataclass(frozen=True)
class CheckDefinition:
    check_type: CheckType
    blocks_delivery: bool = True


@dataclass(frozen=True)
class PolicySettings:
    minimum_age: int = 21
    delivery_start_time: time = time(9, 0)
    delivery_end_time: time = time(21, 0)
    allowed_days: tuple[str, ...] = WEEKDAYS
    max_thc_mg_per_order: float = 100.0
    max_weight_g_per_order: float = 28.0


_SETTINGS = TypeAdapter(PolicySettings)


@dataclass(frozen=True)
class PolicyScope:
    name: str
    checks: tuple[CheckDefinition, ...]
    settings: PolicySettings = field(default_factory=PolicySettings)
    description: str = ""


_ALL_BLOCKING = tuple(CheckDefinition(t) for t in CheckType)

BUILTIN_SCOPES: dict[str, PolicyScope] = {
    "default": PolicyScope(
        name="default",
        description="Adult-use delivery: every check, customer status advisory",
        checks=(
            CheckDefinition(CheckType.AGE_VERIFICATION),
            CheckDefinition(CheckType.ID_ON_FILE),
            CheckDefinition(CheckType.LICENSED_ZONE),
            CheckDefinition(CheckType.TIME_RESTRICTION),
            CheckDefinition(CheckType.QUANTITY_LIMIT),
            CheckDefinition(CheckType.CUSTOMER_STATUS, blocks_delivery=False),
        ),
    ),
    "medical": PolicyScope(
        name="medical",
        description="Medical patients: lower minimum age, higher quantity limits",
        checks=(
            CheckDefinition(CheckType.AGE_VERIFICATION),
            CheckDefinition(CheckType.ID_ON_FILE),
            CheckDefinition(CheckType.LICENSED_ZONE),
            CheckDefinition(CheckType.TIME_RESTRICTION),
            CheckDefinition(CheckType.QUANTITY_LIMIT),
            CheckDefinition(CheckType.CUSTOMER_STATUS),
        ),
        settings=PolicySettings(
            minimum_age=18,
            max_thc_mg_per_order=1000.0,
            max_weight_g_per_order=56.0,
        ),
    ),
    "strict": PolicyScope(
        name="strict",
        description="Every check blocks, shortened delivery window",
        checks=_ALL_BLOCKING,
        settings=PolicySettings(
            delivery_start_time=time(10, 0),
            delivery_end_time=time(20, 0),
        ),
    ),
}


class CheckDefinitionRegistry:
    """Static lookup from policy scope to required checks. No side effects."""

    def __init__(self, scopes: dict[str, PolicyScope] | None = None):
        self._scopes = dict(BUILTIN_SCOPES if scopes is None else scopes)

    def scopes(self) -> list[str]:
        return sorted(self._scopes)

    def get_scope(self, scope: str) -> PolicyScope:
        try:
            return self._scopes[scope]
        except KeyError:
            raise UnknownPolicyScopeError(scope) from None

    def required_checks(self, scope: str) -> list[CheckDefinition]:
        """Ordered (check_type, blocks_delivery) definitions for a scope."""
        return list(self.get_scope(scope).checks)

    def get_policy(self, scope: str) -> PolicySettings:
        return self.get_scope(scope).settings

    def register(self, policy: PolicyScope) -> None:
        seen = [d.check_type for d in policy.checks]
        if len(seen) != len(set(seen)):
            raise ValidationError(f"Policy scope '{policy.name}' lists a check type twice")
        self._scopes[policy.name] = policy

    @classmethod
    def from_file(cls, path: str | Path) -> "CheckDefinitionRegistry":
        """Built-in scopes plus the scopes defined in a JSON policy file."""
        registry = cls()
        for policy in load_policy_file(path):
            registry.register(policy)
        return registry


def _parse_time(value: Any, field_name: str) -> time:
    try:
        parsed = time.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(f"'{field_name}' must be HH:MM, got {value!r}") from None
    # Windows are wall-clock times at the delivery address.
    return parsed.replace(tzinfo=None)


def _parse_check(name: str, entry: Any) -> CheckDefinition:
    if isinstance(entry, str):
        entry = {"check_type": entry}
    if not isinstance(entry, dict):
        raise ValidationError(
            f"Check entries in scope '{name}' must be a name or an object, got {entry!r}"
        )
    check_type = entry.get("check_type")
    if not isinstance(check_type, str):
        raise ValidationError(f"Check entry in scope '{name}' has no check_type")
    blocks = entry.get("blocks_delivery", True)
    if not isinstance(blocks, bool):
        raise ValidationError(
            f"'blocks_delivery' for {check_type} in scope '{name}' must be true or false"
        )
    return CheckDefinition(check_type=parse_check_type(check_type), blocks_delivery=blocks)


def _parse_settings(name: str, raw: Any) -> PolicySettings:
    if raw is None:
        return PolicySettings()
    if not isinstance(raw, dict):
        raise ValidationError(f"Settings for scope '{name}' must be an object")

    unknown = sorted(set(raw) - {f.name for f in fields(PolicySettings)})
    if unknown:
        raise ValidationError(f"Unknown setting(s) {unknown} in scope '{name}'")

    overrides = dict(raw)
    for key in ("delivery_start_time", "delivery_end_time"):
        if key in overrides:
            overrides[key] = _parse_time(overrides[key], key)
    if "allowed_days" in overrides:
        if not isinstance(overrides["allowed_days"], list):
            raise ValidationError(f"'allowed_days' in scope '{name}' must be a list")
        days = tuple(str(d).capitalize() for d in overrides["allowed_days"])
        unknown = [d for d in days if d not in WEEKDAYS]
        if unknown:
            raise ValidationError(f"Unknown weekday(s) {unknown} in scope '{name}'")
        overrides["allowed_days"] = days

    try:
        return _SETTINGS.validate_python({**asdict(PolicySettings()), **overrides})
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid settings for scope '{name}': {exc}") from exc


def parse_policy(name: str, raw: dict[str, Any]) -> PolicyScope:
    """Build a PolicyScope from its JSON form.

    Example::

        {"checks": [{"check_type": "age_verification", "blocks_delivery": true}],
         "settings": {"minimum_age": 19, "delivery_start_time": "08:00"}}
    """
    if not isinstance(raw, dict):
        raise ValidationError(f"Policy scope '{name}' must be a JSON object")
    entries = raw.get("checks")
    if not entries:
        raise ValidationError(f"Policy scope '{name}' defines no checks")
    if not isinstance(entries, list):
        raise ValidationError(f"'checks' in scope '{name}' must be a list")

    return PolicyScope(
        name=name,
        checks=tuple(_parse_check(name, entry) for entry in entries),
        settings=_parse_settings(name, raw.get("settings")),
        description=str(raw.get("description", "")),
    )


def load_policy_file(path: str | Path) -> list[PolicyScope]:
    try:
        raw = json.loads(Path(path).read_text())
    except (OSError, json.JSONDecodeError) as exc:
        raise ValidationError(f"Cannot read policy file {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ValidationError("Policy file must be a JSON object keyed by scope name")
    return [parse_policy(name, body) for name, body in raw.items()]
