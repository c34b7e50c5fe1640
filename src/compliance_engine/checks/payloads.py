"""Per-check-type payloads stored in ``check_data``.

``check_data`` is a tagged union discriminated on ``check_type``. Each variant
holds the thresholds copied from the policy scope at creation time and the
observations supplied by the order/delivery workflow, which are refreshed on
every automatic evaluation.
"""

from datetime import date, time
from typing import Annotated, Any, ClassVar, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError

from compliance_engine.checks.states import CheckType
from compliance_engine.common.exceptions import ValidationError
from compliance_engine.common.models import utcnow
from compliance_engine.policy.registry import PolicySettings


class EvaluationContext(BaseModel):
    """Facts about the order and customer, computed outside the engine."""

    customer_id: Optional[str] = None

    # Customer identity
    customer_age: Optional[int] = Field(default=None, ge=0)
    customer_dob: Optional[date] = None
    id_type: Optional[str] = None
    has_id_on_file: Optional[bool] = None
    id_expiry: Optional[date] = None

    # Customer account
    customer_status: Optional[str] = None
    is_active: Optional[bool] = None
    is_verified: Optional[bool] = None

    # Delivery location, resolved by the geofencing collaborator
    zone_id: Optional[str] = None
    zone_name: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    in_licensed_zone: Optional[bool] = None

    # Local clock at the delivery address
    local_time: Optional[time] = None
    day_of_week: Optional[str] = None
    # Date ages are computed against; today (UTC) when not supplied
    as_of: Optional[date] = Field(default=None, validate_default=True)

    # Pre-aggregated order totals
    total_thc_mg: Optional[float] = Field(default=None, ge=0)
    total_weight_g: Optional[float] = Field(default=None, ge=0)
    product_quantities: Optional[dict[str, float]] = None

    @field_validator("local_time")
    @classmethod
    def _wall_clock(cls, value: Optional[time]) -> Optional[time]:
        # Already local to the delivery address; policy windows are naive.
        if value is not None and value.tzinfo is not None:
            return value.replace(tzinfo=None)
        return value

    @field_validator("as_of")
    @classmethod
    def _default_as_of(cls, value: Optional[date]) -> date:
        return value if value is not None else utcnow().date()


class _CheckData(BaseModel):
    # payload field -> EvaluationContext field
    observed_fields: ClassVar[dict[str, str]] = {}

    def with_observations(self, context: EvaluationContext):
        """Copy with every observation the context actually supplies."""
        updates = {}
        for name, source in self.observed_fields.items():
            value = getattr(context, source)
            if value is not None:
                updates[name] = value
        return self.model_copy(update=updates)


class AgeVerificationData(_CheckData):
    check_type: Literal["age_verification"] = "age_verification"
    minimum_age: int
    customer_age: Optional[int] = None
    customer_dob: Optional[date] = None
    id_type: Optional[str] = None
    as_of: Optional[date] = None

    observed_fields: ClassVar[dict[str, str]] = {
        "customer_age": "customer_age",
        "customer_dob": "customer_dob",
        "id_type": "id_type",
        "as_of": "as_of",
    }


class IdOnFileData(_CheckData):
    check_type: Literal["id_on_file"] = "id_on_file"
    has_id_on_file: Optional[bool] = None
    id_type: Optional[str] = None
    id_expiry: Optional[date] = None

    observed_fields: ClassVar[dict[str, str]] = {
        "has_id_on_file": "has_id_on_file",
        "id_type": "id_type",
        "id_expiry": "id_expiry",
    }


class LicensedZoneData(_CheckData):
    check_type: Literal["licensed_zone"] = "licensed_zone"
    zone_id: Optional[str] = None
    zone_name: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    in_licensed_zone: Optional[bool] = None

    observed_fields: ClassVar[dict[str, str]] = {
        "zone_id": "zone_id",
        "zone_name": "zone_name",
        "latitude": "latitude",
        "longitude": "longitude",
        "in_licensed_zone": "in_licensed_zone",
    }


class TimeRestrictionData(_CheckData):
    check_type: Literal["time_restriction"] = "time_restriction"
    allowed_start: time
    allowed_end: time
    allowed_days: list[str]
    delivery_time: Optional[time] = None
    day_of_week: Optional[str] = None

    observed_fields: ClassVar[dict[str, str]] = {
        "delivery_time": "local_time",
        "day_of_week": "day_of_week",
    }


class QuantityLimitData(_CheckData):
    check_type: Literal["quantity_limit"] = "quantity_limit"
    max_thc_mg: float
    max_weight_g: float
    total_thc_mg: Optional[float] = None
    total_weight_g: Optional[float] = None
    product_quantities: dict[str, float] = Field(default_factory=dict)

    observed_fields: ClassVar[dict[str, str]] = {
        "total_thc_mg": "total_thc_mg",
        "total_weight_g": "total_weight_g",
        "product_quantities": "product_quantities",
    }


class CustomerStatusData(_CheckData):
    check_type: Literal["customer_status"] = "customer_status"
    customer_status: Optional[str] = None
    is_active: Optional[bool] = None
    is_verified: Optional[bool] = None

    observed_fields: ClassVar[dict[str, str]] = {
        "customer_status": "customer_status",
        "is_active": "is_active",
        "is_verified": "is_verified",
    }


CheckData = Annotated[
    Union[
        AgeVerificationData,
        IdOnFileData,
        LicensedZoneData,
        TimeRestrictionData,
        QuantityLimitData,
        CustomerStatusData,
    ],
    Field(discriminator="check_type"),
]

_CHECK_DATA = TypeAdapter(CheckData)


def _age(policy: PolicySettings) -> AgeVerificationData:
    return AgeVerificationData(minimum_age=policy.minimum_age)


def _id_on_file(policy: PolicySettings) -> IdOnFileData:
    return IdOnFileData()


def _zone(policy: PolicySettings) -> LicensedZoneData:
    return LicensedZoneData()


def _time(policy: PolicySettings) -> TimeRestrictionData:
    return TimeRestrictionData(
        allowed_start=policy.delivery_start_time,
        allowed_end=policy.delivery_end_time,
        allowed_days=list(policy.allowed_days),
    )


def _quantity(policy: PolicySettings) -> QuantityLimitData:
    return QuantityLimitData(
        max_thc_mg=policy.max_thc_mg_per_order,
        max_weight_g=policy.max_weight_g_per_order,
    )


def _customer(policy: PolicySettings) -> CustomerStatusData:
    return CustomerStatusData()


_BUILDERS = {
    CheckType.AGE_VERIFICATION: _age,
    CheckType.ID_ON_FILE: _id_on_file,
    CheckType.LICENSED_ZONE: _zone,
    CheckType.TIME_RESTRICTION: _time,
    CheckType.QUANTITY_LIMIT: _quantity,
    CheckType.CUSTOMER_STATUS: _customer,
}

if set(_BUILDERS) != set(CheckType):
    raise RuntimeError(
        f"No check_data builder for {sorted(t.value for t in set(CheckType) - set(_BUILDERS))}"
    )


def build_check_data(
    check_type: CheckType, policy: PolicySettings, context: EvaluationContext,
) -> CheckData:
    """Initial payload: policy thresholds plus whatever the context observed."""
    return _BUILDERS[check_type](policy).with_observations(context)


def parse_check_data(check_type: CheckType, raw: dict[str, Any] | None) -> CheckData:
    """Load a stored payload, tagging it with its check type if untagged."""
    data = dict(raw or {})
    data.setdefault("check_type", check_type.value)
    if data["check_type"] != check_type.value:
        raise ValidationError(
            f"check_data is tagged '{data['check_type']}' but check is '{check_type.value}'"
        )
    try:
        return _CHECK_DATA.validate_python(data)
    except PydanticValidationError as exc:
        raise ValidationError(f"Malformed check_data for {check_type.value}: {exc}") from exc


def dump_check_data(payload: CheckData) -> dict[str, Any]:
    return payload.model_dump(mode="json")
