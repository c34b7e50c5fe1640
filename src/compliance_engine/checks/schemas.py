"""Pydantic schemas for compliance check endpoints."""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from compliance_engine.checks.gate import GateResult
from compliance_engine.checks.models import ComplianceCheckModel
from compliance_engine.checks.payloads import EvaluationContext
from compliance_engine.common.schemas import ActorPayload


class InitializeRequest(BaseModel):
    order_id: str = Field(..., min_length=1, max_length=100)
    delivery_id: str = Field(..., min_length=1, max_length=100)
    policy_scope: Optional[str] = None
    context: EvaluationContext = Field(default_factory=EvaluationContext)


class AutoVerifyRequest(BaseModel):
    order_id: str = Field(..., min_length=1, max_length=100)
    delivery_id: str = Field(..., min_length=1, max_length=100)
    context: EvaluationContext = Field(default_factory=EvaluationContext)


class VerifyRequest(BaseModel):
    status: Literal["passed", "failed"]
    actor: ActorPayload
    notes: Optional[str] = None
    failure_reason: Optional[str] = None


class OverrideRequest(BaseModel):
    reason: str
    actor: ActorPayload


class SkipRequest(BaseModel):
    reason: str
    actor: ActorPayload


class CheckResponse(BaseModel):
    id: str
    order_id: str
    delivery_id: str
    customer_id: Optional[str] = None
    policy_scope: str
    check_type: str
    status: str
    check_data: dict[str, Any] = {}
    blocks_delivery: bool
    failure_reason: Optional[str] = None
    override_reason: Optional[str] = None
    verification_notes: Optional[str] = None
    verified_at: Optional[datetime] = None
    verification_method: Optional[str] = None
    verified_by: Optional[str] = None
    overridden_by: Optional[str] = None
    overridden_at: Optional[datetime] = None
    version: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @classmethod
    def from_model(cls, check: ComplianceCheckModel) -> "CheckResponse":
        return cls.model_validate(check)


class BlockingCheck(BaseModel):
    id: str
    check_type: str
    status: str
    failure_reason: Optional[str] = None


class GateResponse(BaseModel):
    can_complete: bool
    all_passed: bool
    blocking_checks: list[BlockingCheck]
    status_counts: dict[str, int] = {}

    @classmethod
    def from_result(cls, result: GateResult) -> "GateResponse":
        return cls(
            can_complete=result.can_complete,
            all_passed=result.all_passed,
            blocking_checks=[
                BlockingCheck(
                    id=c.id, check_type=c.check_type,
                    status=c.status, failure_reason=c.failure_reason,
                )
                for c in result.blocking_checks
            ],
            status_counts=result.status_counts,
        )


class CheckSetResponse(BaseModel):
    order_id: str
    delivery_id: str
    checks: list[CheckResponse]
    gate: GateResponse


class PolicyCheckResponse(BaseModel):
    check_type: str
    blocks_delivery: bool


class PolicyResponse(BaseModel):
    name: str
    description: str = ""
    checks: list[PolicyCheckResponse]
    settings: dict[str, Any]
