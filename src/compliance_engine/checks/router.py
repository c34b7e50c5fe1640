"""Compliance checks API router."""

from dataclasses import asdict

from fastapi import APIRouter, Depends, Query

from compliance_engine.checks import gate
from compliance_engine.checks.schemas import (
    AutoVerifyRequest,
    CheckResponse,
    CheckSetResponse,
    GateResponse,
    InitializeRequest,
    OverrideRequest,
    PolicyCheckResponse,
    PolicyResponse,
    SkipRequest,
    VerifyRequest,
)
from compliance_engine.common.exceptions import ComplianceError
from compliance_engine.common.schemas import to_http_exception
from compliance_engine.common.security import require_api_key
from compliance_engine.policy.registry import PolicyScope

router = APIRouter(prefix="/compliance")


def _get_engine():
    from compliance_engine.deps import get_compliance_engine
    return get_compliance_engine()


def _get_db():
    from compliance_engine.deps import get_db
    return get_db()


def _check_set(order_id: str, delivery_id: str, checks) -> CheckSetResponse:
    return CheckSetResponse(
        order_id=order_id,
        delivery_id=delivery_id,
        checks=[CheckResponse.from_model(c) for c in checks],
        gate=GateResponse.from_result(gate.evaluate(checks)),
    )


def _policy_response(policy: PolicyScope) -> PolicyResponse:
    settings = asdict(policy.settings)
    settings["delivery_start_time"] = policy.settings.delivery_start_time.strftime("%H:%M")
    settings["delivery_end_time"] = policy.settings.delivery_end_time.strftime("%H:%M")
    settings["allowed_days"] = list(policy.settings.allowed_days)
    return PolicyResponse(
        name=policy.name,
        description=policy.description,
        checks=[
            PolicyCheckResponse(
                check_type=d.check_type.value, blocks_delivery=d.blocks_delivery,
            )
            for d in policy.checks
        ],
        settings=settings,
    )


# ── Lifecycle ──

@router.post("/init", response_model=CheckSetResponse)
async def initialize_checks(body: InitializeRequest, _=Depends(require_api_key)):
    engine = _get_engine()
    db = _get_db()
    try:
        async with db.get_session() as session:
            checks = await engine.initialize_checks(
                session,
                body.order_id,
                body.delivery_id,
                policy_scope=body.policy_scope,
                context=body.context,
            )
            return _check_set(body.order_id, body.delivery_id, checks)
    except ComplianceError as e:
        raise to_http_exception(e)


@router.post("/auto-verify", response_model=CheckSetResponse)
async def auto_verify(body: AutoVerifyRequest, _=Depends(require_api_key)):
    engine = _get_engine()
    db = _get_db()
    try:
        async with db.get_session() as session:
            checks = await engine.auto_verify_system_checks(
                session, body.order_id, body.delivery_id, context=body.context,
            )
            return _check_set(body.order_id, body.delivery_id, checks)
    except ComplianceError as e:
        raise to_http_exception(e)


@router.post("/checks/{check_id}/verify", response_model=CheckResponse)
async def verify_check(check_id: str, body: VerifyRequest, _=Depends(require_api_key)):
    engine = _get_engine()
    db = _get_db()
    try:
        async with db.get_session() as session:
            check = await engine.manual_verify(
                session,
                check_id,
                body.status,
                body.actor.to_actor(),
                notes=body.notes,
                failure_reason=body.failure_reason,
            )
            return CheckResponse.from_model(check)
    except ComplianceError as e:
        raise to_http_exception(e)


@router.post("/checks/{check_id}/override", response_model=CheckResponse)
async def override_check(check_id: str, body: OverrideRequest, _=Depends(require_api_key)):
    engine = _get_engine()
    db = _get_db()
    try:
        async with db.get_session() as session:
            check = await engine.override_check(
                session, check_id, body.reason, body.actor.to_actor(),
            )
            return CheckResponse.from_model(check)
    except ComplianceError as e:
        raise to_http_exception(e)


@router.post("/checks/{check_id}/skip", response_model=CheckResponse)
async def skip_check(check_id: str, body: SkipRequest, _=Depends(require_api_key)):
    engine = _get_engine()
    db = _get_db()
    try:
        async with db.get_session() as session:
            check = await engine.skip_check(
                session, check_id, body.reason, body.actor.to_actor(),
            )
            return CheckResponse.from_model(check)
    except ComplianceError as e:
        raise to_http_exception(e)


# ── Reads ──

@router.get("/checks", response_model=CheckSetResponse)
async def list_checks(
    order_id: str = Query(..., min_length=1),
    delivery_id: str = Query(..., min_length=1),
    _=Depends(require_api_key),
):
    engine = _get_engine()
    db = _get_db()
    try:
        async with db.get_session() as session:
            checks = await engine.list_checks(session, order_id, delivery_id)
            return _check_set(order_id, delivery_id, checks)
    except ComplianceError as e:
        raise to_http_exception(e)


@router.get("/checks/{check_id}", response_model=CheckResponse)
async def get_check(check_id: str, _=Depends(require_api_key)):
    engine = _get_engine()
    db = _get_db()
    try:
        async with db.get_session() as session:
            return CheckResponse.from_model(await engine.get_check(session, check_id))
    except ComplianceError as e:
        raise to_http_exception(e)


@router.get("/gate", response_model=GateResponse)
async def delivery_gate(
    order_id: str = Query(..., min_length=1),
    delivery_id: str = Query(..., min_length=1),
    _=Depends(require_api_key),
):
    engine = _get_engine()
    db = _get_db()
    try:
        async with db.get_session() as session:
            result = await engine.evaluate_gate(session, order_id, delivery_id)
            return GateResponse.from_result(result)
    except ComplianceError as e:
        raise to_http_exception(e)


# ── Policies ──

@router.get("/policies", response_model=list[PolicyResponse])
async def list_policies(_=Depends(require_api_key)):
    registry = _get_engine().registry
    return [_policy_response(registry.get_scope(name)) for name in registry.scopes()]


@router.get("/policies/{scope}", response_model=PolicyResponse)
async def get_policy(scope: str, _=Depends(require_api_key)):
    try:
        return _policy_response(_get_engine().registry.get_scope(scope))
    except ComplianceError as e:
        raise to_http_exception(e)
