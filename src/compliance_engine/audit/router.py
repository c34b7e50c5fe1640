"""Audit log API router."""

from fastapi import APIRouter, Depends, Query

from compliance_engine.audit.schemas import AuditChainVerification, AuditEntryResponse
from compliance_engine.common.exceptions import ComplianceError
from compliance_engine.common.schemas import to_http_exception
from compliance_engine.common.security import require_api_key

router = APIRouter(prefix="/compliance")


def _get_service():
    from compliance_engine.deps import get_audit_logger
    return get_audit_logger()


def _get_db():
    from compliance_engine.deps import get_db
    return get_db()


@router.get("/audit", response_model=list[AuditEntryResponse])
async def get_audit_entries(
    order_id: str = Query(..., min_length=1),
    delivery_id: str = Query(..., min_length=1),
    check_id: str | None = Query(None),
    action: str | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    _=Depends(require_api_key),
):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            entries = await svc.list_entries(
                session, order_id, delivery_id,
                check_id=check_id, action=action,
                limit=limit, offset=offset,
            )
            return [AuditEntryResponse.from_model(e) for e in entries]
    except ComplianceError as e:
        raise to_http_exception(e)


@router.get("/audit/verify", response_model=AuditChainVerification)
async def verify_audit_chain(
    order_id: str = Query(..., min_length=1),
    delivery_id: str = Query(..., min_length=1),
    _=Depends(require_api_key),
):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            result = await svc.verify_chain(session, order_id, delivery_id)
            return AuditChainVerification(**result)
    except ComplianceError as e:
        raise to_http_exception(e)
