"""Pydantic schemas for audit log API responses."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel

from compliance_engine.audit.models import AuditLogEntryModel


class AuditEntryResponse(BaseModel):
    id: str
    sequence: int
    check_id: Optional[str] = None
    order_id: str
    delivery_id: str
    action: str
    actor_type: str
    actor_id: str
    metadata: dict[str, Any] = {}
    prev_hash: Optional[str] = None
    event_hash: str
    signature: str
    created_at: datetime

    @classmethod
    def from_model(cls, entry: AuditLogEntryModel) -> "AuditEntryResponse":
        return cls(
            id=entry.id,
            sequence=entry.sequence,
            check_id=entry.check_id,
            order_id=entry.order_id,
            delivery_id=entry.delivery_id,
            action=entry.action,
            actor_type=entry.actor_type,
            actor_id=entry.actor_id,
            metadata=entry.metadata_ or {},
            prev_hash=entry.prev_hash,
            event_hash=entry.event_hash,
            signature=entry.signature,
            created_at=entry.created_at,
        )


class AuditChainVerification(BaseModel):
    valid: bool
    events_checked: int
    break_at: Optional[str] = None
