"""SQLAlchemy model for the append-only compliance audit chain."""

from datetime import datetime

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, event
from sqlalchemy.orm import Mapped, mapped_column

from compliance_engine.common.exceptions import AuditLogImmutableError
from compliance_engine.common.models import Base, generate_uuid, utcnow


class AuditLogEntryModel(Base):
    __tablename__ = "compliance_audit_log"
    __table_args__ = (
        Index("ix_audit_order_delivery", "order_id", "delivery_id"),
    )

    # Insertion sequence; breaks created_at ties.
    sequence: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(
        String(36), unique=True, nullable=False, default=generate_uuid
    )
    check_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("compliance_checks.id"), nullable=True, index=True
    )
    order_id: Mapped[str] = mapped_column(String(100), nullable=False)
    delivery_id: Mapped[str] = mapped_column(String(100), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    actor_type: Mapped[str] = mapped_column(String(20), nullable=False, default="system")
    actor_id: Mapped[str] = mapped_column(String(255), nullable=False, default="system")
    metadata_: Mapped[dict] = mapped_column("metadata", JSON, default=dict)
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    event_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    signature: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )


@event.listens_for(AuditLogEntryModel, "before_update")
def _reject_update(mapper, connection, target):
    raise AuditLogImmutableError()


@event.listens_for(AuditLogEntryModel, "before_delete")
def _reject_delete(mapper, connection, target):
    raise AuditLogImmutableError()
