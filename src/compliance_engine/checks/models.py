"""SQLAlchemy model for per-delivery compliance checks."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, validates

from compliance_engine.common.models import Base, TimestampMixin, generate_uuid


class ComplianceCheckModel(Base, TimestampMixin):
    __tablename__ = "compliance_checks"
    __table_args__ = (
        UniqueConstraint(
            "order_id", "delivery_id", "check_type",
            name="uq_check_order_delivery_type",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    order_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    delivery_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    customer_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    policy_scope: Mapped[str] = mapped_column(String(100), nullable=False)

    check_type: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    check_data: Mapped[dict] = mapped_column(JSON, default=dict)
    blocks_delivery: Mapped[bool] = mapped_column(Boolean, nullable=False)

    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    override_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    verification_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    verified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    verification_method: Mapped[str | None] = mapped_column(String(20), nullable=True)
    verified_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    overridden_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    overridden_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    @validates("blocks_delivery")
    def _freeze_blocks_delivery(self, key: str, value: bool) -> bool:
        current = self.__dict__.get("blocks_delivery")
        if current is not None and value != current:
            raise ValueError("blocks_delivery is fixed when the check is created")
        return value
