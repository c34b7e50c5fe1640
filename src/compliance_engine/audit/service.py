"""Audit logger: record, verify and query the append-only compliance trail."""

import hashlib
import hmac as hmac_mod
import json
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from compliance_engine.audit.models import AuditLogEntryModel
from compliance_engine.checks.states import AuditAction
from compliance_engine.common.config import ComplianceSettings
from compliance_engine.common.models import utcnow
from compliance_engine.common.security import Actor


def _as_utc(value: datetime) -> datetime:
    # SQLite hands timezone-aware columns back naive.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class AuditLogger:
    """Write-once event log, hash-chained and signed per check."""

    def __init__(self, settings: ComplianceSettings):
        self.settings = settings

    # ── Write ──

    async def record(
        self,
        session: AsyncSession,
        *,
        check_id: str,
        order_id: str,
        delivery_id: str,
        action: AuditAction,
        actor: Actor,
        metadata: dict[str, Any] | None = None,
    ) -> AuditLogEntryModel:
        """Append an entry to the check's chain inside the caller's transaction."""
        metadata = metadata or {}

        head = await self.get_chain_head(session, check_id)
        prev_hash = head.event_hash if head else None

        # created_at never goes backwards along a check's chain
        created_at = utcnow()
        if head is not None and _as_utc(head.created_at) > created_at:
            created_at = _as_utc(head.created_at)

        event_hash = self._compute_event_hash(
            check_id, order_id, delivery_id, action.value,
            actor.actor_type.value, actor.actor_id, metadata, prev_hash,
        )

        entry = AuditLogEntryModel(
            check_id=check_id,
            order_id=order_id,
            delivery_id=delivery_id,
            action=action.value,
            actor_type=actor.actor_type.value,
            actor_id=actor.actor_id,
            metadata_=metadata,
            prev_hash=prev_hash,
            event_hash=event_hash,
            signature=self._sign(event_hash),
            created_at=created_at,
        )
        session.add(entry)
        await session.flush()
        return entry

    # ── Read ──

    async def get_chain_head(
        self, session: AsyncSession, check_id: str,
    ) -> AuditLogEntryModel | None:
        """Return the most recent entry for a check."""
        result = await session.execute(
            select(AuditLogEntryModel)
            .where(AuditLogEntryModel.check_id == check_id)
            .order_by(AuditLogEntryModel.sequence.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_entries(
        self,
        session: AsyncSession,
        order_id: str,
        delivery_id: str,
        check_id: str | None = None,
        action: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[AuditLogEntryModel]:
        """Entries for a delivery in creation order, oldest first."""
        query = select(AuditLogEntryModel).where(
            AuditLogEntryModel.order_id == order_id,
            AuditLogEntryModel.delivery_id == delivery_id,
        )
        if check_id:
            query = query.where(AuditLogEntryModel.check_id == check_id)
        if action:
            query = query.where(AuditLogEntryModel.action == action)
        query = query.order_by(
            AuditLogEntryModel.created_at.asc(), AuditLogEntryModel.sequence.asc()
        ).offset(offset)
        if limit is not None:
            query = query.limit(limit)
        result = await session.execute(query)
        return list(result.scalars().all())

    async def history(self, session: AsyncSession, check_id: str) -> list[str]:
        """Status sequence of a check rebuilt from its audit entries."""
        result = await session.execute(
            select(AuditLogEntryModel)
            .where(AuditLogEntryModel.check_id == check_id)
            .order_by(AuditLogEntryModel.sequence.asc())
        )
        statuses: list[str] = []
        for entry in result.scalars():
            new_status = (entry.metadata_ or {}).get("new_status")
            if new_status:
                statuses.append(new_status)
        return statuses

    # ── Verify ──

    async def verify_chain(
        self, session: AsyncSession, order_id: str, delivery_id: str,
    ) -> dict[str, Any]:
        """Walk every check's chain oldest→newest, verify hashes and signatures."""
        result = await session.execute(
            select(AuditLogEntryModel)
            .where(
                AuditLogEntryModel.order_id == order_id,
                AuditLogEntryModel.delivery_id == delivery_id,
            )
            .order_by(AuditLogEntryModel.sequence.asc())
        )
        entries = list(result.scalars().all())

        heads: dict[str | None, str | None] = {}
        for checked, entry in enumerate(entries):
            prev_hash = heads.get(entry.check_id)
            expected_hash = self._compute_event_hash(
                entry.check_id, entry.order_id, entry.delivery_id, entry.action,
                entry.actor_type, entry.actor_id, entry.metadata_ or {}, entry.prev_hash,
            )
            if (
                entry.prev_hash != prev_hash
                or entry.event_hash != expected_hash
                or not self._verify_signature(entry.event_hash, entry.signature)
            ):
                return {"valid": False, "events_checked": checked, "break_at": entry.id}
            heads[entry.check_id] = entry.event_hash

        return {"valid": True, "events_checked": len(entries), "break_at": None}

    # ── Internal helpers ──

    @staticmethod
    def _compute_event_hash(
        check_id: str | None,
        order_id: str,
        delivery_id: str,
        action: str,
        actor_type: str,
        actor_id: str,
        metadata: dict[str, Any],
        prev_hash: str | None,
    ) -> str:
        """SHA-256 of canonical JSON of the entry fields."""
        canonical = json.dumps(
            {
                "check_id": check_id,
                "order_id": order_id,
                "delivery_id": delivery_id,
                "action": action,
                "actor_type": actor_type,
                "actor_id": actor_id,
                "metadata": metadata,
                "prev_hash": prev_hash,
            },
            sort_keys=True,
            separators=(",", ":"),
        )
        return hashlib.sha256(canonical.encode()).hexdigest()

    def _sign(self, event_hash: str) -> str:
        """HMAC-SHA256 of event_hash with the current HMAC key."""
        return hmac_mod.new(
            self.settings.current_hmac_key.encode(),
            event_hash.encode(),
            hashlib.sha256,
        ).hexdigest()

    def _verify_signature(self, event_hash: str, signature: str) -> bool:
        """Verify signature against all keys in the keyring."""
        for _version, key in self.settings.hmac_keyring.items():
            expected = hmac_mod.new(
                key.encode(), event_hash.encode(), hashlib.sha256,
            ).hexdigest()
            if hmac_mod.compare_digest(expected, signature):
                return True
        return False
