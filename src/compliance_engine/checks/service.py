"""Compliance engine, the only writer of check state.

Every write is a compare-and-set on the check's current status followed by an
audit entry in the same transaction, so a status change never commits without
its audit entry and a stale writer gets ConflictError instead of clobbering a
newer state.
"""

import logging
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from compliance_engine.audit.service import AuditLogger
from compliance_engine.checks import gate
from compliance_engine.checks.models import ComplianceCheckModel
from compliance_engine.checks.payloads import (
    EvaluationContext,
    build_check_data,
    dump_check_data,
    parse_check_data,
)
from compliance_engine.checks.states import (
    AuditAction,
    CheckStatus,
    CheckType,
    VerificationMethod,
    ensure_transition,
    is_terminal,
)
from compliance_engine.common.config import ComplianceSettings
from compliance_engine.common.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    UnknownPolicyScopeError,
    ValidationError,
)
from compliance_engine.common.models import utcnow
from compliance_engine.common.security import (
    SYSTEM_ACTOR,
    Actor,
    Authorizer,
    Capability,
    RolePermissionAuthorizer,
)
from compliance_engine.policy.registry import CheckDefinitionRegistry
from compliance_engine.rules.evaluators import evaluate, has_evaluator

logger = logging.getLogger(__name__)

_TYPE_ORDER = {t.value: i for i, t in enumerate(CheckType)}


class ComplianceEngine:
    """Initialization, automatic evaluation, manual verification and override."""

    def __init__(
        self,
        settings: ComplianceSettings,
        registry: CheckDefinitionRegistry,
        audit_logger: AuditLogger,
        authorizer: Authorizer | None = None,
    ):
        self.settings = settings
        self.registry = registry
        self.audit = audit_logger
        self.authorizer = authorizer or RolePermissionAuthorizer()

    # ── Reads ──

    async def list_checks(
        self, session: AsyncSession, order_id: str, delivery_id: str,
    ) -> list[ComplianceCheckModel]:
        result = await session.execute(
            select(ComplianceCheckModel)
            .where(
                ComplianceCheckModel.order_id == order_id,
                ComplianceCheckModel.delivery_id == delivery_id,
            )
            .execution_options(populate_existing=True)
        )
        return sorted(result.scalars().all(), key=self._definition_order)

    def _definition_order(self, check: ComplianceCheckModel) -> tuple[int, int]:
        """Position in the check's policy scope, enum order as the tie-breaker."""
        try:
            order = [d.check_type.value for d in self.registry.required_checks(check.policy_scope)]
        except UnknownPolicyScopeError:
            order = []
        position = order.index(check.check_type) if check.check_type in order else len(order)
        return position, _TYPE_ORDER[check.check_type]

    async def get_check(self, session: AsyncSession, check_id: str) -> ComplianceCheckModel:
        check = await session.get(ComplianceCheckModel, check_id, populate_existing=True)
        if check is None:
            raise NotFoundError(f"Compliance check '{check_id}' not found")
        return check

    async def evaluate_gate(
        self, session: AsyncSession, order_id: str, delivery_id: str,
    ) -> gate.GateResult:
        """Authoritative gate, computed from the latest committed checks."""
        return gate.evaluate(await self.list_checks(session, order_id, delivery_id))

    # ── Initialization ──

    async def initialize_checks(
        self,
        session: AsyncSession,
        order_id: str,
        delivery_id: str,
        policy_scope: str | None = None,
        context: EvaluationContext | None = None,
        actor: Actor = SYSTEM_ACTOR,
    ) -> list[ComplianceCheckModel]:
        """Create the scope's missing checks as pending. Safe to call repeatedly."""
        scope = policy_scope or self.settings.default_policy_scope
        definitions = self.registry.required_checks(scope)
        policy = self.registry.get_policy(scope)
        context = context or EvaluationContext()

        existing = {c.check_type for c in await self.list_checks(session, order_id, delivery_id)}
        created = 0
        for definition in definitions:
            if definition.check_type.value in existing:
                continue

            payload = build_check_data(definition.check_type, policy, context)
            check = ComplianceCheckModel(
                order_id=order_id,
                delivery_id=delivery_id,
                customer_id=context.customer_id,
                policy_scope=scope,
                check_type=definition.check_type.value,
                status=CheckStatus.PENDING.value,
                check_data=dump_check_data(payload),
                blocks_delivery=definition.blocks_delivery,
            )
            session.add(check)
            try:
                await session.flush()
            except IntegrityError as exc:
                raise ConflictError(
                    f"Checks for order '{order_id}' delivery '{delivery_id}' were "
                    "initialized concurrently; re-read and retry"
                ) from exc

            await self.audit.record(
                session,
                check_id=check.id,
                order_id=order_id,
                delivery_id=delivery_id,
                action=AuditAction.INITIALIZED,
                actor=actor,
                metadata={
                    "check_type": check.check_type,
                    "policy_scope": scope,
                    "blocks_delivery": check.blocks_delivery,
                    "previous_status": None,
                    "new_status": CheckStatus.PENDING.value,
                },
            )
            created += 1

        if created:
            logger.info(
                "Compliance checks initialized",
                extra={"order_id": order_id, "delivery_id": delivery_id,
                       "policy_scope": scope, "created_count": created},
            )
        return await self.list_checks(session, order_id, delivery_id)

    # ── Automatic evaluation ──

    async def auto_verify_system_checks(
        self,
        session: AsyncSession,
        order_id: str,
        delivery_id: str,
        context: EvaluationContext | None = None,
    ) -> list[ComplianceCheckModel]:
        """Evaluate every pending check that has a rule; leave the rest alone."""
        checks = await self.list_checks(session, order_id, delivery_id)
        if not checks:
            raise NotFoundError(
                f"No compliance checks for order '{order_id}' delivery '{delivery_id}'"
            )

        context = context or EvaluationContext()

        for check in checks:
            check_type = CheckType(check.check_type)
            if check.status != CheckStatus.PENDING.value or not has_evaluator(check_type):
                continue

            payload = parse_check_data(check_type, check.check_data).with_observations(context)
            verdict = evaluate(check_type, payload)
            target = CheckStatus.PASSED if verdict.passed else CheckStatus.FAILED
            try:
                await self._transition(
                    session,
                    check,
                    expected=CheckStatus.PENDING,
                    target=target,
                    action=AuditAction.AUTO_VERIFIED,
                    actor=SYSTEM_ACTOR,
                    values={
                        "check_data": dump_check_data(payload),
                        "failure_reason": verdict.reason,
                        "verification_method": VerificationMethod.SYSTEM.value,
                        "verified_by": SYSTEM_ACTOR.actor_id,
                        "verified_at": utcnow(),
                    },
                    metadata={"failure_reason": verdict.reason},
                )
            except ConflictError:
                # Resolved by someone else since we read it; nothing left to do.
                logger.info(
                    "Skipped auto-verification of concurrently resolved check",
                    extra={"check_id": check.id, "check_type": check.check_type},
                )

        return await self.list_checks(session, order_id, delivery_id)

    # ── Human actions ──

    async def manual_verify(
        self,
        session: AsyncSession,
        check_id: str,
        status: CheckStatus | str,
        actor: Actor,
        notes: str | None = None,
        failure_reason: str | None = None,
    ) -> ComplianceCheckModel:
        """Record a runner's or admin's pass/fail on a pending check."""
        try:
            target = CheckStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown status '{status}'") from None
        if target not in (CheckStatus.PASSED, CheckStatus.FAILED):
            raise ValidationError("Manual verification must set status to passed or failed")

        check = await self.get_check(session, check_id)
        self._expect_status(check, CheckStatus.PENDING)

        if target is CheckStatus.FAILED:
            failure_reason = failure_reason or notes or "Marked as failed during manual verification"
        else:
            failure_reason = None

        return await self._transition(
            session,
            check,
            expected=CheckStatus.PENDING,
            target=target,
            action=AuditAction.MANUALLY_VERIFIED,
            actor=actor,
            values={
                "failure_reason": failure_reason,
                "verification_notes": notes,
                "verification_method": VerificationMethod.MANUAL.value,
                "verified_by": actor.actor_id,
                "verified_at": utcnow(),
            },
            metadata={"notes": notes, "failure_reason": failure_reason},
        )

    async def override_check(
        self,
        session: AsyncSession,
        check_id: str,
        reason: str,
        actor: Actor,
    ) -> ComplianceCheckModel:
        """Unblock a failed check with a recorded justification."""
        self._require_capability(actor, "override compliance checks")
        reason = self._require_reason(reason, "Override")

        check = await self.get_check(session, check_id)
        self._expect_status(check, CheckStatus.FAILED)

        updated = await self._transition(
            session,
            check,
            expected=CheckStatus.FAILED,
            target=CheckStatus.OVERRIDE,
            action=AuditAction.OVERRIDDEN,
            actor=actor,
            values={
                "override_reason": reason,
                "overridden_by": actor.actor_id,
                "overridden_at": utcnow(),
            },
            metadata={"reason": reason, "failure_reason": check.failure_reason},
        )
        logger.warning(
            "Compliance check overridden",
            extra={"check_id": check_id, "check_type": updated.check_type,
                   "actor_id": actor.actor_id, "reason": reason},
        )
        return updated

    async def skip_check(
        self,
        session: AsyncSession,
        check_id: str,
        reason: str,
        actor: Actor,
    ) -> ComplianceCheckModel:
        """Administratively mark a pending check as not applicable."""
        self._require_capability(actor, "skip compliance checks")
        reason = self._require_reason(reason, "Skip")

        check = await self.get_check(session, check_id)
        self._expect_status(check, CheckStatus.PENDING)

        return await self._transition(
            session,
            check,
            expected=CheckStatus.PENDING,
            target=CheckStatus.SKIPPED,
            action=AuditAction.SKIPPED,
            actor=actor,
            values={
                "verification_notes": reason,
                "verification_method": VerificationMethod.MANUAL.value,
                "verified_by": actor.actor_id,
                "verified_at": utcnow(),
            },
            metadata={"reason": reason},
        )

    # ── Internal helpers ──

    def _require_capability(self, actor: Actor, what: str) -> None:
        if not self.authorizer.has_capability(actor, Capability.MANAGE_DELIVERIES):
            logger.warning(
                "Permission denied",
                extra={"actor_id": actor.actor_id, "actor_type": actor.actor_type.value,
                       "operation": what},
            )
            raise PermissionDeniedError(
                f"Actor '{actor.actor_id}' is not allowed to {what}"
            )

    def _require_reason(self, reason: str | None, label: str) -> str:
        reason = (reason or "").strip()
        minimum = self.settings.min_override_reason_length
        if not reason:
            raise ValidationError(f"{label} reason is required")
        if len(reason) < minimum:
            raise ValidationError(
                f"{label} reason must be at least {minimum} characters"
            )
        return reason

    @staticmethod
    def _expect_status(check: ComplianceCheckModel, expected: CheckStatus) -> None:
        if check.status != expected.value:
            if is_terminal(CheckStatus(check.status)):
                raise ConflictError(
                    f"Check '{check.id}' is {check.status}, which is final"
                )
            raise ConflictError(
                f"Check '{check.id}' is {check.status}; expected {expected.value}"
            )

    async def _transition(
        self,
        session: AsyncSession,
        check: ComplianceCheckModel,
        *,
        expected: CheckStatus,
        target: CheckStatus,
        action: AuditAction,
        actor: Actor,
        values: dict[str, Any],
        metadata: dict[str, Any],
    ) -> ComplianceCheckModel:
        """Compare-and-set the status, then append the matching audit entry."""
        ensure_transition(expected, target)

        result = await session.execute(
            update(ComplianceCheckModel)
            .where(
                ComplianceCheckModel.id == check.id,
                ComplianceCheckModel.status == expected.value,
            )
            .values(
                status=target.value,
                version=ComplianceCheckModel.version + 1,
                **values,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "Rejected stale transition",
                extra={"check_id": check.id, "expected": expected.value,
                       "target": target.value},
            )
            raise ConflictError(
                f"Check '{check.id}' is no longer {expected.value}; re-read and retry"
            )
        await session.refresh(check)

        await self.audit.record(
            session,
            check_id=check.id,
            order_id=check.order_id,
            delivery_id=check.delivery_id,
            action=action,
            actor=actor,
            metadata={
                "check_type": check.check_type,
                "previous_status": expected.value,
                "new_status": target.value,
                **metadata,
            },
        )
        logger.info(
            "Compliance check transitioned",
            extra={"check_id": check.id, "check_type": check.check_type,
                   "from_status": expected.value, "to_status": target.value,
                   "actor_id": actor.actor_id},
        )
        return check
