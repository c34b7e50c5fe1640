"""Dependency injection singletons for Compliance-Engine."""

from compliance_engine.audit.service import AuditLogger
from compliance_engine.checks.service import ComplianceEngine
from compliance_engine.common.config import get_settings
from compliance_engine.common.database import DatabaseManager
from compliance_engine.policy.registry import CheckDefinitionRegistry

_db: DatabaseManager | None = None
_registry: CheckDefinitionRegistry | None = None
_audit: AuditLogger | None = None
_engine: ComplianceEngine | None = None


def get_db() -> DatabaseManager:
    global _db
    if _db is None:
        _db = DatabaseManager(get_settings())
    return _db


def get_registry() -> CheckDefinitionRegistry:
    global _registry
    if _registry is None:
        settings = get_settings()
        if settings.policy_file:
            _registry = CheckDefinitionRegistry.from_file(settings.policy_file)
        else:
            _registry = CheckDefinitionRegistry()
    return _registry


def get_audit_logger() -> AuditLogger:
    global _audit
    if _audit is None:
        _audit = AuditLogger(get_settings())
    return _audit


def get_compliance_engine() -> ComplianceEngine:
    global _engine
    if _engine is None:
        _engine = ComplianceEngine(
            get_settings(),
            get_registry(),
            audit_logger=get_audit_logger(),
        )
    return _engine


def reset_singletons() -> None:
    """Reset all singletons (for testing)."""
    global _db, _registry, _audit, _engine
    _db = None
    _registry = None
    _audit = None
    _engine = None
