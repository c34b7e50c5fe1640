"""Shared test fixtures for Compliance-Engine."""

import os
import pytest
from httpx import ASGITransport, AsyncClient

from compliance_engine.audit.service import AuditLogger
from compliance_engine.checks.payloads import EvaluationContext
from compliance_engine.checks.service import ComplianceEngine
from compliance_engine.common.config import ComplianceSettings
from compliance_engine.common.database import DatabaseManager
from compliance_engine.common.security import Actor, ActorType, Capability
from compliance_engine.policy.registry import CheckDefinitionRegistry


HMAC_KEY = "test-hmac-key-for-unit-tests"
API_KEY = "test-admin-api-key"


def make_settings(**overrides) -> ComplianceSettings:
    defaults = {"hmac_key": HMAC_KEY, "api_key": API_KEY, "db_url": "sqlite+aiosqlite://"}
    defaults.update(overrides)
    return ComplianceSettings(**defaults)


# Everything passes except zone and quantity; the ID is never auto-checked.
SCENARIO_CONTEXT = {
    "customer_id": "cust-1",
    "customer_age": 34,
    "in_licensed_zone": False,
    "local_time": "14:30",
    "day_of_week": "Tuesday",
    "total_thc_mg": 150.0,
    "total_weight_g": 10.0,
    "is_active": True,
    "is_verified": True,
}

PASSING_CONTEXT = {
    **SCENARIO_CONTEXT,
    "in_licensed_zone": True,
    "total_thc_mg": 50.0,
}


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
async def db(settings):
    manager = DatabaseManager(settings)
    await manager.init()
    await manager.create_all()
    yield manager
    await manager.close()


@pytest.fixture
def audit_logger(settings):
    return AuditLogger(settings)


@pytest.fixture
def engine(settings, audit_logger):
    return ComplianceEngine(settings, CheckDefinitionRegistry(), audit_logger)


@pytest.fixture
def scenario_context():
    return EvaluationContext.model_validate(SCENARIO_CONTEXT)


@pytest.fixture
def runner():
    return Actor(actor_id="runner-7", actor_type=ActorType.RUNNER)


@pytest.fixture
def admin():
    return Actor(actor_id="admin-1", actor_type=ActorType.ADMIN)


@pytest.fixture
def dispatcher():
    """Non-admin holding the delivery-management capability."""
    return Actor(
        actor_id="dispatch-3",
        actor_type=ActorType.RUNNER,
        permissions=frozenset({Capability.MANAGE_DELIVERIES.value}),
    )


@pytest.fixture
def api_key():
    return API_KEY


@pytest.fixture
def app():
    """Create a test app with in-memory DB."""
    os.environ["COMPLIANCE_DB_URL"] = "sqlite+aiosqlite://"
    os.environ["COMPLIANCE_HMAC_KEY"] = HMAC_KEY
    os.environ["COMPLIANCE_API_KEY"] = API_KEY

    # Clear caches and singletons so new env vars take effect
    from compliance_engine.common.config import get_settings
    get_settings.cache_clear()

    from compliance_engine.deps import reset_singletons
    reset_singletons()

    from compliance_engine.app import create_app
    return create_app()


@pytest.fixture
async def client(app):
    # Manually init DB since ASGITransport doesn't run lifespan
    from compliance_engine.deps import get_db
    db = get_db()
    await db.init()
    await db.create_all()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await db.close()


@pytest.fixture
def admin_headers():
    return {"X-Compliance-Api-Key": API_KEY}
