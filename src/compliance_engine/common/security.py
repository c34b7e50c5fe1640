"""API key authentication and actor authorization."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from fastapi import Header, HTTPException


class ActorType(str, Enum):
    SYSTEM = "system"
    RUNNER = "runner"
    ADMIN = "admin"


class Capability(str, Enum):
    MANAGE_DELIVERIES = "manage:deliveries"


@dataclass(frozen=True)
class Actor:
    """Whoever is performing an operation: the evaluator, a runner or an admin."""
    actor_id: str
    actor_type: ActorType = ActorType.RUNNER
    permissions: frozenset[str] = field(default_factory=frozenset)


SYSTEM_ACTOR = Actor(actor_id="system", actor_type=ActorType.SYSTEM)


class Authorizer(Protocol):
    def has_capability(self, actor: Actor, capability: Capability) -> bool:
        ...


class RolePermissionAuthorizer:
    """Administrators hold every capability; others need the explicit permission."""

    def has_capability(self, actor: Actor, capability: Capability) -> bool:
        if actor.actor_type is ActorType.ADMIN:
            return True
        return capability.value in actor.permissions


async def require_api_key(
    x_compliance_api_key: str = Header(..., alias="X-Compliance-Api-Key"),
) -> str:
    """FastAPI dependency that validates the service API key from header."""
    from compliance_engine.common.config import get_settings

    settings = get_settings()
    if x_compliance_api_key != settings.api_key:
        raise HTTPException(status_code=403, detail="Invalid API key")
    return x_compliance_api_key
