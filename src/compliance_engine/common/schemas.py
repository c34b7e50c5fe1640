"""Shared Pydantic schemas for Compliance-Engine."""

from fastapi import HTTPException
from pydantic import BaseModel, Field

from compliance_engine.common.exceptions import ComplianceError
from compliance_engine.common.security import Actor, ActorType


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "0.1.0"
    service: str = "compliance-engine"


class ErrorResponse(BaseModel):
    error: str
    code: str
    detail: str = ""


class ActorPayload(BaseModel):
    actor_id: str = Field(..., min_length=1, max_length=255)
    actor_type: ActorType = ActorType.RUNNER
    permissions: list[str] = Field(default_factory=list)

    def to_actor(self) -> Actor:
        return Actor(
            actor_id=self.actor_id,
            actor_type=self.actor_type,
            permissions=frozenset(self.permissions),
        )


def to_http_exception(exc: ComplianceError) -> HTTPException:
    """Translate a domain error into the HTTP error the routers raise."""
    body = ErrorResponse(error=type(exc).__name__, code=exc.code, detail=exc.message)
    return HTTPException(status_code=exc.status_code, detail=body.model_dump())
