"""FastAPI application factory for Compliance-Engine."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from compliance_engine.common.config import get_settings
from compliance_engine.common.exceptions import ComplianceError
from compliance_engine.common.logging import setup_logging
from compliance_engine.common.schemas import ErrorResponse, HealthResponse

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        from compliance_engine.deps import get_db, get_registry
        db = get_db()
        await db.init()
        await db.create_all()
        logger.info(
            "Compliance-Engine started",
            extra={"environment": settings.environment,
                   "policy_scopes": get_registry().scopes()},
        )
        yield
        await db.close()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Domain errors that escape a router's own translation
    @app.exception_handler(ComplianceError)
    async def compliance_error_handler(request: Request, exc: ComplianceError):
        logger.error(
            "Unhandled compliance error",
            extra={"path": request.url.path, "code": exc.code},
        )
        body = ErrorResponse(error=type(exc).__name__, code=exc.code, detail=exc.message)
        return JSONResponse(status_code=exc.status_code, content={"detail": body.model_dump()})

    @app.get("/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(version=settings.api_version)

    from compliance_engine.checks.router import router as checks_router
    from compliance_engine.audit.router import router as audit_router

    prefix = settings.api_prefix
    app.include_router(checks_router, prefix=prefix, tags=["compliance"])
    app.include_router(audit_router, prefix=prefix, tags=["audit"])

    return app
