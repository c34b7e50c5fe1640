"""Async database manager for Compliance-Engine (single-DB)."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from sqlalchemy.engine import make_url
from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from compliance_engine.common.config import ComplianceSettings, get_settings
from compliance_engine.common.exceptions import PersistenceError
from compliance_engine.common.models import Base

# Import all model modules so Base.metadata is complete for create_all().
import compliance_engine.checks.models  # noqa: F401
import compliance_engine.audit.models  # noqa: F401

logger = logging.getLogger(__name__)


def classify_storage_error(exc: SQLAlchemyError) -> PersistenceError:
    """Wrap a SQLAlchemy failure, marking lock/connection/timeouts as transient."""
    transient = isinstance(exc, (OperationalError, PoolTimeoutError)) or (
        isinstance(exc, DBAPIError) and exc.connection_invalidated
    )
    kind = "transient" if transient else "permanent"
    return PersistenceError(f"Storage failure ({kind}): {exc.__class__.__name__}", transient=transient)


def _ensure_sqlite_dir(url: str) -> None:
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite" and parsed.database not in (None, "", ":memory:"):
        Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)


class DatabaseManager:
    """Manages a single async database engine."""

    def __init__(self, settings: ComplianceSettings | None = None):
        self._settings = settings or get_settings()
        self.engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    async def init(self) -> None:
        url = self._settings.db_url
        _ensure_sqlite_dir(url)
        self.engine = create_async_engine(url, echo=False)
        self._session_factory = async_sessionmaker(
            self.engine, expire_on_commit=False
        )

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Yield a session whose work commits as one unit or not at all."""
        if self._session_factory is None:
            raise RuntimeError("DatabaseManager not initialized — call init() first")
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.error("Transaction rolled back: %s", exc)
                raise classify_storage_error(exc) from exc
            except Exception:
                await session.rollback()
                raise

    async def create_all(self) -> None:
        if self.engine is None:
            raise RuntimeError("DatabaseManager not initialized — call init() first")
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            self._session_factory = None
