"""
Conexión a la base de datos local.

La base guarda clientes, órdenes, transacciones, suscripciones, el caché de
planes de Razorpay y el log de actividad. Por defecto es SQLite con
aiosqlite; DATABASE_URL acepta cualquier URL asíncrona de SQLAlchemy.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from razorpay_bridge.core.config import get_settings
from razorpay_bridge.db.models import Base
from razorpay_bridge.utils.error_handler import DatabaseException

logger = logging.getLogger(__name__)


class ConnDB:
    """
    Engine y fábrica de sesiones compartidos por el proceso.

    Se crea una sola instancia (ver get_db_connection); `initialize()` se
    llama en el lifespan y `close()` al apagar.
    """

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or get_settings().DATABASE_URL
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker] = None
        self._verified = False

    def is_initialized(self) -> bool:
        return self.session_factory is not None and self._verified

    async def initialize(self, create_tables: bool = True) -> None:
        """
        Crea el engine, las tablas que falten y verifica la conexión.

        Raises:
            DatabaseException: Si la base no responde
        """
        if self.engine is not None:
            logger.info("Database connection already initialized")
            return

        logger.info(f"Initializing database connection ({self.database_url.split('://')[0]})...")

        try:
            self.engine = create_async_engine(
                self.database_url, echo=get_settings().DATABASE_ECHO, pool_pre_ping=True
            )
            self.session_factory = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)

            if create_tables:
                async with self.engine.begin() as conn:
                    await conn.run_sync(Base.metadata.create_all)

            if not await self._select_one():
                raise DatabaseException("Connection test returned unexpected value", operation="test")
        except Exception as e:
            logger.error(f"Failed to initialize database connection: {e}")
            await self.close()
            if isinstance(e, DatabaseException):
                raise
            raise DatabaseException(f"Failed to initialize database connection: {e}", operation="initialization") from e

        self._verified = True
        logger.info("Database connection initialized successfully")

    async def _select_one(self) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(text("SELECT 1"))
            return result.scalar() == 1

    @asynccontextmanager
    async def get_session(self) -> AsyncIterator[AsyncSession]:
        """
        Sesión transaccional: commit al salir, rollback si hay error.

        Raises:
            DatabaseException: Si no se llamó a initialize()
        """
        if not self.is_initialized():
            raise DatabaseException(
                "Database connection not initialized. Call initialize() first.", operation="session_creation"
            )

        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def health_check(self) -> Dict[str, Any]:
        """
        Ejecuta `SELECT 1` y mide el tiempo de respuesta.

        Returns:
            dict: connection_initialized, test_passed y response_time_ms
        """
        info: Dict[str, Any] = {
            "connection_initialized": self.is_initialized(),
            "test_passed": False,
            "response_time_ms": None,
        }
        if not self.is_initialized():
            return info

        started = time.perf_counter()
        try:
            info["test_passed"] = await self._select_one()
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
        info["response_time_ms"] = round((time.perf_counter() - started) * 1000, 2)

        return info

    async def close(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
            logger.info("Database engine disposed")

        self.engine = None
        self.session_factory = None
        self._verified = False


_connection: Optional[ConnDB] = None


def get_db_connection() -> ConnDB:
    """Conexión compartida del proceso."""
    global _connection
    if _connection is None:
        _connection = ConnDB()
    return _connection
