# catalog_sync/db.py
from __future__ import annotations

import pathlib
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncEngine,
    async_sessionmaker,
    AsyncSession,
)
from sqlalchemy.orm import DeclarativeBase

from catalog_sync.config import settings

logger = logging.getLogger("uvicorn.error")


class Base(DeclarativeBase):
    pass


_engine: Optional[AsyncEngine] = None
_sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None


def _resolve_dsn(dsn: Optional[str] = None) -> str:
    """
    Prefer an explicit DSN, then settings.DATABASE_URL,
    else default to a local SQLite database under ./data/.
    """
    dsn = dsn or settings.DATABASE_URL or "sqlite+aiosqlite:///./data/catalog_sync.db"

    # If using SQLite, make sure the folder exists so SQLAlchemy can create the file.
    if dsn.startswith("sqlite") and ":memory:" not in dsn:
        # Handle sqlite+aiosqlite:///./data/x.db or sqlite+aiosqlite:////code/data/x.db
        sep = "///" if "///" in dsn else "//"
        path_part = dsn.split(sep, 1)[1] if sep in dsn else ""
        if path_part:
            try:
                path = pathlib.Path(path_part).resolve()
                path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                logger.warning("[DB] Could not ensure SQLite directory exists: %s", e)

    return dsn


def create_engine(dsn: Optional[str] = None) -> AsyncEngine:
    return create_async_engine(_resolve_dsn(dsn), echo=False, pool_pre_ping=True)


def get_engine() -> AsyncEngine:
    """
    Lazily create the process-wide AsyncEngine and sessionmaker.
    """
    global _engine, _sessionmaker
    if _engine is None:
        _engine = create_engine()
        _sessionmaker = async_sessionmaker(_engine, expire_on_commit=False)
        logger.info("[DB] engine initialized for %s", _engine.url.render_as_string(hide_password=True))
    return _engine


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """
    Get the global async session factory.
    """
    if _sessionmaker is None:
        get_engine()
    return _sessionmaker  # type: ignore[return-value]


async def init_db(engine: Optional[AsyncEngine] = None) -> None:
    """
    Create the tables the store needs; also validates connectivity.
    """
    # Register ORM tables on Base.metadata
    from catalog_sync.models import custom_object  # noqa: F401

    eng = engine or get_engine()
    try:
        async with eng.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except Exception as e:
        logger.error("[DB] initial connect failed: %s", e)
        raise


async def dispose_engine() -> None:
    global _engine, _sessionmaker
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _sessionmaker = None
