"""SQLAlchemy async engine/session primitives and health checks."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional, Tuple

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from folder_core.core.config import get_settings


Base = declarative_base()


def ensure_sqlite_directory(database_url: str) -> None:
    """Create the parent directory of a file-backed sqlite database."""

    url = make_url(database_url)
    if not url.drivername.startswith("sqlite"):
        return
    database = url.database or ""
    if not database or database == ":memory:" or database.startswith("file:"):
        return
    Path(database).expanduser().parent.mkdir(parents=True, exist_ok=True)


@lru_cache(maxsize=1)
def get_engine() -> AsyncEngine:
    settings = get_settings()
    kwargs: dict[str, object] = {"pool_pre_ping": True}

    if settings.database_url.startswith("sqlite"):
        ensure_sqlite_directory(settings.database_url)
        kwargs["connect_args"] = {"check_same_thread": False}

    return create_async_engine(settings.database_url, **kwargs)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


async def init_models(engine: AsyncEngine) -> None:
    """Create folder tables when they are missing."""

    load_models()
    async with engine.begin() as connection:
        await connection.run_sync(lambda sync_connection: Base.metadata.create_all(sync_connection, checkfirst=True))


async def test_connection(engine: AsyncEngine | None = None) -> Tuple[bool, Optional[str]]:
    try:
        async with (engine or get_engine()).connect() as connection:
            await connection.execute(text("SELECT 1"))
        return True, None
    except Exception as exc:  # pragma: no cover
        return False, str(exc)


def load_models() -> None:
    """Import ORM models so Base metadata contains all mapped tables."""

    # Import side effect is intentional here.
    import folder_core.storage.models  # noqa: F401
