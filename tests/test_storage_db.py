import asyncio

import folder_core.storage.db as db_module
from folder_core.core.config import get_settings


def test_default_style_sqlite_path_gets_its_directory(monkeypatch, tmp_path) -> None:
    database_path = tmp_path / "data" / "nested" / "folder.sqlite"
    monkeypatch.setenv("ENV", "development")
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{database_path}")
    get_settings.cache_clear()
    db_module.get_engine.cache_clear()

    async def scenario() -> None:
        engine = db_module.get_engine()
        try:
            assert database_path.parent.is_dir()
            await db_module.init_models(engine)
            ok, error = await db_module.test_connection(engine)
            assert ok is True
            assert error is None
        finally:
            await engine.dispose()

    try:
        asyncio.run(scenario())
        assert database_path.exists()
    finally:
        db_module.get_engine.cache_clear()
        get_settings.cache_clear()


def test_ensure_sqlite_directory_ignores_memory_and_server_urls(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)

    db_module.ensure_sqlite_directory("sqlite+aiosqlite://")
    db_module.ensure_sqlite_directory("sqlite+aiosqlite:///:memory:")
    db_module.ensure_sqlite_directory("postgresql+asyncpg://app:password@db:5432/folder")

    assert list(tmp_path.iterdir()) == []

    db_module.ensure_sqlite_directory("sqlite+aiosqlite:///./data/folder.sqlite")
    assert (tmp_path / "data").is_dir()
