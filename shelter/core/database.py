# shelter/core/database.py
from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from shelter.core.config import get_settings


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine(database_url: str | None = None, *, echo: bool | None = None) -> AsyncEngine:
    """
    Build the async SQLAlchemy engine for the inventory database.

    Postgres is reached through asyncpg; SQLite (local runs and tests) through
    aiosqlite, with foreign keys switched on for every connection.
    """
    settings = get_settings()
    url = database_url or settings.database_url
    is_sqlite = make_url(url).get_backend_name() == "sqlite"

    engine_kwargs = {
        "echo": settings.database_echo if echo is None else echo,
        "future": True,
    }
    if not is_sqlite:
        engine_kwargs["pool_pre_ping"] = True

    engine = create_async_engine(url, **engine_kwargs)

    if is_sqlite:
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False: rows returned by a workflow stay readable after commit
    return async_sessionmaker(
        bind=engine,
        autoflush=False,
        expire_on_commit=False,
        class_=AsyncSession,
    )
