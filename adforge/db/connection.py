"""
Database Connection Manager
===========================

Handles the async connection to the durable store (SQLite by default).
"""

from pathlib import Path
from typing import Optional

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, async_sessionmaker, AsyncSession

from adforge.db.models import Base

# Last engine created by init_db(); close_db() disposes it. Callers receive the maker explicitly.
_async_session_maker: Optional[async_sessionmaker[AsyncSession]] = None
_engine: Optional[AsyncEngine] = None


def sqlite_url(path: Path) -> str:
    """Build an aiosqlite URL for a database file."""
    return f"sqlite+aiosqlite:///{Path(path)}"


async def init_db(database_url: str, echo: bool = False) -> async_sessionmaker[AsyncSession]:
    """
    Initialize the database connection and create tables if they don't exist.

    For file-backed SQLite URLs the parent directory is created first.
    """
    global _async_session_maker, _engine

    url = make_url(database_url)
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    _engine = create_async_engine(database_url, echo=echo)

    # Create tables
    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    _async_session_maker = async_sessionmaker(_engine, expire_on_commit=False)

    return _async_session_maker


async def close_db() -> None:
    """Dispose of the engine created by init_db()."""
    global _async_session_maker, _engine
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _async_session_maker = None
