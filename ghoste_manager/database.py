"""
Database configuration and session management.
Uses Supabase Postgres via asyncpg with SQLAlchemy 2 async engine.

`async_session` is the single process-wide session factory. Services never
build their own engine or client; they receive this factory through
`ManagerStore`.
"""

import logging
import ssl
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy import text
from ghoste_manager.config import get_settings
from ghoste_manager.utils import redact_secrets

logger = logging.getLogger(__name__)

settings = get_settings()


def connect_args_for(url: str) -> dict:
    """asyncpg connect args. Supabase hosts (pooler and direct) need SSL."""
    args = {"timeout": 30}  # Fail fast if DB unreachable
    if "supabase.co" in url or "supabase.com" in url:
        ctx = ssl.create_default_context()
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
        args["ssl"] = ctx
        # The transaction pooler does not support prepared statements
        args["statement_cache_size"] = 0
    return args


engine = create_async_engine(
    settings.database_url,
    echo=False,
    pool_size=5,
    max_overflow=10,
    pool_pre_ping=True,
    connect_args=connect_args_for(settings.database_url),
)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def init_db():
    """
    Create all tables defined in models.
    Uses create_all which is safe — it only creates tables that don't exist yet.
    Production schemas are managed by Alembic; this is a development convenience.
    """
    # Import models to ensure they are registered with Base.metadata
    import ghoste_manager.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        logger.info(f"Database initialized with {len(Base.metadata.tables)} tables: "
                    f"{', '.join(Base.metadata.tables.keys())}")


async def check_db_connection() -> bool:
    """Test database connectivity."""
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection failed: {redact_secrets(e)}")
        return False
