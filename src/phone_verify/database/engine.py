"""Database engine and async session factory.

The engine is process-wide: created once at import, tables created once at
startup by :func:`init_db`, and disposed of only when the process exits.
"""

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from phone_verify.config import settings
from phone_verify.models.account import Base
from phone_verify.models import otp_session as _otp_session  # noqa: F401

engine = create_async_engine(settings.database_url, echo=settings.debug)

async_session_factory = async_sessionmaker(engine, expire_on_commit=False)


async def init_db() -> None:
    """Create all tables that don't yet exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
