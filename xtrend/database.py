from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from xtrend.config import settings

engine = create_async_engine(settings.database_url, echo=settings.debug, pool_pre_ping=True)

# One short-lived session per store operation; see xtrend.store.sql
async_session_factory = async_sessionmaker(
    engine,
    expire_on_commit=False,
    class_=AsyncSession,
)
