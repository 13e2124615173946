from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from dashboard_api.core.config import settings

# Base class for models
Base = declarative_base()

engine = create_async_engine(settings.database_url, future=True, echo=settings.database_echo)

SessionLocal = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


async def get_db():
    async with SessionLocal() as session:
        yield session


async def init_models(bind=engine) -> None:
    """Create missing tables. Production databases are migrated with Alembic instead."""
    # models must be imported so their tables are registered on Base.metadata
    import dashboard_api.db.models  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
