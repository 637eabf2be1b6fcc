from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from config.settings import get_settings

settings = get_settings()

# Production must run against Postgres
if settings.is_production:
    if not settings.database_url:
        raise RuntimeError("DATABASE_URL is required in production.")
    if "sqlite" in settings.database_url.lower():
        raise RuntimeError("DATABASE_URL points at SQLite; production needs PostgreSQL.")

DATABASE_URL = settings.database_url or "sqlite+aiosqlite:///./yieldcanary.db"

# Hosted Postgres URLs come without a driver; the async engine needs asyncpg
async_url = DATABASE_URL.replace("postgres://", "postgresql://", 1).replace(
    "postgresql://", "postgresql+asyncpg://", 1
)

engine = create_async_engine(
    async_url,
    echo=False,
    pool_pre_ping=True,
)

Base = declarative_base()

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def init_db():
    """Create the users and etfs tables if they are missing."""
    async with engine.begin() as conn:
        # Registers the models on Base.metadata
        import database_models  # noqa: F401
        await conn.run_sync(Base.metadata.create_all)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Request-scoped session. Commits when the handler returns and rolls back
    if it raises.

        @app.get("/api/etfs")
        async def list_etfs(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
