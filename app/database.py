# app/database.py

# type: ignore[misc]
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import declarative_base
from app.core.config import get_settings

settings = get_settings()

database_url = settings.DATABASE_URL
if not database_url:
    raise ValueError("DATABASE_URL is not set in environment variables")


def build_engine(url: str, **overrides):
    """Create the async engine; pool sizing only applies to server databases."""
    options = dict(echo=False, future=True)
    if url.startswith("postgresql"):
        options.update(
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT,
            pool_recycle=settings.DB_POOL_RECYCLE,
            pool_pre_ping=True,
        )
    options.update(overrides)
    return create_async_engine(url, **options)


engine = build_engine(database_url)


async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)

Base = declarative_base()

