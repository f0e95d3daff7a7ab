import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator, Iterable, Union

from sqlalchemy import DateTime, TypeDecorator, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from aquarent.config import settings
from aquarent.core.exceptions import ConflictError

logger = logging.getLogger(__name__)


# SQLite doesn't support pool settings, check database type
is_sqlite = settings.DATABASE_URL.startswith("sqlite")

# Convert database URL for proper driver
database_url = settings.DATABASE_URL
if database_url.startswith("postgresql+asyncpg://"):
    # Switch to psycopg for async PostgreSQL
    database_url = database_url.replace("postgresql+asyncpg://", "postgresql+psycopg://")
elif database_url.startswith("postgresql://"):
    database_url = database_url.replace("postgresql://", "postgresql+psycopg://")

# Create async engine with appropriate settings
if is_sqlite:
    engine = create_async_engine(
        database_url,
        echo=settings.DEBUG,
        connect_args={"check_same_thread": False},
    )
else:
    engine = create_async_engine(
        database_url,
        echo=settings.DEBUG,
        pool_pre_ping=True,  # Check connection health before use
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
        connect_args={"connect_timeout": 30},
    )

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime that always round-trips as UTC.

    SQLite drops the offset on storage; values read back are re-tagged as UTC
    so arithmetic against ``datetime.now(timezone.utc)`` stays valid.
    """
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@asynccontextmanager
async def get_db_session():
    """Context manager for getting database session (for background jobs)."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def atomic(session: AsyncSession):
    """
    All-or-nothing unit of work on an existing session.

    Commits when the block exits cleanly. Any exception rolls back every write
    made inside the block and is re-raised. Unique-constraint violations surface
    as ConflictError, since they only happen when a concurrent writer won.
    """
    try:
        yield session
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        logger.warning(f"Transaction rolled back on integrity error: {e.orig}")
        raise ConflictError("Concurrent update detected, please retry") from e
    except Exception as e:
        await session.rollback()
        logger.warning(f"Transaction rolled back: {type(e).__name__}")
        raise


async def guarded_status_update(
    session: AsyncSession,
    model,
    row_id: int,
    expected: Union[str, Iterable[str]],
    new_status: str,
    **values,
) -> None:
    """
    Compare-and-set a row's status.

    The UPDATE only matches while the row is still in one of the expected
    statuses. Zero matched rows means another transaction moved it first.
    """
    expected = [expected] if isinstance(expected, str) else list(expected)
    values.setdefault("updated_at", utcnow())
    stmt = (
        update(model)
        .where(model.id == row_id, model.status.in_(expected))
        .values(status=new_status, **values)
    )
    result = await session.execute(stmt)
    if result.rowcount != 1:
        raise ConflictError(
            f"{model.__name__} {row_id} was modified concurrently and is no longer "
            f"in status {', '.join(expected)}"
        )


async def init_db() -> None:
    """Initialize database tables."""
    # Import all models to register them with Base.metadata
    from aquarent import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Database ready with {len(Base.metadata.tables)} tables")
