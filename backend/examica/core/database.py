from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker, declarative_base
import asyncio
import logging
from .config import settings
from .errors import DependencyUnavailable

logger = logging.getLogger(__name__)


def engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"echo": False}
    return {
        "pool_size": 20,
        "max_overflow": 40,
        "pool_pre_ping": True,
        "pool_recycle": 1800,
        "pool_timeout": 20,
        "echo": False,
        "connect_args": {
            "server_settings": {
                "application_name": "examica_async"
            }
        },
    }


async_engine = create_async_engine(
    settings.async_database_url,
    **engine_options(settings.async_database_url)
)


def make_session_factory(engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


AsyncSessionLocal = make_session_factory(async_engine)

Base = declarative_base()


async def get_async_db() -> AsyncSession:
    max_retries = 3
    retry_delay = 1

    for attempt in range(max_retries):
        session = AsyncSessionLocal()
        try:
            await session.connection()
        except (OperationalError, OSError) as e:
            await session.close()
            if attempt == max_retries - 1:
                raise DependencyUnavailable("Database unavailable") from e
            logger.warning(f"Database connection attempt {attempt + 1} failed, retrying in {retry_delay}s: {e}")
            await asyncio.sleep(retry_delay)
            retry_delay *= 2
            continue

        try:
            yield session
        finally:
            await session.close()
        return


async def create_db_and_tables(engine=async_engine):
    # Import for side effects: registers every table on Base.metadata
    from .. import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all, checkfirst=True)
    logger.info("Database tables created successfully")
