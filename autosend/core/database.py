import ssl
from collections.abc import AsyncGenerator
from typing import Any
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from autosend.config import get_settings
from autosend.core.logging import get_logger

logger = get_logger(__name__)

settings = get_settings()

LOCAL_HOSTS = ("localhost", "127.0.0.1", "db")


def prepare_database_url(url: str) -> tuple[str, dict[str, Any]]:
    """
    Strip libpq-only query params from a Postgres URL for asyncpg.

    Hosted Postgres URLs carry params like sslmode or channel_binding that
    asyncpg rejects. They are removed and SSL is passed via connect_args
    instead, except for local hosts. SQLite URLs are returned untouched.
    """
    parsed = urlparse(url)
    if parsed.scheme.startswith("sqlite"):
        return url, {}

    params = parse_qs(parsed.query)
    for param in ("sslmode", "channel_binding", "options"):
        params.pop(param, None)

    clean_url = urlunparse(parsed._replace(query=urlencode(params, doseq=True)))

    hostname = parsed.hostname or ""
    if hostname in LOCAL_HOSTS:
        return clean_url, {}
    return clean_url, {"ssl": ssl.create_default_context()}


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create the async engine for a database URL."""
    clean_url, connect_args = prepare_database_url(url)
    if clean_url.startswith("sqlite"):
        return create_async_engine(clean_url, echo=echo, connect_args={"timeout": 30})

    return create_async_engine(
        clean_url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
        pool_recycle=280,
        connect_args=connect_args,
    )


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory used by the API, the planner and the executor."""
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def upsert_dialect(db: AsyncSession) -> Any:
    """Return the dialect module whose ``insert`` supports ON CONFLICT."""
    dialect_name = db.get_bind().dialect.name
    if dialect_name == "postgresql":
        return postgresql
    if dialect_name == "sqlite":
        return sqlite
    raise RuntimeError(f"Unsupported database dialect: {dialect_name}")


engine = build_engine(settings.database_url, echo=settings.debug)

AsyncSessionLocal = build_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency that provides a database session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            logger.bind(error=str(e)).error("database_transaction_rollback")
            await session.rollback()
            raise
