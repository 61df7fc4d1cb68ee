"""Persistent backing stores for the IP cache."""

import asyncio
import time
from typing import Protocol

from sqlalchemy import Boolean, Float, Integer, String, delete
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.pool import StaticPool

from iplocate.models.cache import CacheRecord


class CacheStore(Protocol):
    """Durable storage the in-process cache reads through and writes through to."""

    async def search(self, ip: str) -> CacheRecord | None: ...

    async def write(self, record: CacheRecord) -> None: ...

    async def clear(self) -> None: ...

    async def delete_expired(self, max_age: float, now: float | None = None) -> int: ...


class InMemoryCacheStore:
    """Process local store, used when no cache database is configured."""

    def __init__(self) -> None:
        self._records: dict[str, CacheRecord] = {}

    async def search(self, ip: str) -> CacheRecord | None:
        return self._records.get(ip)

    async def write(self, record: CacheRecord) -> None:
        self._records[record.ip] = record

    async def clear(self) -> None:
        self._records.clear()

    async def delete_expired(self, max_age: float, now: float | None = None) -> int:
        threshold = (time.time() if now is None else now) - max_age
        expired = [ip for ip, record in self._records.items() if record.timestamp < threshold]
        for ip in expired:
            del self._records[ip]
        return len(expired)


class Base(DeclarativeBase):
    """Declarative base class for ORM models."""


class IpCacheRow(Base):
    __tablename__ = "ip_cache"

    ip: Mapped[str] = mapped_column(String(45), primary_key=True)
    timestamp: Mapped[float] = mapped_column(Float, index=True)
    hook: Mapped[str] = mapped_column(String(16))
    asn: Mapped[str | None] = mapped_column(String(32), nullable=True)
    country_code: Mapped[str] = mapped_column(String(2))
    authenticated: Mapped[bool] = mapped_column(Boolean, default=False)
    fail_count: Mapped[int] = mapped_column(Integer, default=0)
    request_count: Mapped[int] = mapped_column(Integer, default=0)
    last_access: Mapped[float] = mapped_column(Float)
    view_count: Mapped[int] = mapped_column(Integer, default=1)
    host: Mapped[str | None] = mapped_column(String(255), nullable=True)


def async_database_url(database_url: str) -> str:
    """Return the async driver URL for `database_url` (`sqlite:` URLs use aiosqlite)."""
    if database_url.startswith("sqlite://"):
        return database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return database_url


def create_cache_engine(database_url: str) -> AsyncEngine:
    url = async_database_url(database_url)
    engine_kwargs: dict = {"pool_pre_ping": True}
    if url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite+aiosqlite://", "sqlite+aiosqlite:///:memory:"):
            # A single shared connection, otherwise every connection sees its own empty database.
            engine_kwargs["poolclass"] = StaticPool
    return create_async_engine(url, **engine_kwargs)


class SqlCacheStore:
    """SQLAlchemy backed store keeping one row per IP address in the `ip_cache` table.

    The table is created on first use.
    """

    def __init__(self, database_url: str) -> None:
        self._engine = create_cache_engine(database_url)
        self._session_factory = async_sessionmaker(bind=self._engine, expire_on_commit=False)
        self._schema_lock = asyncio.Lock()
        self._schema_ready = False

    async def _ensure_schema(self) -> None:
        if self._schema_ready:
            return
        async with self._schema_lock:
            if not self._schema_ready:
                async with self._engine.begin() as conn:
                    await conn.run_sync(Base.metadata.create_all)
                self._schema_ready = True

    async def search(self, ip: str) -> CacheRecord | None:
        await self._ensure_schema()
        async with self._session_factory() as session:
            row = await session.get(IpCacheRow, ip)
            if row is None:
                return None
            return CacheRecord.model_validate(row, from_attributes=True)

    async def write(self, record: CacheRecord) -> None:
        await self._ensure_schema()
        async with self._session_factory() as session:
            await session.merge(IpCacheRow(**record.model_dump()))
            await session.commit()

    async def clear(self) -> None:
        await self._ensure_schema()
        async with self._session_factory() as session:
            await session.execute(delete(IpCacheRow))
            await session.commit()

    async def delete_expired(self, max_age: float, now: float | None = None) -> int:
        await self._ensure_schema()
        threshold = (time.time() if now is None else now) - max_age
        async with self._session_factory() as session:
            result = await session.execute(delete(IpCacheRow).where(IpCacheRow.timestamp < threshold))
            await session.commit()
            return result.rowcount

    async def dispose(self) -> None:
        await self._engine.dispose()


def create_cache_store(database_url: str | None) -> CacheStore:
    if database_url:
        return SqlCacheStore(database_url)
    return InMemoryCacheStore()
