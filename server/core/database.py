"""Async SQLite persistence for state entries with SQLModel and SQLAlchemy 2.0."""

import time
from typing import List, Optional
from sqlmodel import SQLModel, select
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.exc import IntegrityError
from contextlib import asynccontextmanager

from core.config import Settings
from models.store import StateEntry
from core.logging import get_logger

logger = get_logger(__name__)


class Database:
    """Async database service with SQLModel.

    Unlike a cache, failures here are not swallowed: callers need to tell a
    missing key apart from a broken store.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.engine = None
        self.async_session = None

    async def startup(self):
        """Initialize database connection and create tables."""
        try:
            self.engine = create_async_engine(
                self.settings.database_url,
                echo=False,
                future=True
            )

            self.async_session = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False
            )

            async with self.engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)

            logger.info("Database initialized successfully", url=self.settings.database_url)

        except Exception as e:
            logger.error("Database startup failed", error=str(e))
            raise

    async def shutdown(self):
        """Close database connections."""
        if self.engine:
            await self.engine.dispose()
            logger.info("Database connections closed")

    @asynccontextmanager
    async def get_session(self):
        """Get async database session."""
        if not self.async_session:
            raise RuntimeError("Database not initialized")

        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    # ============================================================================
    # State Entries
    # ============================================================================

    async def get_state_entry(self, key: str) -> Optional[str]:
        """Get value by key. Returns None if expired or not found."""
        async with self.get_session() as session:
            stmt = select(StateEntry).where(StateEntry.key == key)
            result = await session.execute(stmt)
            entry = result.scalar_one_or_none()

            if not entry:
                return None

            if entry.expires_at and entry.expires_at < time.time():
                await session.delete(entry)
                await session.commit()
                return None

            return entry.value

    async def set_state_entry(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        """Insert or replace a value with optional TTL in seconds."""
        expires_at = time.time() + ttl if ttl else None

        async with self.get_session() as session:
            stmt = select(StateEntry).where(StateEntry.key == key)
            result = await session.execute(stmt)
            existing = result.scalar_one_or_none()

            if existing:
                existing.value = value
                existing.expires_at = expires_at
                existing.created_at = time.time()
            else:
                session.add(StateEntry(
                    key=key,
                    value=value,
                    expires_at=expires_at,
                    created_at=time.time()
                ))

            await session.commit()

    async def insert_state_entry(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        """Insert a value only if the key is free (or its previous holder expired).

        Returns False when a live entry already holds the key.
        """
        now = time.time()
        expires_at = now + ttl if ttl else None

        async with self.get_session() as session:
            stmt = select(StateEntry).where(StateEntry.key == key)
            result = await session.execute(stmt)
            existing = result.scalar_one_or_none()

            if existing:
                if not existing.expires_at or existing.expires_at >= now:
                    return False
                await session.delete(existing)
                await session.flush()

            session.add(StateEntry(key=key, value=value, expires_at=expires_at, created_at=now))
            try:
                await session.commit()
            except IntegrityError:
                # Another writer inserted the key between our read and commit
                await session.rollback()
                return False
            return True

    async def delete_state_entry(self, key: str) -> bool:
        """Delete entry by key. Returns True if something was removed."""
        async with self.get_session() as session:
            stmt = select(StateEntry).where(StateEntry.key == key)
            result = await session.execute(stmt)
            entry = result.scalar_one_or_none()

            if not entry:
                return False

            await session.delete(entry)
            await session.commit()
            return True

    async def delete_state_entry_if(self, key: str, value: str) -> bool:
        """Delete entry only while it still holds value, in a single statement."""
        async with self.get_session() as session:
            stmt = delete(StateEntry).where(StateEntry.key == key).where(StateEntry.value == value)
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount > 0

    async def list_state_keys(self, prefix: str) -> List[str]:
        """List live keys starting with a literal prefix, in ascending key order."""
        async with self.get_session() as session:
            stmt = (
                select(StateEntry.key)
                .where(StateEntry.key.startswith(prefix, autoescape=True))
                .where((StateEntry.expires_at.is_(None)) | (StateEntry.expires_at >= time.time()))
                .order_by(StateEntry.key)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def ping(self) -> bool:
        """Check database connectivity."""
        from sqlalchemy import text
        async with self.get_session() as session:
            await session.execute(text("SELECT 1"))
        return True
