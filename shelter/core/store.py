# shelter/core/store.py
"""
Inventory Store: the relational tables plus their change feed.

Writes go through `transaction()`: the block runs in one database
transaction, records which rows it touched via `record_change()`, and the
recorded events are published only after a successful commit. A failing block
rolls back and publishes nothing.

Reads go through `session()`.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from shelter.core.config import Settings, get_settings
from shelter.core.database import create_engine, create_session_factory
from shelter.models.registry import Base
from shelter.realtime.change_feed import (
    ChangeCallback,
    ChangeEvent,
    ChangeFeed,
    ChangeType,
    SubscriptionHandle,
    build_change_feed,
)

logger = logging.getLogger(__name__)

PENDING_CHANGES_KEY = "pending_changes"


def record_change(
    db: AsyncSession,
    table: str,
    event_type: ChangeType,
    record_ids: Iterable[UUID] | UUID | None = None,
) -> None:
    """
    Remember that `table` rows changed inside the current transaction.
    Events are merged per (table, event type) and published after commit.
    """
    pending: OrderedDict = db.info.setdefault(PENDING_CHANGES_KEY, OrderedDict())
    ids = pending.setdefault((table, event_type), [])
    if record_ids is None:
        return
    if isinstance(record_ids, UUID):
        record_ids = [record_ids]
    for record_id in record_ids:
        if record_id not in ids:
            ids.append(record_id)


class InventoryStore:
    def __init__(
        self,
        engine: AsyncEngine,
        feed: ChangeFeed,
        *,
        settings: Settings | None = None,
    ) -> None:
        self.engine = engine
        self.feed = feed
        self.settings = settings or get_settings()
        self.session_factory: async_sessionmaker[AsyncSession] = create_session_factory(engine)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "InventoryStore":
        settings = settings or get_settings()
        return cls(create_engine(settings.database_url), build_change_feed(settings), settings=settings)

    async def start(self) -> None:
        await self.feed.start()

    async def close(self) -> None:
        await self.feed.close()
        await self.engine.dispose()

    async def create_schema(self) -> None:
        """Create all tables (local runs and tests; Alembic owns production)."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with self.session_factory() as db:
            yield db

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        async with self.session_factory() as db:
            try:
                yield db
                await db.commit()
            except Exception:
                await db.rollback()
                db.info.pop(PENDING_CHANGES_KEY, None)
                raise
            pending = db.info.pop(PENDING_CHANGES_KEY, None) or {}

        for (table, event_type), record_ids in pending.items():
            await self.feed.publish(
                ChangeEvent(table=table, event_type=event_type, record_ids=record_ids)
            )

    def subscribe(
        self,
        table: str,
        event_mask: Iterable[str] | str | None,
        callback: ChangeCallback,
    ) -> SubscriptionHandle:
        return self.feed.subscribe(table, event_mask, callback)

    def unsubscribe(self, handle: SubscriptionHandle) -> None:
        self.feed.unsubscribe(handle)
