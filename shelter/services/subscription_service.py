# shelter/services/subscription_service.py
"""
Keeps mounted views fresh from the change feed.

A view opens one Subscription covering the tables it is derived from. Any
event on those tables, and any change-feed reconnect, triggers a full
reload of the view; nothing is patched incrementally. Closing the view
releases the subscription, and a load that finishes after close is
discarded.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Generic, Iterable, Optional, TypeVar
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from shelter.core.store import InventoryStore
from shelter.realtime.change_feed import ChangeCallback, ChangeEvent, ReconnectCallback, SubscriptionHandle
from shelter.schemas.bed import OccupancySnapshot, OccupancyStats
from shelter.schemas.room import RoomResponse
from shelter.services.inventory_service import list_rooms, list_wards
from shelter.services.occupancy_service import load_snapshot

logger = logging.getLogger(__name__)

T = TypeVar("T")

TIMEOUT_ERROR = "Data fetch timeout"


class Subscription:
    """
    Change-feed interest in a set of tables, released exactly once.
    """

    def __init__(
        self,
        manager: "SubscriptionManager",
        handles: list[SubscriptionHandle],
        on_reconnect: Optional[ReconnectCallback],
    ) -> None:
        self._manager = manager
        self.handles = handles
        self.on_reconnect = on_reconnect
        self.closed = False

    @property
    def tables(self) -> list[str]:
        return [handle.table for handle in self.handles]

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._manager._release(self)

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()


class SubscriptionManager:
    def __init__(self, store: InventoryStore) -> None:
        self.store = store
        self._open: list[Subscription] = []

    @property
    def open_count(self) -> int:
        return len(self._open)

    def open(
        self,
        tables: Iterable[str],
        callback: ChangeCallback,
        *,
        event_mask: Iterable[str] | str | None = "*",
        on_reconnect: Optional[ReconnectCallback] = None,
    ) -> Subscription:
        handles = [self.store.subscribe(table, event_mask, callback) for table in tables]
        if on_reconnect is not None:
            self.store.feed.add_reconnect_listener(on_reconnect)
        subscription = Subscription(self, handles, on_reconnect)
        self._open.append(subscription)
        return subscription

    def _release(self, subscription: Subscription) -> None:
        for handle in subscription.handles:
            self.store.unsubscribe(handle)
        if subscription.on_reconnect is not None:
            self.store.feed.remove_reconnect_listener(subscription.on_reconnect)
        if subscription in self._open:
            self._open.remove(subscription)

    def close_all(self) -> None:
        for subscription in list(self._open):
            subscription.close()


class ProjectionView(Generic[T]):
    """
    Base for a mounted view over one or more tables.

    Subclasses set `tables` and implement `_load()`, returning the new data
    and an error message (None on success). `on_update` is awaited after
    every applied reload.
    """

    tables: tuple[str, ...] = ()

    def __init__(
        self,
        store: InventoryStore,
        manager: Optional[SubscriptionManager] = None,
        *,
        on_update: Optional[Callable[["ProjectionView[T]"], Awaitable[None]]] = None,
    ) -> None:
        self.store = store
        self.manager = manager or SubscriptionManager(store)
        self.on_update = on_update
        self.data: Optional[T] = None
        self.error: Optional[str] = None
        self.loading = False
        self.mounted = False
        self.load_count = 0
        self._subscription: Optional[Subscription] = None
        self._refresh_lock = asyncio.Lock()

    async def _load(self) -> tuple[T, Optional[str]]:
        raise NotImplementedError

    async def open(self) -> "ProjectionView[T]":
        if self.mounted:
            return self
        self.mounted = True
        self.loading = True
        self._subscription = self.manager.open(
            self.tables,
            self._on_change,
            on_reconnect=self.refresh,
        )
        await self.refresh()
        return self

    async def _on_change(self, event: ChangeEvent) -> None:
        await self.refresh()

    async def refresh(self) -> None:
        if not self.mounted:
            return
        async with self._refresh_lock:
            self.loading = True
            try:
                data, error = await self._load()
            except Exception as e:
                # keep the last good data; the view must still settle
                logger.error(f"{type(self).__name__} reload failed: {e}", exc_info=True)
                data, error = self.data, str(e) or type(e).__name__
            if not self.mounted:
                logger.debug(f"{type(self).__name__} closed during load; discarding result")
                return
            self.data = data
            self.error = error
            self.loading = False
            self.load_count += 1
        if self.on_update is not None:
            await self.on_update(self)

    def close(self) -> None:
        self.mounted = False
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None

    async def __aenter__(self):
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()


class OccupancyView(ProjectionView[OccupancySnapshot]):
    """Bed board: every active bed with its occupant, plus stats."""

    tables = ("beds", "bed_assignments")

    async def _load(self) -> tuple[OccupancySnapshot, Optional[str]]:
        snapshot = await load_snapshot(self.store)
        return snapshot, snapshot.error

    @property
    def stats(self) -> OccupancyStats:
        return self.data.stats if self.data else OccupancyStats()


async def _bounded_list(store: InventoryStore, loader: Awaitable[list[Any]], what: str) -> tuple[list[Any], Optional[str]]:
    timeout = store.settings.page_load_timeout_seconds
    try:
        return await asyncio.wait_for(loader, timeout=timeout), None
    except asyncio.TimeoutError:
        logger.warning(f"Loading {what} timed out after {timeout}s")
        return [], TIMEOUT_ERROR
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Loading {what} failed: {e}", exc_info=True)
        return [], str(e) or type(e).__name__


class WardListView(ProjectionView[list]):
    tables = ("wards",)

    async def _load(self):
        return await _bounded_list(self.store, list_wards(self.store), "wards")


class RoomListView(ProjectionView[list[RoomResponse]]):
    tables = ("rooms",)

    def __init__(self, store: InventoryStore, ward_id: Optional[UUID] = None, **kwargs) -> None:
        super().__init__(store, **kwargs)
        self.ward_id = ward_id

    async def _load(self):
        return await _bounded_list(self.store, list_rooms(self.store, self.ward_id), "rooms")
