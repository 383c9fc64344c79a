# shelter/realtime/change_feed.py
"""
Per-table change notifications for the inventory tables.

Writers publish one ChangeEvent per (table, event type) after their
transaction commits. Readers subscribe per table with an event mask and are
called back for every matching event.

Two transports:
- LocalChangeFeed: in-process fan-out (single worker deployments, tests)
- RedisChangeFeed: Redis pub/sub, one channel per table, shared by every
  worker; re-subscribes with capped exponential backoff after connection
  loss and notifies reconnect listeners so views reload in full.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum as PyEnum
from typing import Awaitable, Callable, Iterable, Optional
from uuid import UUID, uuid4

import redis.asyncio as aioredis
from pydantic import BaseModel, Field
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from shelter.utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)

WILDCARD = "*"


class ChangeType(str, PyEnum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ChangeEvent(BaseModel):
    table: str
    event_type: ChangeType
    record_ids: list[UUID] = Field(default_factory=list)
    committed_at: datetime = Field(default_factory=utc_now)


ChangeCallback = Callable[[ChangeEvent], Awaitable[None]]
ReconnectCallback = Callable[[], Awaitable[None]]


def normalize_event_mask(event_mask: Iterable[str] | str | None) -> frozenset[str]:
    """
    Accepts "*", a single event type, or an iterable of them.
    """
    if event_mask is None:
        return frozenset({WILDCARD})
    if isinstance(event_mask, str):
        event_mask = [event_mask]
    mask = set()
    for item in event_mask:
        value = item.value if isinstance(item, ChangeType) else str(item).upper()
        if value != WILDCARD and value not in ChangeType.__members__:
            raise ValueError(f"Unknown change event type: {item}")
        mask.add(value)
    return frozenset(mask or {WILDCARD})


@dataclass(eq=False)
class SubscriptionHandle:
    table: str
    event_mask: frozenset[str]
    callback: ChangeCallback
    id: UUID = field(default_factory=uuid4)

    def matches(self, event: ChangeEvent) -> bool:
        if event.table != self.table:
            return False
        return WILDCARD in self.event_mask or event.event_type.value in self.event_mask


class ChangeFeed:
    """
    Subscription registry and dispatch shared by both transports.
    """

    def __init__(self) -> None:
        self._handles: dict[str, list[SubscriptionHandle]] = defaultdict(list)
        self._reconnect_listeners: list[ReconnectCallback] = []

    def subscribe(
        self,
        table: str,
        event_mask: Iterable[str] | str | None,
        callback: ChangeCallback,
    ) -> SubscriptionHandle:
        handle = SubscriptionHandle(
            table=table,
            event_mask=normalize_event_mask(event_mask),
            callback=callback,
        )
        self._handles[table].append(handle)
        logger.debug(f"Subscribed {handle.id} to {table} {sorted(handle.event_mask)}")
        return handle

    def unsubscribe(self, handle: SubscriptionHandle) -> None:
        handles = self._handles.get(handle.table, [])
        if handle in handles:
            handles.remove(handle)
            logger.debug(f"Unsubscribed {handle.id} from {handle.table}")

    def subscriber_count(self, table: Optional[str] = None) -> int:
        if table is not None:
            return len(self._handles.get(table, []))
        return sum(len(handles) for handles in self._handles.values())

    def add_reconnect_listener(self, callback: ReconnectCallback) -> None:
        self._reconnect_listeners.append(callback)

    def remove_reconnect_listener(self, callback: ReconnectCallback) -> None:
        if callback in self._reconnect_listeners:
            self._reconnect_listeners.remove(callback)

    async def dispatch(self, event: ChangeEvent) -> None:
        """
        Deliver an event to every matching subscriber, in subscription order.
        A failing callback is logged and does not stop delivery to the rest.
        """
        logger.debug(f"Change detected: {event.table} {event.event_type.value} {event.record_ids}")
        for handle in list(self._handles.get(event.table, [])):
            if not handle.matches(event):
                continue
            try:
                await handle.callback(event)
            except Exception:
                logger.error(
                    f"Change listener {handle.id} failed for {event.table} event",
                    exc_info=True,
                )

    async def notify_reconnected(self) -> None:
        for callback in list(self._reconnect_listeners):
            try:
                await callback()
            except Exception:
                logger.error("Reconnect listener failed", exc_info=True)

    async def publish(self, event: ChangeEvent) -> None:
        raise NotImplementedError

    async def start(self) -> None:
        pass

    async def drain(self) -> None:
        """Wait until every published event has been delivered."""

    async def close(self) -> None:
        pass


class LocalChangeFeed(ChangeFeed):
    """
    In-process feed. publish() hands the event to a delivery task and
    returns at once, so a slow subscriber never holds up the writer.
    Deliveries run in publish order.
    """

    def __init__(self) -> None:
        super().__init__()
        self._queue: asyncio.Queue[ChangeEvent] = asyncio.Queue()
        self._delivery_task: Optional[asyncio.Task] = None

    async def publish(self, event: ChangeEvent) -> None:
        self._queue.put_nowait(event)
        if self._delivery_task is None or self._delivery_task.done():
            self._delivery_task = asyncio.create_task(self._deliver())

    async def _deliver(self) -> None:
        while not self._queue.empty():
            event = self._queue.get_nowait()
            try:
                await self.dispatch(event)
            finally:
                self._queue.task_done()

    async def drain(self) -> None:
        await self._queue.join()

    async def close(self) -> None:
        await self.drain()
        self._delivery_task = None


def backoff_delay(attempt: int, initial_delay: float, max_delay: float) -> float:
    """
    Delay before reconnect attempt number `attempt` (0-based): doubles from
    initial_delay, capped at max_delay.
    """
    return min(max_delay, initial_delay * (2 ** attempt))


class RedisChangeFeed(ChangeFeed):
    def __init__(
        self,
        redis_url: str,
        *,
        channel_prefix: str = "shelter:changes",
        reconnect_initial_delay: float = 1.0,
        reconnect_max_delay: float = 30.0,
        client: Optional[aioredis.Redis] = None,
    ) -> None:
        super().__init__()
        self.redis_url = redis_url
        self.channel_prefix = channel_prefix
        self.reconnect_initial_delay = reconnect_initial_delay
        self.reconnect_max_delay = reconnect_max_delay
        self._client = client
        self._listener_task: Optional[asyncio.Task] = None
        self._closing = False
        self.connected = asyncio.Event()
        self.reconnect_count = 0

    def channel_for(self, table: str) -> str:
        return f"{self.channel_prefix}:{table}"

    def _get_client(self) -> aioredis.Redis:
        if self._client is None:
            self._client = aioredis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_connect_timeout=2,
            )
        return self._client

    async def publish(self, event: ChangeEvent) -> None:
        """
        Called after commit: the write already happened, so a publish failure
        is logged rather than raised. Subscribers catch up on their next
        reconnect reload.
        """
        try:
            await self._get_client().publish(self.channel_for(event.table), event.model_dump_json())
        except (RedisConnectionError, RedisTimeoutError, OSError) as e:
            logger.error(f"Failed to publish {event.table} change to Redis: {e}")

    async def start(self) -> None:
        if self._listener_task is not None:
            logger.warning("Redis change feed is already running")
            return
        self._closing = False
        self._listener_task = asyncio.create_task(self._listen_forever())
        logger.info(f"Redis change feed started on {self.channel_prefix}:*")

    async def close(self) -> None:
        self._closing = True
        if self._listener_task is not None:
            self._listener_task.cancel()
            try:
                await self._listener_task
            except asyncio.CancelledError:
                pass
            self._listener_task = None
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        self.connected.clear()
        logger.info("Redis change feed stopped")

    async def _listen_forever(self) -> None:
        attempt = 0
        has_connected = False

        while not self._closing:
            pubsub = self._get_client().pubsub()
            try:
                await pubsub.psubscribe(f"{self.channel_prefix}:*")
                self.connected.set()
                attempt = 0
                if has_connected:
                    self.reconnect_count += 1
                    logger.info("Redis change feed re-subscribed; forcing full reload")
                    await self.notify_reconnected()
                has_connected = True

                async for message in pubsub.listen():
                    if message.get("type") != "pmessage":
                        continue
                    try:
                        event = ChangeEvent.model_validate_json(message["data"])
                    except ValueError:
                        logger.warning(f"Ignoring malformed change message on {message.get('channel')}")
                        continue
                    await self.dispatch(event)

                # listen() returning means the connection was closed under us
                raise RedisConnectionError("Change feed subscription ended")
            except asyncio.CancelledError:
                raise
            except (RedisConnectionError, RedisTimeoutError, OSError) as e:
                self.connected.clear()
                delay = backoff_delay(attempt, self.reconnect_initial_delay, self.reconnect_max_delay)
                attempt += 1
                logger.warning(f"Redis change feed disconnected ({e}); retrying in {delay:.1f}s")
                await asyncio.sleep(delay)
            finally:
                try:
                    await pubsub.aclose()
                except Exception as e:
                    logger.debug(f"Ignoring error closing pubsub: {e}")


def build_change_feed(settings) -> ChangeFeed:
    """
    Redis pub/sub when REDIS_URL is configured, otherwise the in-process
    feed (single worker only: other processes will not see changes).
    """
    if not settings.redis_url:
        logger.warning("REDIS_URL not set. Change notifications are limited to this process.")
        return LocalChangeFeed()
    return RedisChangeFeed(
        settings.redis_url,
        channel_prefix=settings.change_feed_channel_prefix,
        reconnect_initial_delay=settings.change_feed_reconnect_initial_delay,
        reconnect_max_delay=settings.change_feed_reconnect_max_delay,
    )
