# tests/test_change_feed.py
import asyncio
import logging
from uuid import uuid4

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from shelter.core.store import record_change
from shelter.realtime.change_feed import (
    ChangeEvent,
    ChangeType,
    LocalChangeFeed,
    RedisChangeFeed,
    backoff_delay,
    normalize_event_mask,
)


def test_backoff_doubles_until_capped():
    delays = [backoff_delay(attempt, 1.0, 30.0) for attempt in range(7)]
    assert delays == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0, 30.0]


def test_event_mask_normalization():
    assert normalize_event_mask(None) == frozenset({"*"})
    assert normalize_event_mask("*") == frozenset({"*"})
    assert normalize_event_mask("update") == frozenset({"UPDATE"})
    assert normalize_event_mask([ChangeType.INSERT, "delete"]) == frozenset({"INSERT", "DELETE"})
    assert normalize_event_mask([]) == frozenset({"*"})
    with pytest.raises(ValueError):
        normalize_event_mask("TRUNCATE")


# Local feed


async def test_local_feed_respects_table_and_event_mask():
    feed = LocalChangeFeed()
    seen = []

    async def on_change(event):
        seen.append((event.table, event.event_type))

    feed.subscribe("beds", "UPDATE", on_change)
    feed.subscribe("wards", "*", on_change)

    await feed.publish(ChangeEvent(table="beds", event_type=ChangeType.INSERT))
    await feed.publish(ChangeEvent(table="beds", event_type=ChangeType.UPDATE))
    await feed.publish(ChangeEvent(table="rooms", event_type=ChangeType.UPDATE))
    await feed.publish(ChangeEvent(table="wards", event_type=ChangeType.DELETE))
    await feed.drain()

    assert seen == [("beds", ChangeType.UPDATE), ("wards", ChangeType.DELETE)]


async def test_failing_listener_does_not_block_the_others(caplog):
    feed = LocalChangeFeed()
    seen = []

    async def broken(event):
        raise RuntimeError("listener bug")

    async def healthy(event):
        seen.append(event.table)

    feed.subscribe("beds", "*", broken)
    feed.subscribe("beds", "*", healthy)

    with caplog.at_level(logging.ERROR):
        await feed.publish(ChangeEvent(table="beds", event_type=ChangeType.UPDATE))
        await feed.drain()

    assert seen == ["beds"]
    assert "failed for beds event" in caplog.text


async def test_unsubscribe_stops_delivery():
    feed = LocalChangeFeed()
    seen = []

    async def on_change(event):
        seen.append(event)

    handle = feed.subscribe("beds", "*", on_change)
    feed.unsubscribe(handle)
    feed.unsubscribe(handle)

    await feed.publish(ChangeEvent(table="beds", event_type=ChangeType.UPDATE))
    await feed.drain()

    assert seen == []
    assert feed.subscriber_count() == 0


# Store transactions


async def test_transaction_publishes_merged_events_after_commit(store):
    events = []

    async def on_change(event):
        events.append(event)

    store.subscribe("beds", "*", on_change)
    first, second = uuid4(), uuid4()

    async with store.transaction() as db:
        record_change(db, "beds", ChangeType.UPDATE, first)
        record_change(db, "beds", ChangeType.UPDATE, [first, second])
        assert events == []
    await store.feed.drain()

    assert len(events) == 1
    assert events[0].event_type == ChangeType.UPDATE
    assert events[0].record_ids == [first, second]


async def test_failed_transaction_publishes_nothing(store):
    events = []

    async def on_change(event):
        events.append(event)

    store.subscribe("beds", "*", on_change)

    with pytest.raises(RuntimeError):
        async with store.transaction() as db:
            record_change(db, "beds", ChangeType.UPDATE, uuid4())
            raise RuntimeError("boom")
    await store.feed.drain()

    assert events == []


# Redis feed


class FakePubSub:
    def __init__(self, messages, *, hang: bool = False):
        self.messages = messages
        self.hang = hang
        self.patterns = []
        self.closed = False

    async def psubscribe(self, pattern):
        self.patterns.append(pattern)

    async def listen(self):
        for message in self.messages:
            yield message
        if self.hang:
            await asyncio.Event().wait()

    async def aclose(self):
        self.closed = True


class FakeRedis:
    def __init__(self, sessions):
        self.sessions = list(sessions)
        self.opened = []
        self.published = []
        self.fail_publish = False
        self.closed = False

    def pubsub(self):
        session = self.sessions.pop(0) if self.sessions else FakePubSub([], hang=True)
        self.opened.append(session)
        return session

    async def publish(self, channel, data):
        if self.fail_publish:
            raise RedisConnectionError("Connection refused")
        self.published.append((channel, data))

    async def aclose(self):
        self.closed = True


def pmessage(event: ChangeEvent) -> dict:
    return {
        "type": "pmessage",
        "channel": f"shelter:changes:{event.table}",
        "data": event.model_dump_json(),
    }


def redis_feed(client: FakeRedis) -> RedisChangeFeed:
    return RedisChangeFeed(
        "redis://test",
        reconnect_initial_delay=0.01,
        reconnect_max_delay=0.05,
        client=client,
    )


async def test_redis_feed_dispatches_and_reloads_after_reconnect(eventually):
    before = ChangeEvent(table="beds", event_type=ChangeType.UPDATE, record_ids=[uuid4()])
    after = ChangeEvent(table="beds", event_type=ChangeType.INSERT, record_ids=[uuid4()])
    client = FakeRedis(
        [
            # first connection drops after one event
            FakePubSub([{"type": "psubscribe", "data": 1}, pmessage(before)]),
            FakePubSub([pmessage(after)], hang=True),
        ]
    )
    feed = redis_feed(client)
    received = []
    reconnects = []

    async def on_change(event):
        received.append(event.event_type)

    async def on_reconnect():
        reconnects.append(feed.reconnect_count)

    feed.subscribe("beds", "*", on_change)
    feed.add_reconnect_listener(on_reconnect)

    await feed.start()
    try:
        await eventually(lambda: len(received) == 2)
    finally:
        await feed.close()

    assert received == [ChangeType.UPDATE, ChangeType.INSERT]
    assert reconnects == [1]
    assert feed.reconnect_count == 1
    assert client.opened[0].patterns == ["shelter:changes:*"]
    assert client.opened[0].closed
    assert client.closed


async def test_redis_feed_skips_malformed_messages(eventually, caplog):
    good = ChangeEvent(table="wards", event_type=ChangeType.DELETE)
    client = FakeRedis(
        [FakePubSub([{"type": "pmessage", "channel": "shelter:changes:wards", "data": "{nope"}, pmessage(good)], hang=True)]
    )
    feed = redis_feed(client)
    received = []

    async def on_change(event):
        received.append(event)

    feed.subscribe("wards", "*", on_change)

    with caplog.at_level(logging.WARNING):
        await feed.start()
        try:
            await eventually(lambda: len(received) == 1)
        finally:
            await feed.close()

    assert received[0].event_type == ChangeType.DELETE
    assert "malformed" in caplog.text
    assert feed.reconnect_count == 0


async def test_redis_publish_failure_is_logged_not_raised(caplog):
    client = FakeRedis([])
    client.fail_publish = True
    feed = redis_feed(client)

    with caplog.at_level(logging.ERROR):
        await feed.publish(ChangeEvent(table="beds", event_type=ChangeType.UPDATE))

    assert "Failed to publish beds change" in caplog.text


async def test_redis_publish_uses_one_channel_per_table():
    client = FakeRedis([])
    feed = redis_feed(client)
    event = ChangeEvent(table="bed_assignments", event_type=ChangeType.INSERT)

    await feed.publish(event)

    [(channel, data)] = client.published
    assert channel == "shelter:changes:bed_assignments"
    assert ChangeEvent.model_validate_json(data).table == "bed_assignments"
