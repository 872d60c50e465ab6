from __future__ import annotations

import asyncio
import json

from redis.exceptions import ConnectionError as RedisConnectionError

from folder_core.core.config import get_settings
from folder_core.notifications.bus import (
    FolderNotification,
    InMemoryNotificationBus,
    RedisNotificationBus,
    get_notification_bus,
    send_notification,
)
from folder_core.schemas.app import AppPB, RepeatedAppPB
from tests.conftest import FakeRedis


def test_in_memory_bus_filters_by_key_and_survives_failing_observer() -> None:
    bus = InMemoryNotificationBus()
    everything: list = []
    only_w1: list = []

    def broken(message) -> None:
        raise RuntimeError("observer_crashed")

    bus.subscribe(broken)
    bus.subscribe(everything.append)
    unsubscribe = bus.subscribe(only_w1.append, key="W1")

    send_notification("W1", FolderNotification.DID_UPDATE_WORKSPACE_APPS, bus=bus).payload(RepeatedAppPB()).send()
    send_notification("W2", FolderNotification.DID_UPDATE_WORKSPACE_APPS, bus=bus).send()
    unsubscribe()
    send_notification("W1", FolderNotification.DID_UPDATE_TRASH, bus=bus).send()

    assert [message.key for message in everything] == ["W1", "W2", "W1"]
    assert [message.ty for message in only_w1] == [FolderNotification.DID_UPDATE_WORKSPACE_APPS]


def test_redis_bus_publishes_json_per_key_without_blocking_sender() -> None:
    async def scenario() -> None:
        fake_redis = FakeRedis()
        bus = RedisNotificationBus(fake_redis, channel_prefix="folder:notification:")

        app = AppPB(id="a1", workspace_id="W1", name="A")
        send_notification("a1", FolderNotification.DID_UPDATE_APP, bus=bus).payload(app).send()
        assert fake_redis.published == []

        await bus.flush()
        channel, body = fake_redis.published[0]
        assert channel == "folder:notification:a1"
        decoded = json.loads(body)
        assert decoded["key"] == "a1"
        assert decoded["ty"] == "did_update_app"
        assert decoded["payload"]["name"] == "A"

    asyncio.run(scenario())


def test_redis_bus_swallows_publish_errors() -> None:
    async def scenario() -> None:
        fake_redis = FakeRedis()
        fake_redis.error = RedisConnectionError("down")
        bus = RedisNotificationBus(fake_redis)

        send_notification("W1", FolderNotification.DID_UPDATE_WORKSPACE_APPS, bus=bus).send()
        await bus.flush()
        assert fake_redis.published == []

    asyncio.run(scenario())


def test_notification_backend_follows_settings(monkeypatch) -> None:
    monkeypatch.setenv("NOTIFICATION_BACKEND", "redis")
    monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/3")
    get_settings.cache_clear()
    get_notification_bus.cache_clear()
    try:
        assert isinstance(get_notification_bus(), RedisNotificationBus)
    finally:
        get_settings.cache_clear()
        get_notification_bus.cache_clear()
