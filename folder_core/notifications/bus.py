"""Notification bus: fire-and-forget, keyed messages for UI subscribers."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
import json
from typing import Any, Callable, Dict, List, Optional, Protocol, Set, Tuple

from pydantic import BaseModel
from redis.asyncio import Redis
from redis.exceptions import RedisError

from folder_core.core.config import get_settings
from folder_core.core.logger import get_logger


logger = get_logger("folder.notifications")


class FolderNotification(str, Enum):
    DID_UPDATE_APP = "did_update_app"
    DID_UPDATE_WORKSPACE_APPS = "did_update_workspace_apps"
    DID_UPDATE_TRASH = "did_update_trash"


@dataclass(frozen=True)
class FolderNotificationMessage:
    key: str
    ty: FolderNotification
    payload: Optional[BaseModel] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "ty": self.ty.value,
            "payload": self.payload.model_dump(mode="json") if self.payload is not None else None,
        }


NotificationObserver = Callable[[FolderNotificationMessage], None]


class NotificationBus(Protocol):
    def publish(self, message: FolderNotificationMessage) -> None:
        raise NotImplementedError

    async def flush(self) -> None:
        raise NotImplementedError


class InMemoryNotificationBus:
    """Delivers messages synchronously to registered observers."""

    def __init__(self) -> None:
        self._observers: List[Tuple[Optional[str], NotificationObserver]] = []

    def subscribe(self, observer: NotificationObserver, *, key: Optional[str] = None) -> Callable[[], None]:
        entry = (key, observer)
        self._observers.append(entry)

        def unsubscribe() -> None:
            if entry in self._observers:
                self._observers.remove(entry)

        return unsubscribe

    def publish(self, message: FolderNotificationMessage) -> None:
        for key, observer in list(self._observers):
            if key is not None and key != message.key:
                continue
            try:
                observer(message)
            except Exception as exc:
                logger.error(
                    "notification_observer_failed",
                    key=message.key,
                    ty=message.ty.value,
                    error=str(exc),
                )

    async def flush(self) -> None:
        return None


class RedisNotificationBus:
    """Publishes JSON messages to ``{prefix}:{key}`` Redis channels."""

    def __init__(self, redis_client: Redis, *, channel_prefix: str = "folder:notification") -> None:
        self._redis = redis_client
        self._channel_prefix = channel_prefix.rstrip(":")
        self._pending: Set[asyncio.Task[None]] = set()

    def channel(self, key: str) -> str:
        return f"{self._channel_prefix}:{key}"

    def publish(self, message: FolderNotificationMessage) -> None:
        """Schedule the publish on the running loop; the caller never waits on Redis."""

        body = json.dumps(message.to_dict(), separators=(",", ":"), ensure_ascii=True, sort_keys=True)
        task = asyncio.get_running_loop().create_task(
            self._publish(message, body),
            name=f"folder-notification-{message.key}",
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _publish(self, message: FolderNotificationMessage, body: str) -> None:
        try:
            await self._redis.publish(self.channel(message.key), body)
        except RedisError as exc:
            logger.error(
                "notification_publish_failed",
                key=message.key,
                ty=message.ty.value,
                error=str(exc),
            )

    async def flush(self) -> None:
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


class NotificationBuilder:
    def __init__(self, key: str, ty: FolderNotification, bus: NotificationBus) -> None:
        self._key = key
        self._ty = ty
        self._bus = bus
        self._payload: Optional[BaseModel] = None

    def payload(self, payload: BaseModel) -> "NotificationBuilder":
        self._payload = payload
        return self

    def build(self) -> FolderNotificationMessage:
        return FolderNotificationMessage(key=self._key, ty=self._ty, payload=self._payload)

    def send(self) -> None:
        message = self.build()
        logger.debug("notification_sent", key=message.key, ty=message.ty.value)
        self._bus.publish(message)


@lru_cache(maxsize=1)
def get_notification_bus() -> NotificationBus:
    settings = get_settings()
    if settings.notification_backend.strip().lower() == "redis":
        return RedisNotificationBus(
            Redis.from_url(settings.redis_url, decode_responses=True),
            channel_prefix=settings.notification_channel_prefix,
        )
    return InMemoryNotificationBus()


def send_notification(
    key: str,
    ty: FolderNotification,
    *,
    bus: Optional[NotificationBus] = None,
) -> NotificationBuilder:
    return NotificationBuilder(key, ty, bus if bus is not None else get_notification_bus())
