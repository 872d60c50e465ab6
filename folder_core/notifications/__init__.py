"""Topic-keyed notifications published to folder UI subscribers."""

from folder_core.notifications.bus import (
    FolderNotification,
    FolderNotificationMessage,
    InMemoryNotificationBus,
    NotificationBuilder,
    NotificationBus,
    RedisNotificationBus,
    get_notification_bus,
    send_notification,
)

__all__ = [
    "FolderNotification",
    "FolderNotificationMessage",
    "InMemoryNotificationBus",
    "NotificationBuilder",
    "NotificationBus",
    "RedisNotificationBus",
    "get_notification_bus",
    "send_notification",
]
