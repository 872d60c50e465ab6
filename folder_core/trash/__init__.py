"""Trash subsystem: soft deletion shared by every folder entity kind."""

from folder_core.trash.controller import TrashController
from folder_core.trash.events import (
    TrashAck,
    TrashEvent,
    TrashEventKind,
    TrashStreamClosed,
    TrashStreamLagged,
    TrashSubscription,
)

__all__ = [
    "TrashAck",
    "TrashController",
    "TrashEvent",
    "TrashEventKind",
    "TrashStreamClosed",
    "TrashStreamLagged",
    "TrashSubscription",
]
