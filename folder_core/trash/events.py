"""Trash events, one-shot acknowledgements and broadcast subscriptions."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Optional, Tuple

from folder_core.core.errors import InternalError
from folder_core.schemas.trash import TrashIdentifier, TrashType


class TrashEventKind(str, Enum):
    NEW_TRASH = "new_trash"
    PUTBACK = "putback"
    DELETE = "delete"


class TrashStreamClosed(Exception):
    """Raised by ``TrashSubscription.recv`` once the stream has been closed."""


class TrashStreamLagged(InternalError):
    """A subscriber fell behind and missed events."""

    def __init__(self, skipped: int) -> None:
        super().__init__(f"trash_subscriber_lagged skipped={skipped}")
        self.skipped = skipped


class TrashAck:
    """One-shot reply channel carrying a trash event's transaction outcome."""

    def __init__(self) -> None:
        self._future: asyncio.Future[None] = asyncio.get_running_loop().create_future()

    @property
    def sent(self) -> bool:
        return self._future.done()

    def send(self, error: Optional[BaseException] = None) -> None:
        if self._future.done():
            raise RuntimeError("trash_ack_already_sent")
        if error is None:
            self._future.set_result(None)
        else:
            self._future.set_exception(error)

    async def wait(self) -> None:
        """Return when the ack arrives; raise the error it carries, if any."""

        await asyncio.shield(self._future)


@dataclass(frozen=True)
class TrashEvent:
    kind: TrashEventKind
    items: Tuple[TrashIdentifier, ...]
    ack: TrashAck

    def select(self, ty: TrashType) -> Optional["TrashEvent"]:
        """Narrow the event to one entity kind; ``None`` when nothing matches."""

        selected = tuple(item for item in self.items if item.ty == ty)
        if not selected:
            return None
        return replace(self, items=selected)


_CLOSED = object()


class TrashSubscription:
    """Bounded receiver of broadcast trash events."""

    def __init__(
        self,
        *,
        capacity: int = 64,
        on_close: Optional[Callable[["TrashSubscription"], None]] = None,
    ) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._on_close = on_close
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._lagged = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def deliver(self, event: object) -> bool:
        if self._closed:
            return False
        if self._queue.qsize() >= self._capacity:
            self._lagged += 1
            return False
        self._queue.put_nowait(event)
        return True

    async def recv(self) -> object:
        if self._lagged:
            skipped, self._lagged = self._lagged, 0
            raise TrashStreamLagged(skipped)
        if self._closed and self._queue.empty():
            raise TrashStreamClosed()
        item = await self._queue.get()
        if item is _CLOSED:
            raise TrashStreamClosed()
        return item

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        while not self._queue.empty():
            pending = self._queue.get_nowait()
            if isinstance(pending, TrashEvent) and not pending.ack.sent:
                pending.ack.send(InternalError("trash_subscriber_closed"))
        self._queue.put_nowait(_CLOSED)
        if self._on_close is not None:
            self._on_close(self)
