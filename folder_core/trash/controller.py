"""Trash subsystem: owns the set of hidden entity ids and broadcasts changes."""

from __future__ import annotations

import asyncio
from typing import Iterable, List, Optional, Set

from folder_core.core.errors import FolderError, InternalError, RecordNotFoundError
from folder_core.core.logger import get_logger
from folder_core.integrations.cloud.client import FolderCloudService
from folder_core.notifications.bus import FolderNotification, NotificationBus, send_notification
from folder_core.schemas.trash import RepeatedTrashIdPB, RepeatedTrashPB, TrashIdentifier, TrashPB, TrashType
from folder_core.storage.persistence import FolderPersistence, FolderTransaction
from folder_core.trash.events import TrashAck, TrashEvent, TrashEventKind, TrashStreamLagged, TrashSubscription
from folder_core.users.session import WorkspaceUser


TRASH_NOTIFICATION_KEY = "trash"

logger = get_logger("folder.trash.controller")


class TrashController:
    """Persist trash records and notify subscribers, waiting for their acks.

    Trash membership lives here, never on the entity rows: readers consult
    :meth:`read_trash_ids` with their own transaction to hide trashed items.
    """

    def __init__(
        self,
        persistence: FolderPersistence,
        *,
        notifier: Optional[NotificationBus] = None,
        user: Optional[WorkspaceUser] = None,
        cloud_service: Optional[FolderCloudService] = None,
        subscriber_capacity: int = 64,
        ack_timeout_seconds: float = 30.0,
    ) -> None:
        self._persistence = persistence
        self._notifier = notifier
        self._user = user
        self._cloud_service = cloud_service
        self._subscriber_capacity = subscriber_capacity
        self._ack_timeout_seconds = ack_timeout_seconds
        self._subscribers: List[TrashSubscription] = []

    def read_trash_ids(self, transaction: FolderTransaction) -> Set[str]:
        return {item.id for item in transaction.read_trash()}

    def subscribe(self) -> TrashSubscription:
        subscription = TrashSubscription(capacity=self._subscriber_capacity, on_close=self._unsubscribe)
        self._subscribers.append(subscription)
        return subscription

    def _unsubscribe(self, subscription: TrashSubscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)

    def close(self) -> None:
        for subscription in list(self._subscribers):
            subscription.close()

    async def read_trash(self) -> RepeatedTrashPB:
        items = await self._persistence.begin_transaction(lambda transaction: transaction.read_trash())
        return RepeatedTrashPB(items=items)

    async def add(self, trash: Iterable[TrashPB]) -> None:
        items = list(trash)
        if not items:
            return

        def operation(transaction: FolderTransaction) -> List[TrashPB]:
            transaction.create_trash(items)
            return transaction.read_trash()

        remaining = await self._persistence.begin_transaction(operation)
        self._send_trash_changed(remaining)
        logger.info("trash_added", count=len(items))
        errors = await self._broadcast(TrashEventKind.NEW_TRASH, [item.identifier() for item in items])
        self._log_errors(TrashEventKind.NEW_TRASH, errors)

    async def putback(self, trash_id: str) -> None:
        def operation(transaction: FolderTransaction) -> tuple[TrashIdentifier, List[TrashPB]]:
            current = {item.id: item for item in transaction.read_trash()}
            if trash_id not in current:
                raise RecordNotFoundError(f"trash_not_found id={trash_id}")
            transaction.delete_trash([trash_id])
            return current[trash_id].identifier(), transaction.read_trash()

        identifier, remaining = await self._persistence.begin_transaction(operation)
        self._send_trash_changed(remaining)
        logger.info("trash_putback", trash_id=trash_id)
        errors = await self._broadcast(TrashEventKind.PUTBACK, [identifier])
        self._log_errors(TrashEventKind.PUTBACK, errors)

    async def restore_all(self) -> None:
        def operation(transaction: FolderTransaction) -> List[TrashPB]:
            items = transaction.read_trash()
            transaction.delete_trash()
            return items

        restored = await self._persistence.begin_transaction(operation)
        self._send_trash_changed([])
        logger.info("trash_restored_all", count=len(restored))
        errors = await self._broadcast(TrashEventKind.PUTBACK, [item.identifier() for item in restored])
        self._log_errors(TrashEventKind.PUTBACK, errors)

    async def delete(self, identifiers: RepeatedTrashIdPB) -> None:
        """Permanently delete trashed entities.

        Subscribers remove the rows first; trash records are dropped only when
        every subscriber acknowledged success, so a failed deletion keeps the
        entities hidden. Without any subscriber nothing would remove the rows,
        so the deletion is refused.
        """

        items = list(identifiers.items)
        if not items:
            return
        if not self._subscribers:
            logger.error("trash_delete_without_subscriber", count=len(items))
            raise InternalError("trash_delete_no_subscriber")
        errors = await self._broadcast(TrashEventKind.DELETE, items)
        if errors:
            self._log_errors(TrashEventKind.DELETE, errors)
            raise errors[0]

        ids = [item.id for item in items]

        def operation(transaction: FolderTransaction) -> List[TrashPB]:
            if identifiers.delete_all:
                transaction.delete_trash()
            else:
                transaction.delete_trash(ids)
            return transaction.read_trash()

        remaining = await self._persistence.begin_transaction(operation)
        self._send_trash_changed(remaining)
        logger.info("trash_deleted", count=len(ids))
        await self._delete_on_server([item.id for item in items if item.ty == TrashType.APP])

    async def delete_all(self) -> None:
        current = await self.read_trash()
        identifiers = [item.identifier() for item in current.items]
        await self.delete(RepeatedTrashIdPB(items=identifiers, delete_all=True))

    async def _broadcast(self, kind: TrashEventKind, items: List[TrashIdentifier]) -> List[FolderError]:
        if not items:
            return []
        acks: List[TrashAck] = []
        for subscription in list(self._subscribers):
            ack = TrashAck()
            event = TrashEvent(kind=kind, items=tuple(items), ack=ack)
            if not subscription.deliver(event):
                ack.send(TrashStreamLagged(1))
            acks.append(ack)

        errors: List[FolderError] = []
        for ack in acks:
            try:
                await asyncio.wait_for(ack.wait(), timeout=self._ack_timeout_seconds)
            except asyncio.TimeoutError:
                errors.append(InternalError(f"trash_ack_timeout kind={kind.value}"))
            except FolderError as exc:
                errors.append(exc)
        return errors

    async def _delete_on_server(self, app_ids: List[str]) -> None:
        if not app_ids or self._cloud_service is None or self._user is None:
            return
        try:
            token = self._user.token()
            await self._cloud_service.delete_app(token, app_ids)
        except FolderError as exc:
            logger.error("trash_delete_on_server_failed", count=len(app_ids), error=str(exc))

    def _send_trash_changed(self, remaining: List[TrashPB]) -> None:
        send_notification(
            TRASH_NOTIFICATION_KEY,
            FolderNotification.DID_UPDATE_TRASH,
            bus=self._notifier,
        ).payload(RepeatedTrashPB(items=remaining)).send()

    def _log_errors(self, kind: TrashEventKind, errors: List[FolderError]) -> None:
        for error in errors:
            logger.error("trash_event_subscriber_failed", kind=kind.value, error=str(error))
