"""App lifecycle controller.

Coordinates local persistence, the cloud service and the trash subsystem, and
publishes folder notifications. Every mutating operation runs in exactly one
persistence transaction; the notification payloads are computed inside that
transaction and published only after it commits.
"""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, List, Optional, Set

from folder_core.core.errors import FolderError, InternalError
from folder_core.core.logger import get_logger
from folder_core.core.observability import capture_exception, sentry_scope
from folder_core.integrations.cloud.client import FolderCloudService
from folder_core.notifications.bus import (
    FolderNotification,
    NotificationBuilder,
    NotificationBus,
    get_notification_bus,
    send_notification,
)
from folder_core.schemas.app import AppIdPB, AppPB, AppRevision, CreateAppParams, RepeatedAppPB, UpdateAppParams
from folder_core.schemas.trash import AppIdentifier, TrashType
from folder_core.storage.persistence import AppChangeset, FolderPersistence, FolderTransaction
from folder_core.trash.controller import TrashController
from folder_core.trash.events import (
    TrashEvent,
    TrashEventKind,
    TrashStreamClosed,
    TrashStreamLagged,
    TrashSubscription,
)
from folder_core.users.session import WorkspaceUser


logger = get_logger("folder.apps.controller")


class AppController:
    def __init__(
        self,
        *,
        user: WorkspaceUser,
        persistence: FolderPersistence,
        trash_controller: TrashController,
        cloud_service: FolderCloudService,
        notifier: Optional[NotificationBus] = None,
    ) -> None:
        self._user = user
        self._persistence = persistence
        self._trash_controller = trash_controller
        self._cloud_service = cloud_service
        self._notifier = notifier if notifier is not None else get_notification_bus()
        self._listener: Optional[asyncio.Task[None]] = None
        self._subscription: Optional[TrashSubscription] = None
        self._background_tasks: Set[asyncio.Task[None]] = set()

    def initialize(self) -> None:
        """Start the trash listener. Idempotent; must be called inside a running loop."""

        if self._listener is not None and not self._listener.done():
            return
        self._subscription = self._trash_controller.subscribe()
        self._listener = asyncio.get_running_loop().create_task(
            listen_trash_events(self._subscription, self._persistence, self._trash_controller, self._notifier),
            name="folder-app-trash-listener",
        )

    async def close(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        if self._listener is not None:
            await self._listener
            self._listener = None
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)

    async def create_app_from_params(self, params: CreateAppParams) -> AppPB:
        logger.debug("create_app_from_params", workspace_id=params.workspace_id, name=params.name)
        revision = await self._create_app_on_server(params)
        return await self.create_app_on_local(revision)

    async def create_app_on_local(self, revision: AppRevision) -> AppPB:
        def operation(transaction: FolderTransaction) -> tuple[AppRevision, NotificationBuilder]:
            created = transaction.create_app(revision)
            notification = notify_apps_changed(
                created.workspace_id,
                self._trash_controller,
                transaction,
                self._notifier,
            )
            return created, notification

        created, notification = await self._persistence.begin_transaction(operation)
        notification.send()
        logger.info("app_created", app_id=created.id, workspace_id=created.workspace_id)
        return AppPB.from_revision(created)

    async def read_app(self, params: AppIdPB) -> Optional[AppRevision]:
        """Return the app, ``None`` when it is trashed; raise when it does not exist."""

        def operation(transaction: FolderTransaction) -> Optional[AppRevision]:
            app = transaction.read_app(params.value)
            trash_ids = self._trash_controller.read_trash_ids(transaction)
            if app.id in trash_ids:
                return None
            return app

        return await self._persistence.begin_transaction(operation)

    async def update_app(self, params: UpdateAppParams) -> None:
        changeset = AppChangeset.from_params(params)
        app_id = changeset.id

        def operation(transaction: FolderTransaction) -> AppPB:
            transaction.update_app(changeset)
            return AppPB.from_revision(transaction.read_app(app_id))

        app = await self._persistence.begin_transaction(operation)
        send_notification(app_id, FolderNotification.DID_UPDATE_APP, bus=self._notifier).payload(app).send()
        self._update_app_on_server(params)

    async def move_app(self, app_id: str, from_index: int, to_index: int) -> None:
        def operation(transaction: FolderTransaction) -> NotificationBuilder:
            transaction.move_app(app_id, from_index, to_index)
            app = transaction.read_app(app_id)
            return notify_apps_changed(app.workspace_id, self._trash_controller, transaction, self._notifier)

        notification = await self._persistence.begin_transaction(operation)
        notification.send()

    async def read_local_apps(self, ids: List[str]) -> List[AppRevision]:
        def operation(transaction: FolderTransaction) -> List[AppRevision]:
            return [transaction.read_app(app_id) for app_id in ids]

        return await self._persistence.begin_transaction(operation)

    async def _create_app_on_server(self, params: CreateAppParams) -> AppRevision:
        token = self._user.token()
        return await self._cloud_service.create_app(token, params)

    def _update_app_on_server(self, params: UpdateAppParams) -> None:
        token = self._user.token()
        task = asyncio.get_running_loop().create_task(
            update_app_on_server(self._cloud_service, token, params),
            name=f"folder-app-update-{params.id}",
        )
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)


async def update_app_on_server(cloud_service: FolderCloudService, token: str, params: UpdateAppParams) -> None:
    try:
        await cloud_service.update_app(token, params)
    except FolderError as exc:
        # TODO: queue failed remote updates for retry once an outbox table exists.
        logger.error("update_app_on_server_failed", app_id=params.id, error=str(exc))
        with sentry_scope(app_id=params.id):
            capture_exception(exc)


async def app_trash_events(subscription: TrashSubscription) -> AsyncIterator[TrashEvent]:
    """Yield app-scoped trash events until the subscription closes.

    Events with no app items are acknowledged here so emitters never wait on
    an event this controller does not own.
    """

    while True:
        try:
            received = await subscription.recv()
        except TrashStreamClosed:
            return
        except TrashStreamLagged as exc:
            logger.warning("trash_listener_lagged", skipped=exc.skipped)
            continue

        if not isinstance(received, TrashEvent):
            logger.warning("trash_listener_unknown_event", event_type=type(received).__name__)
            continue

        selected = received.select(TrashType.APP)
        if selected is None:
            received.ack.send()
            continue
        yield selected


async def listen_trash_events(
    subscription: TrashSubscription,
    persistence: FolderPersistence,
    trash_controller: TrashController,
    notifier: NotificationBus,
) -> None:
    async for event in app_trash_events(subscription):
        await handle_trash_event(persistence, trash_controller, event, notifier)
    logger.info("trash_listener_stopped")


async def handle_trash_event(
    persistence: FolderPersistence,
    trash_controller: TrashController,
    event: TrashEvent,
    notifier: NotificationBus,
) -> None:
    """Apply one app trash event in a single transaction and acknowledge it."""

    identifiers: List[AppIdentifier] = list(event.items)

    def refresh(transaction: FolderTransaction) -> List[NotificationBuilder]:
        workspace_ids: List[str] = []
        for identifier in identifiers:
            app = transaction.read_app(identifier.id)
            if app.workspace_id not in workspace_ids:
                workspace_ids.append(app.workspace_id)
        return [
            notify_apps_changed(workspace_id, trash_controller, transaction, notifier)
            for workspace_id in workspace_ids
        ]

    def remove(transaction: FolderTransaction) -> List[NotificationBuilder]:
        workspace_ids: List[str] = []
        for identifier in identifiers:
            app = transaction.read_app(identifier.id)
            transaction.delete_app(identifier.id)
            if app.workspace_id not in workspace_ids:
                workspace_ids.append(app.workspace_id)
        return [
            notify_apps_changed(workspace_id, trash_controller, transaction, notifier)
            for workspace_id in workspace_ids
        ]

    operation = remove if event.kind == TrashEventKind.DELETE else refresh
    try:
        notifications = await persistence.begin_transaction(operation)
    except FolderError as exc:
        logger.error("trash_event_failed", kind=event.kind.value, count=len(identifiers), error=str(exc))
        event.ack.send(exc)
        return
    except Exception as exc:
        logger.exception("trash_event_crashed", kind=event.kind.value, count=len(identifiers))
        capture_exception(exc)
        event.ack.send(InternalError(f"trash_event_crashed {type(exc).__name__}"))
        return

    for notification in notifications:
        notification.send()
    logger.info("trash_event_applied", kind=event.kind.value, count=len(identifiers))
    event.ack.send()


def notify_apps_changed(
    workspace_id: str,
    trash_controller: TrashController,
    transaction: FolderTransaction,
    notifier: NotificationBus,
) -> NotificationBuilder:
    """Build the workspace apps notification from the open transaction; caller sends it after commit."""

    items = [AppPB.from_revision(app) for app in read_workspace_apps(workspace_id, trash_controller, transaction)]
    return send_notification(
        workspace_id,
        FolderNotification.DID_UPDATE_WORKSPACE_APPS,
        bus=notifier,
    ).payload(RepeatedAppPB(items=items))


def read_workspace_apps(
    workspace_id: str,
    trash_controller: TrashController,
    transaction: FolderTransaction,
) -> List[AppRevision]:
    apps = transaction.read_workspace_apps(workspace_id)
    trash_ids = trash_controller.read_trash_ids(transaction)
    return [app for app in apps if app.id not in trash_ids]
