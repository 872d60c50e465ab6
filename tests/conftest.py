from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from folder_core.apps.controller import AppController
from folder_core.notifications.bus import FolderNotification, FolderNotificationMessage, InMemoryNotificationBus
from folder_core.schemas.app import AppRevision, CreateAppParams, UpdateAppParams
from folder_core.storage.db import build_session_factory, init_models
from folder_core.storage.persistence import FolderPersistence
from folder_core.trash.controller import TrashController
from folder_core.users.session import SessionUser


class FakeCloudService:
    def __init__(self, *, next_ids: Optional[List[str]] = None) -> None:
        self.next_ids = list(next_ids or [])
        self.created: List[tuple[str, CreateAppParams]] = []
        self.updated: List[tuple[str, UpdateAppParams]] = []
        self.deleted: List[tuple[str, List[str]]] = []
        self.create_error: Optional[Exception] = None
        self.update_error: Optional[Exception] = None
        self.update_gate: Optional[asyncio.Event] = None
        self.journal: List[str] = []
        self._counter = 0

    async def create_app(self, token: str, params: CreateAppParams) -> AppRevision:
        self.created.append((token, params))
        if self.create_error is not None:
            raise self.create_error
        self._counter += 1
        app_id = self.next_ids.pop(0) if self.next_ids else f"app-{self._counter}"
        return AppRevision(
            id=app_id,
            workspace_id=params.workspace_id,
            name=params.name,
            desc=params.desc,
            color_style=params.color_style,
        )

    async def update_app(self, token: str, params: UpdateAppParams) -> None:
        self.updated.append((token, params))
        self.journal.append(f"remote_update:{params.id}")
        if self.update_gate is not None:
            await self.update_gate.wait()
        if self.update_error is not None:
            raise self.update_error

    async def delete_app(self, token: str, app_ids: List[str]) -> None:
        self.deleted.append((token, list(app_ids)))

    async def read_app(self, token: str, app_id: str) -> Optional[AppRevision]:
        del token, app_id
        return None


class FakeRedis:
    def __init__(self) -> None:
        self.published: List[tuple[str, str]] = []
        self.error: Optional[Exception] = None

    async def publish(self, channel: str, message: str) -> int:
        if self.error is not None:
            raise self.error
        self.published.append((channel, message))
        return 1


@dataclass
class FolderTestContext:
    engine: AsyncEngine
    persistence: FolderPersistence
    trash_controller: TrashController
    app_controller: AppController
    cloud: FakeCloudService
    user: SessionUser
    bus: InMemoryNotificationBus
    notifications: List[FolderNotificationMessage] = field(default_factory=list)

    def workspace_notifications(self, workspace_id: Optional[str] = None) -> List[FolderNotificationMessage]:
        return [
            message
            for message in self.notifications
            if message.ty == FolderNotification.DID_UPDATE_WORKSPACE_APPS
            and (workspace_id is None or message.key == workspace_id)
        ]

    def workspace_app_ids(self) -> Dict[str, List[str]]:
        return {
            message.key: [item.id for item in message.payload.items]  # type: ignore[union-attr]
            for message in self.workspace_notifications()
        }


def build_sqlite_engine() -> AsyncEngine:
    return create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


async def create_folder_test_context(
    *,
    token: Optional[str] = "token-1",
    cloud: Optional[FakeCloudService] = None,
    listen: bool = True,
) -> FolderTestContext:
    engine = build_sqlite_engine()
    await init_models(engine)
    persistence = FolderPersistence(build_session_factory(engine))
    bus = InMemoryNotificationBus()
    user = SessionUser("user-1", token=token)
    fake_cloud = cloud or FakeCloudService()
    trash_controller = TrashController(
        persistence,
        notifier=bus,
        user=user,
        cloud_service=fake_cloud,
        ack_timeout_seconds=5.0,
    )
    app_controller = AppController(
        user=user,
        persistence=persistence,
        trash_controller=trash_controller,
        cloud_service=fake_cloud,
        notifier=bus,
    )
    context = FolderTestContext(
        engine=engine,
        persistence=persistence,
        trash_controller=trash_controller,
        app_controller=app_controller,
        cloud=fake_cloud,
        user=user,
        bus=bus,
    )
    bus.subscribe(context.notifications.append)
    if listen:
        app_controller.initialize()
    return context


async def teardown_folder_test_context(context: FolderTestContext) -> None:
    await context.app_controller.close()
    context.trash_controller.close()
    await context.engine.dispose()


async def seed_apps(context: FolderTestContext, *apps: tuple[str, str]) -> None:
    """Insert ``(app_id, workspace_id)`` pairs locally and forget the resulting notifications."""

    for app_id, workspace_id in apps:
        await context.app_controller.create_app_on_local(
            AppRevision(id=app_id, workspace_id=workspace_id, name=f"name-{app_id}")
        )
    context.notifications.clear()
