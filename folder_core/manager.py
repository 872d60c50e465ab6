"""Folder manager: wires collaborators from settings and owns their lifetime."""

from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from folder_core.apps.controller import AppController
from folder_core.core.config import get_settings
from folder_core.core.logger import get_logger
from folder_core.core.observability import init_sentry
from folder_core.integrations.cloud.client import FolderCloudService, get_cloud_service
from folder_core.notifications.bus import NotificationBus, get_notification_bus
from folder_core.storage.db import build_session_factory, get_engine, init_models
from folder_core.storage.db import test_connection as test_db_connection
from folder_core.storage.persistence import FolderPersistence
from folder_core.trash.controller import TrashController
from folder_core.users.session import WorkspaceUser


logger = get_logger("folder.manager")


class FolderManager:
    """Build the persistence, trash and app controllers for one user session."""

    def __init__(
        self,
        *,
        user: WorkspaceUser,
        engine: Optional[AsyncEngine] = None,
        cloud_service: Optional[FolderCloudService] = None,
        notifier: Optional[NotificationBus] = None,
    ) -> None:
        settings = get_settings()
        self.user = user
        self.engine = engine or get_engine()
        self.notifier = notifier if notifier is not None else get_notification_bus()
        self.cloud_service = cloud_service if cloud_service is not None else get_cloud_service()
        self.persistence = FolderPersistence(build_session_factory(self.engine))
        self.trash_controller = TrashController(
            self.persistence,
            notifier=self.notifier,
            user=user,
            cloud_service=self.cloud_service,
            subscriber_capacity=settings.trash_subscriber_capacity,
            ack_timeout_seconds=settings.trash_ack_timeout_seconds,
        )
        self.app_controller = AppController(
            user=user,
            persistence=self.persistence,
            trash_controller=self.trash_controller,
            cloud_service=self.cloud_service,
            notifier=self.notifier,
        )
        self._initialized = False

    async def initialize(self) -> None:
        if self._initialized:
            return
        init_sentry()
        await init_models(self.engine)
        self.app_controller.initialize()
        self._initialized = True
        logger.info("folder_manager_initialized", user_id=self.user.user_id())

    async def close(self) -> None:
        await self.app_controller.close()
        self.trash_controller.close()
        await self.notifier.flush()
        self._initialized = False
        logger.info("folder_manager_closed", user_id=self.user.user_id())

    async def health(self) -> Dict[str, Any]:
        database_ok, database_error = await test_db_connection(self.engine)
        return {
            "status": "ok" if database_ok else "degraded",
            "database": {"ok": database_ok, "error": database_error},
            "listening": self._initialized,
        }
