"""Transactional persistence gateway for apps and trash records.

Every folder operation runs inside :meth:`FolderPersistence.begin_transaction`.
The callable receives a :class:`FolderTransaction` bound to a synchronous
SQLAlchemy session (driven through ``AsyncSession.run_sync``), so reads used to
compute notification payloads observe the same snapshot as the writes they
describe. The transaction commits when the callable returns and rolls back when
it raises.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import json
import time
from typing import Callable, Iterable, List, Optional, TypeVar

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Session

from folder_core.core.errors import InternalError, RecordNotFoundError
from folder_core.core.logger import get_logger
from folder_core.schemas.app import AppRevision, ColorStyle, UpdateAppParams
from folder_core.schemas.trash import TrashPB, TrashType
from folder_core.storage.models import AppRecord, TrashRecord


T = TypeVar("T")

logger = get_logger("folder.storage.persistence")


def _json(payload: dict) -> str:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=True, sort_keys=True)


def _now() -> int:
    return int(time.time())


@dataclass(frozen=True)
class AppChangeset:
    """Sparse app update: only fields that are not ``None`` are applied."""

    id: str
    name: Optional[str] = None
    desc: Optional[str] = None
    color_style: Optional[ColorStyle] = None

    @classmethod
    def from_params(cls, params: UpdateAppParams) -> "AppChangeset":
        return cls(id=params.id, name=params.name, desc=params.desc, color_style=params.color_style)

    def is_empty(self) -> bool:
        return self.name is None and self.desc is None and self.color_style is None


def _to_revision(record: AppRecord) -> AppRevision:
    return AppRevision(
        id=record.id,
        workspace_id=record.workspace_id,
        name=record.name,
        desc=record.desc,
        color_style=ColorStyle.model_validate(json.loads(record.color_style_json or "{}")),
        position=record.position,
        version=record.version,
        create_time=record.create_time,
        modified_time=record.modified_time,
    )


def _to_trash(record: TrashRecord) -> TrashPB:
    return TrashPB(
        id=record.id,
        name=record.name,
        ty=TrashType(record.ty),
        create_time=record.create_time,
        modified_time=record.modified_time,
    )


class FolderTransaction:
    """Folder operations over one open session. Not usable after commit."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def _get_app(self, app_id: str) -> AppRecord:
        record = self._session.get(AppRecord, app_id)
        if record is None:
            raise RecordNotFoundError(f"app_not_found id={app_id}")
        return record

    def _ordered_records(self, workspace_id: str) -> List[AppRecord]:
        statement = (
            select(AppRecord)
            .where(AppRecord.workspace_id == workspace_id)
            .order_by(AppRecord.position.asc(), AppRecord.create_time.asc())
        )
        return list(self._session.scalars(statement).all())

    def _reindex(self, records: List[AppRecord]) -> None:
        for index, record in enumerate(records):
            record.position = index
        self._session.flush()

    def create_app(self, revision: AppRevision) -> AppRevision:
        record = self._session.get(AppRecord, revision.id)
        previous_workspace_id = record.workspace_id if record is not None else None
        if record is None:
            record = AppRecord(id=revision.id)
            self._session.add(record)

        record.name = revision.name
        record.desc = revision.desc
        record.color_style_json = _json(revision.color_style.model_dump())
        record.version = revision.version
        record.create_time = revision.create_time
        record.modified_time = revision.modified_time

        if previous_workspace_id != revision.workspace_id:
            siblings = self._ordered_records(revision.workspace_id)
            record.workspace_id = revision.workspace_id
            record.position = len(siblings)
            self._session.flush()
            if previous_workspace_id is not None:
                self._reindex(self._ordered_records(previous_workspace_id))
        else:
            self._session.flush()
        return _to_revision(record)

    def read_app(self, app_id: str) -> AppRevision:
        return _to_revision(self._get_app(app_id))

    def update_app(self, changeset: AppChangeset) -> None:
        record = self._get_app(changeset.id)
        if changeset.is_empty():
            return
        if changeset.name is not None:
            record.name = changeset.name
        if changeset.desc is not None:
            record.desc = changeset.desc
        if changeset.color_style is not None:
            record.color_style_json = _json(changeset.color_style.model_dump())
        record.modified_time = _now()
        self._session.flush()

    def delete_app(self, app_id: str) -> AppRevision:
        record = self._get_app(app_id)
        revision = _to_revision(record)
        self._session.delete(record)
        self._session.flush()
        self._reindex(self._ordered_records(revision.workspace_id))
        return revision

    def move_app(self, app_id: str, from_index: int, to_index: int) -> None:
        record = self._get_app(app_id)
        records = self._ordered_records(record.workspace_id)
        size = len(records)
        if not 0 <= from_index < size or not 0 <= to_index < size:
            raise InternalError(
                f"move_app_index_out_of_range from={from_index} to={to_index} len={size}"
            )
        if from_index == to_index:
            return
        current = next(index for index, item in enumerate(records) if item.id == app_id)
        if current == to_index:
            return
        records.insert(to_index, records.pop(current))
        self._reindex(records)

    def read_workspace_apps(self, workspace_id: str) -> List[AppRevision]:
        return [_to_revision(record) for record in self._ordered_records(workspace_id)]

    def create_trash(self, items: Iterable[TrashPB]) -> None:
        for item in items:
            self._session.merge(
                TrashRecord(
                    id=item.id,
                    name=item.name,
                    ty=item.ty.value,
                    create_time=item.create_time,
                    modified_time=item.modified_time,
                )
            )
        self._session.flush()

    def read_trash(self) -> List[TrashPB]:
        statement = select(TrashRecord).order_by(TrashRecord.create_time.asc(), TrashRecord.id.asc())
        return [_to_trash(record) for record in self._session.scalars(statement).all()]

    def delete_trash(self, trash_ids: Optional[Iterable[str]] = None) -> None:
        statement = delete(TrashRecord)
        if trash_ids is not None:
            ids = list(trash_ids)
            if not ids:
                return
            statement = statement.where(TrashRecord.id.in_(ids))
        self._session.execute(statement)
        self._session.flush()


class FolderPersistence:
    """Serialised, scoped transactions over the folder tables."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._lock = asyncio.Lock()

    async def begin_transaction(self, operation: Callable[[FolderTransaction], T]) -> T:
        async with self._lock:
            try:
                async with self._session_factory() as session:
                    async with session.begin():
                        return await session.run_sync(
                            lambda sync_session: operation(FolderTransaction(sync_session))
                        )
            except SQLAlchemyError as exc:
                logger.error("folder_transaction_failed", error=str(exc))
                raise InternalError(f"persistence_error {type(exc).__name__}") from exc
