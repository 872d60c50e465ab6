"""Pydantic schemas for apps: persisted revisions, params and view projections."""

from __future__ import annotations

import time
from typing import List, Optional

from pydantic import BaseModel, Field


def _now() -> int:
    return int(time.time())


class ColorStyle(BaseModel):
    theme_color: str = ""


class AppRevision(BaseModel):
    """A persisted app row. ``position`` is owned by persistence."""

    id: str
    workspace_id: str
    name: str
    desc: str = ""
    color_style: ColorStyle = Field(default_factory=ColorStyle)
    position: int = 0
    version: int = 0
    create_time: int = Field(default_factory=_now)
    modified_time: int = Field(default_factory=_now)


class CreateAppParams(BaseModel):
    workspace_id: str = Field(min_length=1)
    name: str = Field(min_length=1, max_length=256)
    desc: str = ""
    color_style: ColorStyle = Field(default_factory=ColorStyle)


class UpdateAppParams(BaseModel):
    id: str = Field(min_length=1)
    name: Optional[str] = None
    desc: Optional[str] = None
    color_style: Optional[ColorStyle] = None
    is_trash: Optional[bool] = None


class AppIdPB(BaseModel):
    value: str


class AppPB(BaseModel):
    id: str
    workspace_id: str
    name: str
    desc: str = ""
    color_style: ColorStyle = Field(default_factory=ColorStyle)
    version: int = 0
    create_time: int = 0
    modified_time: int = 0

    @classmethod
    def from_revision(cls, revision: AppRevision) -> "AppPB":
        return cls(
            id=revision.id,
            workspace_id=revision.workspace_id,
            name=revision.name,
            desc=revision.desc,
            color_style=revision.color_style,
            version=revision.version,
            create_time=revision.create_time,
            modified_time=revision.modified_time,
        )


class RepeatedAppPB(BaseModel):
    items: List[AppPB] = Field(default_factory=list)
