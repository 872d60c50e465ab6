"""Pydantic schemas for trash records and identifiers."""

from __future__ import annotations

from enum import Enum
import time
from typing import List

from pydantic import BaseModel, Field


class TrashType(str, Enum):
    APP = "app"
    VIEW = "view"


class TrashIdentifier(BaseModel):
    id: str
    ty: TrashType = TrashType.APP


# Trash events addressed to the app controller only carry app identifiers.
AppIdentifier = TrashIdentifier


class RepeatedTrashIdPB(BaseModel):
    items: List[TrashIdentifier] = Field(default_factory=list)
    delete_all: bool = False


class TrashPB(BaseModel):
    id: str
    name: str = ""
    ty: TrashType = TrashType.APP
    create_time: int = Field(default_factory=lambda: int(time.time()))
    modified_time: int = Field(default_factory=lambda: int(time.time()))

    def identifier(self) -> TrashIdentifier:
        return TrashIdentifier(id=self.id, ty=self.ty)


class RepeatedTrashPB(BaseModel):
    items: List[TrashPB] = Field(default_factory=list)
