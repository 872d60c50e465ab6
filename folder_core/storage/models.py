"""SQLAlchemy ORM models for apps and trash records."""

from __future__ import annotations

from sqlalchemy import BigInteger, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from folder_core.storage.db import Base


class AppRecord(Base):
    __tablename__ = "folder_apps"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    workspace_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    desc: Mapped[str] = mapped_column("description", Text, nullable=False, default="")
    color_style_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    create_time: Mapped[int] = mapped_column(BigInteger, nullable=False)
    modified_time: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (Index("ix_folder_apps_workspace_position", "workspace_id", "position"),)


class TrashRecord(Base):
    __tablename__ = "folder_trash"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(256), nullable=False, default="")
    ty: Mapped[str] = mapped_column(String(16), nullable=False)
    create_time: Mapped[int] = mapped_column(BigInteger, nullable=False)
    modified_time: Mapped[int] = mapped_column(BigInteger, nullable=False)
