"""Workspace user session handles."""

from folder_core.users.session import SessionUser, WorkspaceUser

__all__ = ["SessionUser", "WorkspaceUser"]
