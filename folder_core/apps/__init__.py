"""App lifecycle: controller and trash event handling."""

from folder_core.apps.controller import AppController, handle_trash_event, read_workspace_apps

__all__ = ["AppController", "handle_trash_event", "read_workspace_apps"]
