"""Folder service core: app lifecycle over local persistence, cloud and trash."""
