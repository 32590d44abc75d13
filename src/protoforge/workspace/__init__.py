"""Workspace lifecycle."""

from .manager import BUILDER_IMAGES, Workspace, WorkspaceManager

__all__ = ["BUILDER_IMAGES", "Workspace", "WorkspaceManager"]
