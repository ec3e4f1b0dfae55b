"""Sandbox module for isolated, ephemeral build workspaces."""

from exeforge.sandbox.workspace import Workspace, WorkspaceError, WorkspaceManager

__all__ = ["Workspace", "WorkspaceError", "WorkspaceManager"]
