"""Artifact storage for finished executables."""

from exeforge.storage.artifacts import ArtifactStore, PublishedArtifact, validate_file_name

__all__ = ["ArtifactStore", "PublishedArtifact", "validate_file_name"]
