"""Published artifact catalog."""

from .catalog import ArtifactLibrary, ArtifactRecord

__all__ = ["ArtifactLibrary", "ArtifactRecord"]
