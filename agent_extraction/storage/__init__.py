from agent_extraction.storage.base import ArtifactStore
from agent_extraction.storage.factory import create_artifact_store
from agent_extraction.storage.filesystem import FileSystemArtifactStore

__all__ = ["ArtifactStore", "FileSystemArtifactStore", "create_artifact_store"]
