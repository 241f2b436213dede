"""
Artifact Store Factory

Selects the storage backend (filesystem | s3) based on config. Stages
only ever see ArtifactStore, never the concrete classes.
"""

from __future__ import annotations

from agent_extraction.core.config import Settings, settings as default_settings
from agent_extraction.storage.base import ArtifactStore


def create_artifact_store(settings: Settings | None = None) -> ArtifactStore:
    cfg = settings or default_settings
    backend = cfg.storage_backend.lower()

    if backend == "filesystem":
        from agent_extraction.storage.filesystem import FileSystemArtifactStore
        return FileSystemArtifactStore(root=cfg.output_dir)

    if backend == "s3":
        from agent_extraction.storage.s3 import S3ArtifactStore
        return S3ArtifactStore(
            bucket=cfg.s3_bucket,
            prefix=cfg.s3_prefix,
            region=cfg.aws_region,
            endpoint_url=cfg.s3_endpoint_url or None,
        )

    raise ValueError(
        f"Unknown storage backend: '{backend}'. "
        f"Valid options: 'filesystem', 's3'"
    )
