"""
Artifact Store — Abstract Base

Name-addressed byte-blob persistence. The store knows nothing about
documents or stages: a name is an opaque flat key chosen by the caller
(see agent_extraction.storage.artifacts for the naming convention every
stage applies).

Contract (enforced by ALL implementations):
  - save() overwrites silently on name collision and creates any backing
    location (directory, bucket prefix) lazily.
  - read() returns None when the name does not exist — it never raises
    for a missing artifact.
  - I/O failures surface as ArtifactStoreError with the cause chained.
  - No listing, no deletion, no metadata beyond the raw bytes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class ArtifactStore(ABC):

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Short backend identifier for logging."""

    @abstractmethod
    async def save(self, name: str, data: bytes) -> None:
        """Persist data under name, overwriting any existing artifact."""

    @abstractmethod
    async def read(self, name: str) -> bytes | None:
        """Return the bytes stored under name, or None if absent."""
