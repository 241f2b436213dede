"""Parsing stage — terminal consumer on the parsing queue."""

from __future__ import annotations

from agent_extraction.messaging.base import MessageBusService
from agent_extraction.stages.base import ConsumerStage, StageStrategy
from agent_extraction.storage import artifacts
from agent_extraction.storage.base import ArtifactStore


class ParsingService(ConsumerStage):

    stage_name = artifacts.PARSING

    def __init__(
        self,
        bus: MessageBusService,
        parsing_queue: str,
        storage: ArtifactStore,
        strategy: StageStrategy | None = None,
    ) -> None:
        super().__init__(bus, parsing_queue, storage, strategy)
