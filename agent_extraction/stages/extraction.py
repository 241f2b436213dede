"""
Extraction stage — consumes the extraction queue and forwards every
document to the parsing queue once its strategy has run.
"""

from __future__ import annotations

from agent_extraction.messaging.base import MessageBusService
from agent_extraction.stages.base import ConsumerStage, StageStrategy
from agent_extraction.storage import artifacts
from agent_extraction.storage.base import ArtifactStore


class ExtractionService(ConsumerStage):

    stage_name = artifacts.EXTRACTION

    def __init__(
        self,
        bus: MessageBusService,
        extraction_queue: str,
        parsing_queue: str,
        storage: ArtifactStore,
        strategy: StageStrategy | None = None,
    ) -> None:
        super().__init__(bus, extraction_queue, storage, strategy)
        self._parsing_queue = parsing_queue

    async def _forward(self, correlation_id: str) -> None:
        await self._bus.publish(self._parsing_queue, correlation_id)
