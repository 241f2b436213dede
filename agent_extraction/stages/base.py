"""
Pipeline Stage — shared consumer skeleton

  ConsumerStage     orchestration: subscribe to a queue, run the
                    strategy for each correlation ID, optionally hand
                    the same ID on to the next queue.
  StageStrategy     the stage's business logic, swappable and testable
                    on its own. Reads and writes artifacts by name
                    through the ArtifactStore only.

Anything raised out of handle_message reaches the message bus, which
rejects the delivery with requeue. A stage never acks on its own.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from agent_extraction.messaging.base import MessageBusService
from agent_extraction.observability.tracing import traced
from agent_extraction.storage.base import ArtifactStore

logger = logging.getLogger(__name__)


class StageStrategy(ABC):

    @abstractmethod
    async def run(self, correlation_id: str, storage: ArtifactStore) -> None:
        """Do this stage's work for one document."""


class NoOpStrategy(StageStrategy):
    """Placeholder for stages whose business logic is not built yet."""

    def __init__(self, stage: str) -> None:
        self._stage = stage

    async def run(self, correlation_id: str, storage: ArtifactStore) -> None:
        logger.debug("No-op strategy | stage=%s correlation_id=%s", self._stage, correlation_id)


class ConsumerStage:
    """Base for stages triggered purely by message arrival."""

    stage_name: str = "stage"

    def __init__(
        self,
        bus: MessageBusService,
        queue_name: str,
        storage: ArtifactStore,
        strategy: StageStrategy | None = None,
    ) -> None:
        self._bus        = bus
        self._queue_name = queue_name
        self._storage    = storage
        self._strategy   = strategy or NoOpStrategy(self.stage_name)

    @property
    def queue_name(self) -> str:
        return self._queue_name

    @property
    def strategy(self) -> StageStrategy:
        return self._strategy

    async def subscribe(self) -> None:
        try:
            await self._bus.consume(self._queue_name, self.handle_message)
        except Exception:
            logger.exception("Subscribe failed | stage=%s queue=%s", self.stage_name, self._queue_name)
            raise
        logger.info("Stage subscribed | stage=%s queue=%s", self.stage_name, self._queue_name)

    @traced()
    async def handle_message(self, correlation_id: str) -> None:
        if not correlation_id:
            logger.warning("Message without correlation ID | stage=%s queue=%s", self.stage_name, self._queue_name)

        logger.info("Stage started | stage=%s correlation_id=%s", self.stage_name, correlation_id)
        await self._strategy.run(correlation_id, self._storage)
        await self._forward(correlation_id)
        logger.info("Stage completed | stage=%s correlation_id=%s", self.stage_name, correlation_id)

    async def _forward(self, correlation_id: str) -> None:
        """Hand the document to the next stage. Terminal stages do nothing."""
