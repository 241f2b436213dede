"""
Message Bus Factory

Connection lifecycle:

  create()  ──▶  live handle?  ── yes ──▶  new RabbitMQService(handle)
                     │ no
                     ▼
             close dead handle (if any)
             connect + open channel
             declare extraction + parsing queues
                     │
                     ▼
             new RabbitMQService(handle)

  dispose() closes channel then connection and forgets the handle, so the
  next create() reconnects. Queues are declared once per connection, never
  on a reused one.
"""

from __future__ import annotations

import asyncio
import logging

from agent_extraction.core.config import Settings
from agent_extraction.messaging.base import MessageBusServiceFactory
from agent_extraction.messaging.rabbitmq import BrokerHandle, RabbitMQService

logger = logging.getLogger(__name__)


class RabbitMQServiceFactory(MessageBusServiceFactory):

    def __init__(
        self,
        extraction_queue: str,
        parsing_queue: str,
        *,
        connect_timeout: float = 10.0,
        prefetch_count: int = 1,
        drain_timeout: float = 0.5,
        recover_max_retries: int | None = 5,
    ) -> None:
        self._queues              = (extraction_queue, parsing_queue)
        self._connect_timeout     = connect_timeout
        self._prefetch_count      = prefetch_count
        self._drain_timeout       = drain_timeout
        self._recover_max_retries = recover_max_retries

        self._handle: BrokerHandle | None = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, cfg: Settings) -> "RabbitMQServiceFactory":
        return cls(
            cfg.extraction_queue,
            cfg.parsing_queue,
            connect_timeout=cfg.broker_connect_timeout,
            prefetch_count=cfg.broker_prefetch_count,
            drain_timeout=cfg.broker_drain_timeout,
            recover_max_retries=cfg.broker_recover_max_retries,
        )

    @property
    def handle(self) -> BrokerHandle | None:
        return self._handle

    @property
    def queue_names(self) -> tuple[str, str]:
        return self._queues

    async def create(self, connection_string: str) -> RabbitMQService:
        async with self._lock:
            if self._handle is not None and self._handle.is_alive:
                logger.debug("Reusing broker connection | url=%s", self._handle.url)
                return RabbitMQService(self._handle)

            if self._handle is not None:
                logger.warning("Broker connection lost, reconnecting | url=%s", self._handle.url)
                await self._handle.close()
                self._handle = None

            handle = await BrokerHandle.open(
                connection_string,
                connect_timeout=self._connect_timeout,
                prefetch_count=self._prefetch_count,
                drain_timeout=self._drain_timeout,
                recover_max_retries=self._recover_max_retries,
            )
            try:
                await handle.declare_queues(self._queues)
            except BaseException:
                await handle.close()
                raise

            self._handle = handle
            logger.info(
                "Message bus ready | url=%s queues=%s",
                handle.url, ",".join(self._queues),
            )
            return RabbitMQService(handle)

    async def dispose(self) -> None:
        async with self._lock:
            if self._handle is None:
                return
            handle, self._handle = self._handle, None
            await handle.close()

    async def __aenter__(self) -> "RabbitMQServiceFactory":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.dispose()
