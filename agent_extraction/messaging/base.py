"""
Message Bus — Abstract Base

Every stage talks to the broker through this interface only, so the
RabbitMQ binding is swappable (and mockable) without touching stage code.

Delivery contract (enforced by ALL implementations):
  - A message carries exactly one thing: the correlation ID, in the
    message metadata. The body is empty.
  - publish() routes directly to the named queue and marks the message
    persistent. Broker failures propagate to the caller.
  - consume() invokes the handler once per delivery. Handler success
    acknowledges the delivery; any handler exception rejects it with
    requeue. Acknowledgement is per message, never batched.
  - A failing handler never stops the consumer loop.
  - A lost connection is recovered while consuming. If it cannot be,
    wait_closed() raises instead of the bus idling silently.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

# Receives the correlation ID of the delivered message ("" if absent).
MessageHandler = Callable[[str], Awaitable[None]]


class MessageBusService(ABC):

    @abstractmethod
    async def publish(self, queue_name: str, correlation_id: str) -> None:
        """Send one persistent message carrying correlation_id to queue_name."""

    @abstractmethod
    async def consume(self, queue_name: str, on_message: MessageHandler) -> None:
        """Register a long-lived handler for deliveries on queue_name."""

    @abstractmethod
    async def wait_closed(self) -> None:
        """
        Block until the bus stops consuming. Returns after a clean shutdown;
        raises MessageBusError if the broker connection was lost for good.
        """


class MessageBusServiceFactory(ABC):

    @abstractmethod
    async def create(self, connection_string: str) -> MessageBusService:
        """
        Return a service over a live connection, connecting and declaring
        the pipeline queues first if there is none.
        """

    @abstractmethod
    async def dispose(self) -> None:
        """Release the connection. The next create() reconnects."""
