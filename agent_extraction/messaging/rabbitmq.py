"""
RabbitMQ Message Bus (kombu)

Threading model:

  kombu channels are not thread-safe, and every call on them blocks.
  BrokerHandle therefore owns a single-thread executor; every channel
  operation (declare, publish, basic_consume, ack, requeue, drain) is
  submitted to it, so the channel is only ever touched from that one
  thread while the event loop stays free.

  Once the first consumer is registered, a drain task loops
  connection.drain_events(timeout) on the executor. kombu invokes the
  consumer callback on the executor thread; the callback hands the raw
  message back to the event loop, where it is dispatched as its own task.
  Between two drain polls the executor runs whatever publish / ack work
  queued up meanwhile, so no operation waits longer than one drain
  timeout.

  If drain_events fails for any reason other than its timeout, the drain
  task recovers in place: the broken transport is collected, kombu's
  ensure_connection reconnects with backoff, and every declared queue and
  registered consumer is re-created on a fresh channel. Unacked deliveries
  go back to the broker and are redelivered. When recovery gives up, the
  handle is marked failed and wait_closed() raises the cause.

  event loop                                 broker-io thread
  ----------                                 ----------------
  publish()          --- run_in_executor --> producer.publish
  drain task         --- run_in_executor --> drain_events(timeout)
  dispatch task      <-- call_soon_threadsafe -- on_message(raw)
    handler(correlation_id)
    ack / requeue    --- run_in_executor --> message.ack() / requeue()

Wire contract:
  default exchange, routing key = queue name, delivery_mode=2 (persistent),
  empty body, correlation ID in the message properties.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from collections.abc import Awaitable, Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from kombu import Connection, Consumer, Producer, Queue
from kombu.message import Message

from agent_extraction.core.errors import (
    BrokerInitializationError,
    MessageBusError,
    MessageDeliveryError,
)
from agent_extraction.messaging.base import MessageBusService, MessageHandler
from agent_extraction.observability.tracing import traced

logger = logging.getLogger(__name__)

PERSISTENT_DELIVERY_MODE = 2

Dispatcher = Callable[[Message], Awaitable[None]]
RawCallback = Callable[[Message], None]


# ---------------------------------------------------------------------------
# Broker handle: the shared connection / channel pair
# ---------------------------------------------------------------------------

class BrokerHandle:
    """
    Owns one kombu connection, its channel and the broker-io thread.

    Shared by every RabbitMQService a factory hands out. Released by
    close(): consumers cancelled, then channel, then connection.
    """

    def __init__(
        self,
        connection: Connection,
        channel: Any,
        executor: ThreadPoolExecutor,
        prefetch_count: int = 1,
        drain_timeout: float = 0.5,
        recover_max_retries: int | None = 5,
    ) -> None:
        self._connection          = connection
        self._channel             = channel
        self._executor            = executor
        self._prefetch_count      = prefetch_count
        self._drain_timeout       = drain_timeout
        self._recover_max_retries = recover_max_retries

        # Replayed on a fresh channel after the connection is recovered.
        self._queues: list[Queue] = []
        self._subscriptions: list[tuple[str, RawCallback]] = []

        self._consumers: list[Consumer] = []
        self._in_flight: set[asyncio.Task] = set()
        self._drain_task: asyncio.Task | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stopped = asyncio.Event()
        self._failure: MessageBusError | None = None
        self._failed = False
        self._closed = False

    @classmethod
    async def open(
        cls,
        connection_string: str,
        connect_timeout: float = 10.0,
        prefetch_count: int = 1,
        drain_timeout: float = 0.5,
        recover_max_retries: int | None = 5,
    ) -> "BrokerHandle":
        """
        Connect and open a channel. Any failure here is fatal and not
        retried; only a connection lost later, while consuming, is recovered.
        """
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="broker-io")
        connection = Connection(connection_string, connect_timeout=connect_timeout)
        loop = asyncio.get_running_loop()

        def _connect() -> Any:
            connection.connect()
            return connection.channel()

        try:
            channel = await loop.run_in_executor(executor, _connect)
        except Exception as exc:
            logger.error("Broker connect failed | url=%s error=%s", connection.as_uri(), exc)
            await loop.run_in_executor(executor, connection.release)
            executor.shutdown(wait=False)
            raise BrokerInitializationError(
                f"Could not connect to broker at {connection.as_uri()}"
            ) from exc

        if channel is None:
            await loop.run_in_executor(executor, connection.release)
            executor.shutdown(wait=False)
            raise BrokerInitializationError("Broker returned no channel")

        logger.info("Broker connected | url=%s", connection.as_uri())
        return cls(
            connection,
            channel,
            executor,
            prefetch_count=prefetch_count,
            drain_timeout=drain_timeout,
            recover_max_retries=recover_max_retries,
        )

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def connection(self) -> Connection:
        return self._connection

    @property
    def channel(self) -> Any:
        return self._channel

    @property
    def is_alive(self) -> bool:
        return (
            not self._closed
            and not self._failed
            and self._channel is not None
            and self._connection.connected
        )

    @property
    def url(self) -> str:
        """Connection URI with the password masked."""
        return self._connection.as_uri()

    # ------------------------------------------------------------------
    # Broker-io helpers
    # ------------------------------------------------------------------

    async def run(self, fn: Callable[..., Any], *args: Any) -> Any:
        """Run a blocking channel operation on the broker-io thread."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, fn, *args)

    async def declare_queues(self, names: Iterable[str]) -> None:
        """Declare each queue durable, non-exclusive, non-auto-delete."""
        for name in names:
            queue = Queue(
                name,
                routing_key=name,
                durable=True,
                exclusive=False,
                auto_delete=False,
            )
            await self.run(self._declare_sync, queue)
            self._queues.append(queue)
            logger.info("Queue declared | queue=%s", name)

    def _declare_sync(self, queue: Queue) -> None:
        queue(self._channel).declare()

    async def register_consumer(self, queue_name: str, dispatch: Dispatcher) -> None:
        """
        Start basic_consume on queue_name. Each delivery is handed to
        dispatch on the event loop as its own task.
        """
        self._loop = asyncio.get_running_loop()

        def _on_raw_message(message: Message) -> None:
            # Runs on the broker-io thread inside drain_events.
            self._loop.call_soon_threadsafe(self._spawn, dispatch, message)

        consumer = await self.run(self._start_consumer, queue_name, _on_raw_message)
        self._consumers.append(consumer)
        self._subscriptions.append((queue_name, _on_raw_message))

        if self._drain_task is None:
            self._drain_task = asyncio.ensure_future(self._drain_loop())

    def _start_consumer(self, queue_name: str, on_message: RawCallback) -> Consumer:
        consumer = Consumer(
            self._channel,
            queues=[Queue(queue_name, routing_key=queue_name, durable=True)],
            on_message=on_message,
            no_ack=False,
            auto_declare=False,
            prefetch_count=self._prefetch_count,
        )
        consumer.consume()
        return consumer

    def _spawn(self, dispatch: Dispatcher, message: Message) -> None:
        task = asyncio.ensure_future(dispatch(message))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    # ------------------------------------------------------------------
    # Consumer loop + recovery
    # ------------------------------------------------------------------

    async def _drain_loop(self) -> None:
        logger.debug("Drain loop started | url=%s", self.url)
        while not self._closed:
            try:
                await self.run(self._drain_sync)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                if self._closed:
                    break
                logger.warning("Broker connection lost, recovering | url=%s error=%s", self.url, exc)
                if not await self._recover():
                    break

    def _drain_sync(self) -> None:
        try:
            self._connection.drain_events(timeout=self._drain_timeout)
        except socket.timeout:
            pass

    async def _recover(self) -> bool:
        try:
            await self.run(self._recover_sync)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("Broker recovery failed, consumers stopped | url=%s", self.url)
            failure = MessageBusError(f"Lost connection to broker at {self.url}")
            failure.__cause__ = exc
            self._failure = failure
            self._failed = True
            self._stopped.set()
            return False

        logger.info(
            "Broker connection recovered | url=%s queues=%d consumers=%d",
            self.url, len(self._queues), len(self._consumers),
        )
        return True

    def _recover_sync(self) -> None:
        # The old channel dies with the transport; its unacked deliveries
        # return to the queue on the broker side.
        self._consumers.clear()
        self._channel = None
        self._connection.collect()

        def _log_retry(exc: Exception, interval: float) -> None:
            logger.warning("Broker reconnect failed, retrying | error=%s retry_in=%ss", exc, interval)

        self._connection.ensure_connection(errback=_log_retry, max_retries=self._recover_max_retries)
        self._channel = self._connection.channel()
        for queue in self._queues:
            queue(self._channel).declare()
        for queue_name, on_message in self._subscriptions:
            self._consumers.append(self._start_consumer(queue_name, on_message))

    async def wait_closed(self) -> None:
        """
        Block until the handle stops consuming. Returns after close();
        raises MessageBusError when the connection was lost for good.
        """
        await self._stopped.wait()
        if self._failure is not None:
            raise self._failure

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Cancel consumers, close channel, then connection. Safe to call twice."""
        if self._closed:
            return
        self._closed = True

        if self._drain_task is not None:
            self._drain_task.cancel()
            try:
                await self._drain_task
            except asyncio.CancelledError:
                pass
            self._drain_task = None

        for task in list(self._in_flight):
            task.cancel()
        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)

        try:
            await self.run(self._close_sync)
        finally:
            self._executor.shutdown(wait=False)
            self._channel = None
            self._stopped.set()
            logger.info("Broker connection closed | url=%s", self.url)

    def _close_sync(self) -> None:
        try:
            for consumer in self._consumers:
                try:
                    consumer.cancel()
                except Exception as exc:
                    logger.warning("Consumer cancel failed | error=%s", exc)
            self._consumers.clear()
            if self._channel is not None:
                self._channel.close()
        finally:
            self._connection.release()

# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class RabbitMQService(MessageBusService):
    """
    Thin publish / consume view over a BrokerHandle.

    Cheap to construct: the factory returns a fresh one per create() call,
    all of them sharing the same handle.
    """

    def __init__(self, handle: BrokerHandle) -> None:
        self._handle = handle

    @property
    def handle(self) -> BrokerHandle:
        return self._handle

    @traced("bus.publish")
    async def publish(self, queue_name: str, correlation_id: str) -> None:
        try:
            await self._handle.run(self._publish_sync, queue_name, correlation_id)
        except Exception as exc:
            logger.error(
                "Publish failed | queue=%s correlation_id=%s error=%s",
                queue_name, correlation_id, exc,
            )
            raise MessageDeliveryError(
                f"Failed to publish to {queue_name}", correlation_id=correlation_id,
            ) from exc

        logger.info("Message published | queue=%s correlation_id=%s", queue_name, correlation_id)

    def _publish_sync(self, queue_name: str, correlation_id: str) -> None:
        producer = Producer(self._handle.channel, auto_declare=False)
        producer.publish(
            b"",
            exchange="",
            routing_key=queue_name,
            delivery_mode=PERSISTENT_DELIVERY_MODE,
            content_type="application/octet-stream",
            content_encoding="binary",
            correlation_id=correlation_id,
            retry=False,
        )

    async def consume(self, queue_name: str, on_message: MessageHandler) -> None:
        async def dispatch(message: Message) -> None:
            await self._dispatch(queue_name, on_message, message)

        await self._handle.register_consumer(queue_name, dispatch)
        logger.info("Consumer registered | queue=%s", queue_name)

    async def wait_closed(self) -> None:
        await self._handle.wait_closed()

    async def _dispatch(self, queue_name: str, on_message: MessageHandler, message: Message) -> None:
        correlation_id = (message.properties or {}).get("correlation_id") or ""
        logger.debug("Message received | queue=%s correlation_id=%s", queue_name, correlation_id)

        try:
            await on_message(correlation_id)
        except Exception:
            logger.exception(
                "Handler failed, requeueing | queue=%s correlation_id=%s",
                queue_name, correlation_id,
            )
            await self._settle(message.requeue, "requeue", queue_name, correlation_id)
            return

        await self._settle(message.ack, "ack", queue_name, correlation_id)

    async def _settle(self, action: Callable[[], None], verb: str, queue_name: str, correlation_id: str) -> None:
        try:
            await self._handle.run(action)
        except Exception as exc:
            # The broker redelivers anything left unsettled when the channel closes.
            logger.error(
                "Message %s failed | queue=%s correlation_id=%s error=%s",
                verb, queue_name, correlation_id, exc,
            )
