"""
Consumer process for dispatching messages.

The consumer pulls messages from the subscription, dispatches each one
through the lock protocol and settles it with the bus before pulling the
next.
"""

import asyncio
import logging
import os
import signal
import sys

from google.api_core import exceptions as gapi_exceptions

from ordered_consumer.bus.base import MessageBus, settle
from ordered_consumer.bus.pubsub import configure_emulator, setup_pubsub
from ordered_consumer.config import get_settings
from ordered_consumer.exceptions import BusStreamFault, LockStoreUnavailable
from ordered_consumer.lock.manager import LockManager, create_redis_client
from ordered_consumer.observability.logging import bind_context, setup_logging
from ordered_consumer.observability.metrics import serve_metrics, setup_metrics
from ordered_consumer.observability.tracing import setup_tracing
from ordered_consumer.types.message import Message
from ordered_consumer.worker.dispatcher import Dispatcher
from ordered_consumer.worker.processors import get_processor, list_processors

logger = logging.getLogger(__name__)


class Consumer:
    """
    Message consumer that pulls from the bus and dispatches messages.

    Features:
    - One message at a time through acquire, process, release
    - Per-message errors never stop the loop
    - A terminal bus fault stops the loop and is returned to the caller
    - Graceful shutdown on SIGTERM/SIGINT
    """

    def __init__(
        self,
        bus: MessageBus,
        dispatcher: Dispatcher,
        consumer_id: str | None = None,
        poll_interval: float | None = None,
    ):
        """
        Initialize the consumer.

        Args:
            bus: Subscription to pull from.
            dispatcher: Runs the lock protocol for each message.
            consumer_id: Unique consumer identifier. Defaults to hostname + PID.
            poll_interval: Seconds between pulls when the subscription is empty.
        """
        settings = get_settings()

        self.bus = bus
        self.dispatcher = dispatcher
        self.consumer_id = consumer_id or f"{os.uname().nodename}-{os.getpid()}"
        self.poll_interval = (
            poll_interval if poll_interval is not None else settings.poll_interval_seconds
        )

        self._running = False

    async def run(self) -> BusStreamFault | None:
        """
        Run until stopped or until the subscription fails.

        Returns:
            The fault that ended the loop, or None after a clean stop.
        """
        logger.info("Consumer starting", extra={"consumer_id": self.consumer_id})

        self._running = True

        while self._running:
            try:
                messages = await self.bus.pull()
            except BusStreamFault as fault:
                logger.error(
                    "Subscription failed, stopping consumer",
                    extra={"consumer_id": self.consumer_id, "error": str(fault)},
                )
                self._running = False
                return fault
            except Exception as e:
                logger.exception(
                    f"Error pulling messages: {e}",
                    extra={"consumer_id": self.consumer_id}
                )
                await asyncio.sleep(self.poll_interval)
                continue

            if not messages:
                await asyncio.sleep(self.poll_interval)
                continue

            for message in messages:
                await self.handle(message)

        logger.info("Consumer stopped", extra={"consumer_id": self.consumer_id})
        return None

    async def stop(self) -> None:
        """Stop after the message in hand has been settled."""
        logger.info("Consumer stopping", extra={"consumer_id": self.consumer_id})
        self._running = False

    async def handle(self, message: Message) -> None:
        """
        Dispatch a single message and settle it with the bus.

        Args:
            message: The message to handle.
        """
        result = await self.dispatcher.dispatch(message)

        try:
            await settle(self.bus, message, result.decision)
        except Exception as e:
            # The bus redelivers once the ack deadline passes
            logger.exception(
                f"Failed to {result.decision.value} message: {e}",
                extra={"message_id": message.message_id, "ordering_key": message.ordering_key},
            )
            return

        logger.info(
            f"Message {result.decision.value}ed",
            extra={
                "message_id": message.message_id,
                "ordering_key": message.ordering_key,
                "state": result.state.value,
            },
        )


async def run_async() -> int:
    """
    Run the consumer asynchronously.

    Returns:
        Process exit status: 0 after a clean stop, 1 on a bus fault or a
        startup failure.
    """
    settings = get_settings()
    setup_logging(settings)

    consumer_id = settings.consumer_id or f"{os.uname().nodename}-{os.getpid()}"
    bind_context(consumer_id=consumer_id)

    processor = get_processor(settings.processor_name)
    if processor is None:
        logger.error(
            f"Unknown processor: {settings.processor_name}",
            extra={"available": list_processors()},
        )
        return 1

    if settings.metrics_enabled:
        setup_metrics()
        serve_metrics(settings.prometheus_port)
    if settings.otel_enabled:
        setup_tracing(settings)

    redis_client = create_redis_client(
        settings.redis_host,
        settings.redis_port,
        socket_timeout=settings.redis_socket_timeout_seconds,
    )
    lock_manager = LockManager(
        redis_client,
        release_mode=settings.lock_release_mode,
        holder_id=consumer_id,
    )

    try:
        await lock_manager.ping()
    except LockStoreUnavailable as e:
        logger.error(f"Cannot reach lock store: {e}", extra={"redis_url": settings.redis_url})
        await redis_client.aclose()
        return 1

    configure_emulator(settings.pubsub_emulator_host)
    try:
        bus = await setup_pubsub(
            settings.gcloud_project,
            settings.topic_name,
            settings.subscription_name,
            settings.subscription_policy(),
            max_messages=settings.pull_batch_size,
            pull_timeout_seconds=settings.pull_timeout_seconds,
        )
    except gapi_exceptions.GoogleAPIError as e:
        logger.error(f"Failed to set up subscription: {e}", extra={"topic": settings.topic_name})
        await redis_client.aclose()
        return 1

    dispatcher = Dispatcher(
        lock_manager,
        processor,
        lock_ttl_seconds=settings.lock_ttl_seconds,
    )
    consumer = Consumer(bus, dispatcher, consumer_id=consumer_id)

    # Handle shutdown signals
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: asyncio.create_task(consumer.stop())
        )

    logger.info(
        "Listening for messages",
        extra={"subscription": bus.subscription_path, "processor": settings.processor_name},
    )

    try:
        fault = await consumer.run()
    finally:
        await bus.close()
        await redis_client.aclose()

    return 1 if fault is not None else 0


def run() -> None:
    """Run the consumer."""
    sys.exit(asyncio.run(run_async()))


if __name__ == "__main__":
    run()
