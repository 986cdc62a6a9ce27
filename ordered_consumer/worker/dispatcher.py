"""
Per-message dispatch: lock the ordering key, process, release, decide.

dispatch_message() holds the protocol and depends only on its arguments, so
it can be driven by any delivery mechanism. Dispatcher adds logging
context, tracing and metrics around it.
"""

import logging
import time

from ordered_consumer.constants import (
    SPAN_DISPATCH_MESSAGE,
    SPAN_PROCESS_MESSAGE,
    AckDecision,
    DispatchState,
)
from ordered_consumer.exceptions import LockStoreUnavailable
from ordered_consumer.lock.manager import LockManager
from ordered_consumer.observability.logging import message_context
from ordered_consumer.observability.metrics import MetricsCollector, get_metrics
from ordered_consumer.observability.tracing import get_tracer
from ordered_consumer.types.lock import lock_name
from ordered_consumer.types.message import DispatchResult, Message
from ordered_consumer.worker.processors import Processor

logger = logging.getLogger(__name__)


async def dispatch_message(
    message: Message,
    lock_manager: LockManager,
    processor: Processor,
    lock_ttl_seconds: int,
) -> DispatchResult:
    """
    Decide whether a message is acked or nacked.

    Handles the full lifecycle:
    1. No ordering key: ack without touching the lock store
    2. Acquire lock:<ordering_key>; if denied, nack without releasing
    3. Run the processor; ack on success, nack on failure or exception
    4. Release the lock before returning, whatever happened in step 3

    Never raises for per-message errors.

    Args:
        message: The delivered message.
        lock_manager: Lock store access.
        processor: The unit of work.
        lock_ttl_seconds: Expiry for the lock.

    Returns:
        DispatchResult with the decision and terminal state.
    """
    if not message.ordering_key:
        logger.warning(
            "Message without ordering key received, acknowledging",
            extra={"message_id": message.message_id},
        )
        return DispatchResult(decision=AckDecision.ACK, state=DispatchState.KEY_MISSING)

    ordering_key = message.ordering_key
    lock_acquired = False

    try:
        async with lock_manager.hold(lock_name(ordering_key), lock_ttl_seconds) as lock:
            if lock is None:
                logger.info(
                    "Key is locked, nacking message",
                    extra={"ordering_key": ordering_key, "data": message.text},
                )
                return DispatchResult(decision=AckDecision.NACK, state=DispatchState.LOCK_DENIED)

            lock_acquired = True
            logger.info(
                "Lock acquired, processing message",
                extra={"ordering_key": ordering_key, "data": message.text},
            )

            with get_tracer().start_as_current_span(SPAN_PROCESS_MESSAGE):
                result = await processor(message)

    except LockStoreUnavailable as e:
        logger.error(
            "Lock store unavailable, nacking message",
            extra={"ordering_key": ordering_key, "error": str(e)},
        )
        return DispatchResult(
            decision=AckDecision.NACK,
            state=DispatchState.LOCK_STORE_UNAVAILABLE,
            lock_acquired=lock_acquired,
            error=str(e),
        )
    except Exception as e:
        logger.exception(
            "Error processing message, nacking",
            extra={"ordering_key": ordering_key, "data": message.text},
        )
        return DispatchResult(
            decision=AckDecision.NACK,
            state=DispatchState.PROCESSING_FAILED,
            lock_acquired=lock_acquired,
            error=f"Processor exception: {e}",
        )

    if result.success:
        logger.info(
            "Processing finished, acknowledging message",
            extra={"ordering_key": ordering_key, "data": message.text},
        )
        return DispatchResult(
            decision=AckDecision.ACK,
            state=DispatchState.PROCESSED,
            lock_acquired=True,
        )

    logger.warning(
        "Processing failed, nacking message",
        extra={"ordering_key": ordering_key, "error": result.error},
    )
    return DispatchResult(
        decision=AckDecision.NACK,
        state=DispatchState.PROCESSING_FAILED,
        lock_acquired=True,
        error=result.error or "Unknown error",
    )


class Dispatcher:
    """
    Dispatches messages one at a time through the lock protocol.

    The lock manager and processor are injected so tests can substitute
    fakes for Redis and for the real work.
    """

    def __init__(
        self,
        lock_manager: LockManager,
        processor: Processor,
        lock_ttl_seconds: int,
        metrics: MetricsCollector | None = None,
    ):
        self.lock_manager = lock_manager
        self.processor = processor
        self.lock_ttl_seconds = lock_ttl_seconds
        self._metrics = metrics or get_metrics()

    async def dispatch(self, message: Message) -> DispatchResult:
        """Dispatch one message and record the outcome."""
        start_time = time.monotonic()

        with message_context(
            ordering_key=message.ordering_key,
            message_id=message.message_id,
            delivery_attempt=message.delivery_attempt,
        ):
            with get_tracer().start_as_current_span(SPAN_DISPATCH_MESSAGE) as span:
                span.set_attribute("ordering_key", message.ordering_key or "")
                if message.message_id:
                    span.set_attribute("message_id", message.message_id)

                result = await dispatch_message(
                    message,
                    self.lock_manager,
                    self.processor,
                    self.lock_ttl_seconds,
                )

                span.set_attribute("state", result.state.value)
                span.set_attribute("decision", result.decision.value)

        self._metrics.record_dispatch(result.state.value, result.decision.value)
        if result.lock_acquired:
            self._metrics.record_processing(result.state.value, time.monotonic() - start_time)

        return result
