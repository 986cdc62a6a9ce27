"""
Message processor registry and implementations.

Processors must tolerate running more than once for the same message: the
bus delivers at least once, and a lock that expires mid-processing lets a
second consumer start on the same key.
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable

from ordered_consumer.config import get_settings
from ordered_consumer.types.message import Message, ProcessingResult

logger = logging.getLogger(__name__)

# Type alias for processor functions
Processor = Callable[[Message], Awaitable[ProcessingResult]]

# Processor registry
_processors: dict[str, Processor] = {}


def register_processor(name: str) -> Callable[[Processor], Processor]:
    """
    Decorator to register a message processor.

    Args:
        name: The name the processor is selected by.

    Returns:
        Decorator function.

    Example:
        @register_processor("apply_order_update")
        async def process_order_update(message: Message) -> ProcessingResult:
            ...
    """
    def decorator(processor: Processor) -> Processor:
        _processors[name] = processor
        logger.debug(f"Registered processor: {name}")
        return processor
    return decorator


def get_processor(name: str) -> Processor | None:
    """
    Get a processor by name.

    Args:
        name: The processor name.

    Returns:
        The processor function or None if not found.
    """
    return _processors.get(name)


def list_processors() -> list[str]:
    """List all registered processor names."""
    return list(_processors.keys())


async def simulate_work(
    base_delay_seconds: float,
    jitter_seconds: float,
    rng: random.Random | None = None,
) -> float:
    """
    Sleep for a base delay plus a random jitter.

    Returns:
        The number of seconds slept.
    """
    rng = rng or random
    delay = base_delay_seconds + rng.uniform(0, jitter_seconds)
    await asyncio.sleep(delay)
    return delay


# ============================================================================
# Built-in processors
# ============================================================================


@register_processor("simulated")
async def process_simulated(message: Message) -> ProcessingResult:
    """
    Variable-latency stand-in for real work.

    Delay comes from processing_base_delay_seconds and
    processing_jitter_seconds.
    """
    settings = get_settings()

    delay = await simulate_work(
        settings.processing_base_delay_seconds,
        settings.processing_jitter_seconds,
    )

    return ProcessingResult(
        success=True,
        output={"message": message.text},
        duration_ms=delay * 1000,
    )


@register_processor("echo")
async def process_echo(message: Message) -> ProcessingResult:
    """Returns the payload as output without delay."""
    return ProcessingResult(
        success=True,
        output={"echo": message.text},
    )


@register_processor("failing")
async def process_failing(message: Message) -> ProcessingResult:
    """
    Processor that always fails - for exercising the nack path.
    """
    return ProcessingResult(
        success=False,
        error=f"Intentional failure for message {message.message_id}",
    )
