"""
Publisher for sample keyed messages.

Publishes a short run of messages under two ordering keys so the consumer's
per-key serialization can be observed end to end.
"""

import asyncio
import logging
import sys

from google.api_core import exceptions as gapi_exceptions
from google.cloud import pubsub_v1

from ordered_consumer.bus.pubsub import configure_emulator, ensure_topic
from ordered_consumer.config import get_settings
from ordered_consumer.constants import ORDERING_KEY_ATTRIBUTE
from ordered_consumer.observability.logging import setup_logging

logger = logging.getLogger(__name__)

SAMPLE_MESSAGES: list[tuple[str, str]] = [
    ("A", "message-A1"),
    ("A", "message-A2"),
    ("A", "message-A3"),
    ("B", "message-B1"),
    ("B", "message-B2"),
]


def create_publisher() -> pubsub_v1.PublisherClient:
    """Create a publisher that preserves order per ordering key."""
    return pubsub_v1.PublisherClient(
        publisher_options=pubsub_v1.types.PublisherOptions(enable_message_ordering=True),
    )


async def publish_message(
    publisher: pubsub_v1.PublisherClient,
    topic_path: str,
    ordering_key: str,
    text: str,
) -> str | None:
    """
    Publish one message tagged with its ordering key.

    The key is sent both as the orderingKey attribute and as the native
    Pub/Sub ordering key.

    Returns:
        The message ID, or None if publishing failed.
    """
    future = publisher.publish(
        topic_path,
        text.encode("utf-8"),
        ordering_key=ordering_key,
        **{ORDERING_KEY_ATTRIBUTE: ordering_key},
    )

    try:
        message_id = await asyncio.to_thread(future.result)
    except gapi_exceptions.GoogleAPIError as e:
        logger.error(
            f"Failed to publish message: {e}",
            extra={"ordering_key": ordering_key, "data": text},
        )
        # Later messages for this key are refused until publishing resumes
        publisher.resume_publish(topic_path, ordering_key)
        return None

    logger.info(
        "Message published",
        extra={"message_id": message_id, "ordering_key": ordering_key, "data": text},
    )
    return message_id


async def publish_samples(
    publisher: pubsub_v1.PublisherClient,
    topic_path: str,
    messages: list[tuple[str, str]] = SAMPLE_MESSAGES,
) -> list[str | None]:
    """Publish messages in order, waiting for each before sending the next."""
    message_ids = []
    for ordering_key, text in messages:
        message_ids.append(await publish_message(publisher, topic_path, ordering_key, text))
    return message_ids


async def run_async() -> int:
    """Publish the sample messages."""
    settings = get_settings()
    setup_logging(settings)

    configure_emulator(settings.pubsub_emulator_host)
    publisher = create_publisher()
    topic_path = publisher.topic_path(settings.gcloud_project, settings.topic_name)

    await asyncio.to_thread(ensure_topic, publisher, topic_path)

    logger.info("Publishing messages", extra={"topic": topic_path})
    message_ids = await publish_samples(publisher, topic_path)
    logger.info("All messages sent", extra={"count": len(message_ids)})

    return 0 if all(message_ids) else 1


def run() -> None:
    """Run the publisher."""
    sys.exit(asyncio.run(run_async()))


if __name__ == "__main__":
    run()
