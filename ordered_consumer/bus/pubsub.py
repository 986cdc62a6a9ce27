"""
Google Cloud Pub/Sub implementation of the message bus.

Uses synchronous pull so the consumer handles one message at a time and
decides when to ask for the next. The Pub/Sub clients are blocking, so each
call runs in a worker thread.
"""

import asyncio
import logging
import os

from google.api_core import exceptions as gapi_exceptions
from google.cloud import pubsub_v1
from google.protobuf import duration_pb2

from ordered_consumer.constants import ORDERING_KEY_ATTRIBUTE
from ordered_consumer.exceptions import BusStreamFault
from ordered_consumer.types.message import Message, SubscriptionPolicy

logger = logging.getLogger(__name__)


def configure_emulator(emulator_host: str | None) -> None:
    """
    Point the Pub/Sub clients at an emulator.

    The client library only reads PUBSUB_EMULATOR_HOST from the process
    environment, so a value loaded from .env has to be exported first.
    """
    if emulator_host:
        os.environ["PUBSUB_EMULATOR_HOST"] = emulator_host
        logger.info("Using Pub/Sub emulator", extra={"emulator_host": emulator_host})


def ensure_topic(publisher: pubsub_v1.PublisherClient, topic_path: str) -> bool:
    """
    Create the topic if it does not exist.

    Returns:
        True if the topic was created by this call.
    """
    try:
        publisher.get_topic(request={"topic": topic_path})
        return False
    except gapi_exceptions.NotFound:
        pass

    try:
        publisher.create_topic(request={"name": topic_path})
    except gapi_exceptions.AlreadyExists:
        return False

    logger.info("Topic created", extra={"topic": topic_path})
    return True


def ensure_subscription(
    subscriber: pubsub_v1.SubscriberClient,
    subscription_path: str,
    topic_path: str,
    policy: SubscriptionPolicy,
) -> bool:
    """
    Create the pull subscription if it does not exist.

    An existing subscription is left as it is, even if its settings differ
    from the policy.

    Returns:
        True if the subscription was created by this call.
    """
    try:
        subscriber.get_subscription(request={"subscription": subscription_path})
        return False
    except gapi_exceptions.NotFound:
        pass

    try:
        subscriber.create_subscription(
            request={
                "name": subscription_path,
                "topic": topic_path,
                "ack_deadline_seconds": policy.ack_deadline_seconds,
                "enable_message_ordering": policy.ordering_enabled,
                "retry_policy": {
                    "minimum_backoff": duration_pb2.Duration(seconds=policy.min_backoff_seconds),
                    "maximum_backoff": duration_pb2.Duration(seconds=policy.max_backoff_seconds),
                },
            }
        )
    except gapi_exceptions.AlreadyExists:
        return False

    logger.info(
        "Pull subscription created",
        extra={
            "subscription": subscription_path,
            "ordering_enabled": policy.ordering_enabled,
            "ack_deadline_seconds": policy.ack_deadline_seconds,
            "min_backoff_seconds": policy.min_backoff_seconds,
            "max_backoff_seconds": policy.max_backoff_seconds,
        },
    )
    return True


def to_message(received: pubsub_v1.types.ReceivedMessage) -> Message:
    """
    Convert a pulled Pub/Sub message.

    The ordering key is taken from the orderingKey attribute, falling back
    to the native Pub/Sub ordering key.
    """
    pubsub_message = received.message
    attributes = dict(pubsub_message.attributes)
    ordering_key = attributes.get(ORDERING_KEY_ATTRIBUTE) or pubsub_message.ordering_key or None

    return Message(
        ordering_key=ordering_key,
        payload=pubsub_message.data,
        delivery_handle=received.ack_id,
        message_id=pubsub_message.message_id,
        attributes=attributes,
        delivery_attempt=received.delivery_attempt or None,
    )


class PubSubMessageBus:
    """Pull subscription on Google Cloud Pub/Sub."""

    def __init__(
        self,
        subscriber: pubsub_v1.SubscriberClient,
        subscription_path: str,
        max_messages: int = 1,
        pull_timeout_seconds: float = 30.0,
    ):
        """
        Initialize the bus.

        Args:
            subscriber: Pub/Sub subscriber client.
            subscription_path: Fully qualified subscription name.
            max_messages: Upper bound on messages returned per pull.
            pull_timeout_seconds: How long a pull waits for messages.
        """
        self._subscriber = subscriber
        self.subscription_path = subscription_path
        self.max_messages = max_messages
        self.pull_timeout_seconds = pull_timeout_seconds

    async def pull(self) -> list[Message]:
        try:
            response = await asyncio.to_thread(
                self._subscriber.pull,
                request={
                    "subscription": self.subscription_path,
                    "max_messages": self.max_messages,
                },
                timeout=self.pull_timeout_seconds,
            )
        except gapi_exceptions.DeadlineExceeded:
            return []
        except gapi_exceptions.GoogleAPIError as e:
            raise BusStreamFault(self.subscription_path, e) from e

        return [to_message(received) for received in response.received_messages]

    async def ack(self, message: Message) -> None:
        await asyncio.to_thread(
            self._subscriber.acknowledge,
            request={
                "subscription": self.subscription_path,
                "ack_ids": [message.delivery_handle],
            },
        )

    async def nack(self, message: Message) -> None:
        # A zero ack deadline hands the message back for redelivery under the
        # subscription's retry policy
        await asyncio.to_thread(
            self._subscriber.modify_ack_deadline,
            request={
                "subscription": self.subscription_path,
                "ack_ids": [message.delivery_handle],
                "ack_deadline_seconds": 0,
            },
        )

    async def close(self) -> None:
        await asyncio.to_thread(self._subscriber.close)


async def setup_pubsub(
    project_id: str,
    topic_name: str,
    subscription_name: str,
    policy: SubscriptionPolicy,
    max_messages: int = 1,
    pull_timeout_seconds: float = 30.0,
) -> PubSubMessageBus:
    """
    Provision the topic and subscription, then return a bus over them.

    Safe to run on every start.
    """
    publisher = pubsub_v1.PublisherClient()
    subscriber = pubsub_v1.SubscriberClient()

    topic_path = publisher.topic_path(project_id, topic_name)
    subscription_path = subscriber.subscription_path(project_id, subscription_name)

    await asyncio.to_thread(ensure_topic, publisher, topic_path)
    await asyncio.to_thread(ensure_subscription, subscriber, subscription_path, topic_path, policy)

    return PubSubMessageBus(
        subscriber,
        subscription_path,
        max_messages=max_messages,
        pull_timeout_seconds=pull_timeout_seconds,
    )
