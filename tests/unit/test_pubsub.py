"""
Unit tests for the Pub/Sub bus adapter.
"""

from unittest.mock import MagicMock

import pytest
from google.api_core import exceptions as gapi_exceptions
from google.cloud import pubsub_v1

from ordered_consumer.bus.pubsub import (
    PubSubMessageBus,
    ensure_subscription,
    ensure_topic,
    to_message,
)
from ordered_consumer.exceptions import BusStreamFault
from ordered_consumer.types.message import SubscriptionPolicy
from tests.fakes import make_message

SUBSCRIPTION = "projects/test-project/subscriptions/orders-sub"
TOPIC = "projects/test-project/topics/orders"


def received(
    ack_id: str = "ack-1",
    data: bytes = b"message-A1",
    attributes: dict[str, str] | None = None,
    ordering_key: str = "",
    delivery_attempt: int = 0,
) -> pubsub_v1.types.ReceivedMessage:
    return pubsub_v1.types.ReceivedMessage(
        ack_id=ack_id,
        message=pubsub_v1.types.PubsubMessage(
            data=data,
            attributes=attributes or {},
            ordering_key=ordering_key,
            message_id="1001",
        ),
        delivery_attempt=delivery_attempt,
    )


class TestToMessage:
    """Tests for converting pulled messages."""

    def test_ordering_key_from_attribute(self):
        message = to_message(received(attributes={"orderingKey": "A"}, delivery_attempt=3))

        assert message.ordering_key == "A"
        assert message.payload == b"message-A1"
        assert message.delivery_handle == "ack-1"
        assert message.message_id == "1001"
        assert message.delivery_attempt == 3

    def test_ordering_key_falls_back_to_native(self):
        message = to_message(received(ordering_key="B"))

        assert message.ordering_key == "B"

    def test_attribute_wins_over_native(self):
        message = to_message(received(attributes={"orderingKey": "A"}, ordering_key="B"))

        assert message.ordering_key == "A"

    def test_no_ordering_key(self):
        message = to_message(received())

        assert message.ordering_key is None
        assert message.delivery_attempt is None


class TestPubSubMessageBus:
    """Tests for PubSubMessageBus."""

    @pytest.fixture
    def subscriber(self) -> MagicMock:
        return MagicMock()

    @pytest.fixture
    def bus(self, subscriber: MagicMock) -> PubSubMessageBus:
        return PubSubMessageBus(subscriber, SUBSCRIPTION, max_messages=1, pull_timeout_seconds=5)

    @pytest.mark.asyncio
    async def test_pull(self, bus: PubSubMessageBus, subscriber: MagicMock):
        subscriber.pull.return_value = pubsub_v1.types.PullResponse(
            received_messages=[received(attributes={"orderingKey": "A"})]
        )

        [message] = await bus.pull()

        assert message.ordering_key == "A"
        subscriber.pull.assert_called_once_with(
            request={"subscription": SUBSCRIPTION, "max_messages": 1},
            timeout=5,
        )

    @pytest.mark.asyncio
    async def test_pull_deadline_is_empty(self, bus: PubSubMessageBus, subscriber: MagicMock):
        subscriber.pull.side_effect = gapi_exceptions.DeadlineExceeded("no messages")

        assert await bus.pull() == []

    @pytest.mark.asyncio
    async def test_pull_terminal_error_is_fault(self, bus: PubSubMessageBus, subscriber: MagicMock):
        """Test a terminal pull error surfaces as BusStreamFault."""
        subscriber.pull.side_effect = gapi_exceptions.NotFound("subscription deleted")

        with pytest.raises(BusStreamFault) as exc_info:
            await bus.pull()

        assert exc_info.value.subscription == SUBSCRIPTION
        assert isinstance(exc_info.value.cause, gapi_exceptions.NotFound)

    @pytest.mark.asyncio
    async def test_ack(self, bus: PubSubMessageBus, subscriber: MagicMock):
        await bus.ack(make_message(message_id="7"))

        subscriber.acknowledge.assert_called_once_with(
            request={"subscription": SUBSCRIPTION, "ack_ids": ["handle-7"]}
        )

    @pytest.mark.asyncio
    async def test_nack_zeroes_ack_deadline(self, bus: PubSubMessageBus, subscriber: MagicMock):
        await bus.nack(make_message(message_id="7"))

        subscriber.modify_ack_deadline.assert_called_once_with(
            request={
                "subscription": SUBSCRIPTION,
                "ack_ids": ["handle-7"],
                "ack_deadline_seconds": 0,
            }
        )


class TestProvisioning:
    """Tests for topic and subscription setup."""

    def test_ensure_topic_creates_when_missing(self):
        publisher = MagicMock()
        publisher.get_topic.side_effect = gapi_exceptions.NotFound("missing")

        assert ensure_topic(publisher, TOPIC) is True
        publisher.create_topic.assert_called_once_with(request={"name": TOPIC})

    def test_ensure_topic_existing(self):
        publisher = MagicMock()

        assert ensure_topic(publisher, TOPIC) is False
        publisher.create_topic.assert_not_called()

    def test_ensure_topic_tolerates_race(self):
        publisher = MagicMock()
        publisher.get_topic.side_effect = gapi_exceptions.NotFound("missing")
        publisher.create_topic.side_effect = gapi_exceptions.AlreadyExists("created elsewhere")

        assert ensure_topic(publisher, TOPIC) is False

    def test_ensure_subscription_applies_policy(self):
        subscriber = MagicMock()
        subscriber.get_subscription.side_effect = gapi_exceptions.NotFound("missing")
        policy = SubscriptionPolicy()

        assert ensure_subscription(subscriber, SUBSCRIPTION, TOPIC, policy) is True

        request = subscriber.create_subscription.call_args.kwargs["request"]
        assert request["name"] == SUBSCRIPTION
        assert request["topic"] == TOPIC
        assert request["enable_message_ordering"] is True
        assert request["ack_deadline_seconds"] == 20
        assert request["retry_policy"]["minimum_backoff"].seconds == 5
        assert request["retry_policy"]["maximum_backoff"].seconds == 10

    def test_ensure_subscription_existing(self):
        subscriber = MagicMock()

        assert ensure_subscription(subscriber, SUBSCRIPTION, TOPIC, SubscriptionPolicy()) is False
        subscriber.create_subscription.assert_not_called()
