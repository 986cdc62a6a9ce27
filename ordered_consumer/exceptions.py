"""
Exceptions raised across the consumer.
"""


class OrderedConsumerError(Exception):
    """Base class for consumer errors."""


class LockStoreUnavailable(OrderedConsumerError):
    """The lock store could not be reached or timed out."""

    def __init__(self, operation: str, key: str, cause: Exception | None = None):
        self.operation = operation
        self.key = key
        self.cause = cause
        super().__init__(f"Lock store unavailable during {operation} of {key}: {cause}")


class BusStreamFault(OrderedConsumerError):
    """The subscription stream reported a terminal error."""

    def __init__(self, subscription: str, cause: Exception | None = None):
        self.subscription = subscription
        self.cause = cause
        super().__init__(f"Subscription {subscription} failed: {cause}")


class MessageAlreadySettled(OrderedConsumerError):
    """A message handle was acked or nacked more than once."""

    def __init__(self, message_id: str | None):
        self.message_id = message_id
        super().__init__(f"Message {message_id} was already settled")
