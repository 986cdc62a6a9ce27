"""
Message bus interface the consumer pulls from and settles against.
"""

from typing import Protocol

from ordered_consumer.constants import AckDecision
from ordered_consumer.exceptions import MessageAlreadySettled
from ordered_consumer.types.message import Message


class MessageBus(Protocol):
    """
    A subscription that hands out messages and accepts ack/nack.

    Redelivery timing after a nack, ordering per key and ack deadlines are
    the bus's responsibility.
    """

    async def pull(self) -> list[Message]:
        """
        Pull the next available messages.

        Returns:
            Messages ready for dispatch, empty if none arrived in time.

        Raises:
            BusStreamFault: If the subscription can no longer deliver.
        """
        ...

    async def ack(self, message: Message) -> None:
        """Acknowledge a message so it is not redelivered."""
        ...

    async def nack(self, message: Message) -> None:
        """Return a message to the bus for redelivery after backoff."""
        ...

    async def close(self) -> None:
        """Release client resources."""
        ...


async def settle(bus: MessageBus, message: Message, decision: AckDecision) -> None:
    """
    Send the ack/nack decision for a message and invalidate its handle.

    Raises:
        MessageAlreadySettled: If the message was acked or nacked before.
    """
    if message.settled:
        raise MessageAlreadySettled(message.message_id)

    if decision == AckDecision.ACK:
        await bus.ack(message)
    else:
        await bus.nack(message)

    message.settled = True
