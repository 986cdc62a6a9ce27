"""
Message-related type definitions for internal use.
"""

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ordered_consumer.constants import (
    DEFAULT_ACK_DEADLINE_SECONDS,
    DEFAULT_MAX_BACKOFF_SECONDS,
    DEFAULT_MIN_BACKOFF_SECONDS,
    MAX_ACK_DEADLINE_SECONDS,
    MAX_BACKOFF_LIMIT_SECONDS,
    MIN_ACK_DEADLINE_SECONDS,
    AckDecision,
    DispatchState,
)


@dataclass
class Message:
    """
    A message delivered by the bus.

    The delivery handle belongs to the bus adapter and is the only way to
    ack or nack the message. It becomes invalid once the message is settled.
    """

    ordering_key: str | None
    payload: bytes
    delivery_handle: Any
    message_id: str | None = None
    attributes: dict[str, str] = field(default_factory=dict)
    delivery_attempt: int | None = None
    settled: bool = False

    @property
    def text(self) -> str:
        """Payload decoded as UTF-8, with undecodable bytes replaced."""
        return self.payload.decode("utf-8", errors="replace")


class SubscriptionPolicy(BaseModel):
    """
    Redelivery policy handed to the bus at subscription setup.
    Immutable for the life of the consumer process.
    """

    model_config = ConfigDict(frozen=True)

    ack_deadline_seconds: int = Field(
        default=DEFAULT_ACK_DEADLINE_SECONDS,
        ge=MIN_ACK_DEADLINE_SECONDS,
        le=MAX_ACK_DEADLINE_SECONDS,
    )
    min_backoff_seconds: int = Field(
        default=DEFAULT_MIN_BACKOFF_SECONDS, ge=0, le=MAX_BACKOFF_LIMIT_SECONDS
    )
    max_backoff_seconds: int = Field(
        default=DEFAULT_MAX_BACKOFF_SECONDS, ge=0, le=MAX_BACKOFF_LIMIT_SECONDS
    )
    ordering_enabled: bool = True

    @model_validator(mode="after")
    def check_backoff_bounds(self) -> "SubscriptionPolicy":
        if self.min_backoff_seconds > self.max_backoff_seconds:
            raise ValueError("min_backoff_seconds must not exceed max_backoff_seconds")
        return self


class ProcessingResult(BaseModel):
    """
    Result of processing one message.
    Returned by processors after doing the unit of work.
    """

    success: bool
    output: dict[str, Any] | None = None
    error: str | None = None
    duration_ms: float | None = None


class DispatchResult(BaseModel):
    """Outcome of dispatching one message: what to tell the bus, and why."""

    decision: AckDecision
    state: DispatchState
    lock_acquired: bool = False
    error: str | None = None

    @property
    def acked(self) -> bool:
        return self.decision == AckDecision.ACK
