"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import StrEnum


class DispatchState(StrEnum):
    """
    Per-message dispatch states.

    State transitions:
    - RECEIVED -> KEY_MISSING (no ordering key, acked)
    - RECEIVED -> LOCK_DENIED (key locked elsewhere, nacked)
    - RECEIVED -> PROCESSED (lock granted, processing succeeded, acked)
    - RECEIVED -> PROCESSING_FAILED (lock granted, processing failed, nacked)
    - RECEIVED -> LOCK_STORE_UNAVAILABLE (lock store error, nacked)
    """

    RECEIVED = "received"
    KEY_MISSING = "key_missing"
    LOCK_DENIED = "lock_denied"
    PROCESSED = "processed"
    PROCESSING_FAILED = "processing_failed"
    LOCK_STORE_UNAVAILABLE = "lock_store_unavailable"


class AckDecision(StrEnum):
    """Settlement sent back to the bus for a delivered message."""

    ACK = "ack"
    NACK = "nack"


class LockReleaseMode(StrEnum):
    """How a lock is deleted on release."""

    # Delete only when the stored holder marker matches the releaser's
    HOLDER = "holder"
    # Delete whatever is stored under the lock name
    UNCONDITIONAL = "unconditional"


# Lock store
LOCK_KEY_PREFIX = "lock:"
DEFAULT_LOCK_TTL_SECONDS = 300

# Message attributes
ORDERING_KEY_ATTRIBUTE = "orderingKey"

# Subscription defaults
DEFAULT_ACK_DEADLINE_SECONDS = 20
DEFAULT_MIN_BACKOFF_SECONDS = 5
DEFAULT_MAX_BACKOFF_SECONDS = 10

# Pub/Sub service limits
MIN_ACK_DEADLINE_SECONDS = 10
MAX_ACK_DEADLINE_SECONDS = 600
MAX_BACKOFF_LIMIT_SECONDS = 600

# Metrics names
METRIC_MESSAGES_DISPATCHED = "messages_dispatched_total"
METRIC_LOCK_ACQUIRE = "lock_acquire_total"
METRIC_LOCK_STORE_ERRORS = "lock_store_errors_total"
METRIC_PROCESSING_DURATION = "message_processing_duration_seconds"

# Trace span names
SPAN_DISPATCH_MESSAGE = "dispatch_message"
SPAN_ACQUIRE_LOCK = "acquire_lock"
SPAN_PROCESS_MESSAGE = "process_message"
SPAN_RELEASE_LOCK = "release_lock"
