"""
Type definitions for the ordered consumer.
Contains input/output type definitions shared across modules.
"""

from ordered_consumer.types.lock import Lock, lock_name, new_holder_marker
from ordered_consumer.types.message import (
    DispatchResult,
    Message,
    ProcessingResult,
    SubscriptionPolicy,
)

__all__ = [
    # Message types
    "Message",
    "SubscriptionPolicy",
    "ProcessingResult",
    "DispatchResult",
    # Lock types
    "Lock",
    "lock_name",
    "new_holder_marker",
]
