"""
Lock type definitions.
"""

import os
from dataclasses import dataclass
from uuid import uuid4

from ordered_consumer.constants import LOCK_KEY_PREFIX


@dataclass(frozen=True)
class Lock:
    """
    A lock held in the lock store.

    The key existing in the store is the lock. It goes away on release or
    when the store expires it after ttl_seconds, whichever comes first.
    """

    name: str
    holder_marker: str
    ttl_seconds: int


def lock_name(ordering_key: str) -> str:
    """Derive the lock store key for an ordering key."""
    return f"{LOCK_KEY_PREFIX}{ordering_key}"


def new_holder_marker(holder_id: str | None = None) -> str:
    """
    Create a marker unique to one acquisition.

    Args:
        holder_id: Consumer identifier. Defaults to hostname + PID.
    """
    holder = holder_id or f"{os.uname().nodename}-{os.getpid()}"
    return f"{holder}:{uuid4().hex}"
