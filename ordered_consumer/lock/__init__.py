"""
Distributed lock module.
"""

from ordered_consumer.lock.manager import LockManager, create_redis_client

__all__ = ["LockManager", "create_redis_client"]
