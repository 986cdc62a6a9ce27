"""
Distributed lock manager backed by Redis.

The lock is the existence of a key in Redis. Acquisition is a single
``SET NX EX`` so there is no window between checking and setting. Expiry is
enforced by Redis itself, which bounds how long a vanished holder can keep a
key blocked.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ordered_consumer.constants import SPAN_ACQUIRE_LOCK, SPAN_RELEASE_LOCK, LockReleaseMode
from ordered_consumer.exceptions import LockStoreUnavailable
from ordered_consumer.observability.metrics import get_metrics
from ordered_consumer.observability.tracing import get_tracer
from ordered_consumer.types.lock import Lock, new_holder_marker

logger = logging.getLogger(__name__)

# Errors that mean the store could not be reached, as opposed to a bad command
UNAVAILABLE_ERRORS = (RedisConnectionError, RedisTimeoutError, OSError)

RELEASE_IF_HOLDER_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class LockManager:
    """
    Acquire and release per-key locks in Redis.

    Features:
    - Atomic acquire-if-absent with expiry
    - Idempotent release, either holder-checked or unconditional
    - Scoped holding that releases on every exit path
    """

    def __init__(
        self,
        client: Redis,
        release_mode: LockReleaseMode = LockReleaseMode.HOLDER,
        holder_id: str | None = None,
    ):
        """
        Initialize the lock manager.

        Args:
            client: Redis client. Must not decode responses differently
                from how markers are written.
            release_mode: Whether release checks the holder marker.
            holder_id: Identifier embedded in holder markers.
        """
        self._client = client
        self.release_mode = release_mode
        self.holder_id = holder_id
        self._metrics = get_metrics()

    async def acquire(self, name: str, ttl_seconds: int, holder_marker: str) -> bool:
        """
        Create the lock only if it does not exist.

        Args:
            name: Lock key.
            ttl_seconds: Expiry applied by the store.
            holder_marker: Value stored under the key.

        Returns:
            True if this call created the lock.

        Raises:
            LockStoreUnavailable: If the store could not be reached.
        """
        with get_tracer().start_as_current_span(SPAN_ACQUIRE_LOCK) as span:
            span.set_attribute("lock", name)
            span.set_attribute("ttl_seconds", ttl_seconds)
            try:
                result = await self._client.set(name, holder_marker, nx=True, ex=ttl_seconds)
            except UNAVAILABLE_ERRORS as e:
                self._metrics.record_lock_store_error("acquire")
                raise LockStoreUnavailable("acquire", name, e) from e

            acquired = bool(result)
            span.set_attribute("acquired", acquired)
            self._metrics.record_lock_acquire(acquired)
            return acquired

    async def release(self, name: str, holder_marker: str | None = None) -> None:
        """
        Delete the lock if present. Safe to call on a missing key.

        In holder mode with a marker, the key is only deleted while it still
        carries that marker, so a lock that expired and was taken by someone
        else is left alone.

        Raises:
            LockStoreUnavailable: If the store could not be reached.
        """
        with get_tracer().start_as_current_span(SPAN_RELEASE_LOCK) as span:
            span.set_attribute("lock", name)
            span.set_attribute("release_mode", self.release_mode.value)
            try:
                if self.release_mode == LockReleaseMode.HOLDER and holder_marker is not None:
                    deleted = await self._client.eval(
                        RELEASE_IF_HOLDER_SCRIPT, 1, name, holder_marker
                    )
                    if not deleted:
                        logger.debug(
                            "Lock not held by this holder, left in place",
                            extra={"lock": name},
                        )
                else:
                    await self._client.delete(name)
            except UNAVAILABLE_ERRORS as e:
                self._metrics.record_lock_store_error("release")
                raise LockStoreUnavailable("release", name, e) from e

    async def release_quietly(self, lock: Lock) -> bool:
        """
        Release a lock, logging instead of raising if the store is down.

        Returns:
            True if the release call completed.
        """
        try:
            await self.release(lock.name, lock.holder_marker)
        except LockStoreUnavailable as e:
            logger.warning(
                "Failed to release lock, it will expire on its own",
                extra={"lock": lock.name, "ttl_seconds": lock.ttl_seconds, "error": str(e)},
            )
            return False
        return True

    async def _release_if_holder(self, lock: Lock) -> None:
        """
        Undo a SET that may have landed before its reply was lost.

        Always compares the marker, whatever the release mode: the key may
        belong to another holder whose SET is the reason ours was refused.
        """
        try:
            await self._client.eval(RELEASE_IF_HOLDER_SCRIPT, 1, lock.name, lock.holder_marker)
        except UNAVAILABLE_ERRORS as e:
            self._metrics.record_lock_store_error("release")
            logger.warning(
                "Failed to clear lock after acquire error, it will expire on its own",
                extra={"lock": lock.name, "ttl_seconds": lock.ttl_seconds, "error": str(e)},
            )

    @asynccontextmanager
    async def hold(self, name: str, ttl_seconds: int) -> AsyncIterator[Lock | None]:
        """
        Hold a lock for the duration of the block.

        Yields the Lock when granted, None when another holder has it. A
        granted lock is released however the block exits. If the acquire
        call itself fails, a release is still attempted in case the store
        applied the SET before the connection dropped.

        Raises:
            LockStoreUnavailable: If the acquire call failed.
        """
        lock = Lock(
            name=name,
            holder_marker=new_holder_marker(self.holder_id),
            ttl_seconds=ttl_seconds,
        )

        try:
            acquired = await self.acquire(lock.name, lock.ttl_seconds, lock.holder_marker)
        except LockStoreUnavailable:
            await self._release_if_holder(lock)
            raise

        if not acquired:
            yield None
            return

        try:
            yield lock
        finally:
            await self.release_quietly(lock)

    async def ping(self) -> bool:
        """Check that the lock store is reachable."""
        try:
            return bool(await self._client.ping())
        except UNAVAILABLE_ERRORS as e:
            raise LockStoreUnavailable("ping", "-", e) from e


def create_redis_client(
    host: str,
    port: int,
    socket_timeout: float | None = None,
) -> Redis:
    """
    Create the Redis client used as the lock store.

    Args:
        host: Redis host.
        port: Redis port.
        socket_timeout: Seconds before a command is considered timed out.
    """
    return Redis(
        host=host,
        port=port,
        socket_timeout=socket_timeout,
        socket_connect_timeout=socket_timeout,
        decode_responses=True,
    )
