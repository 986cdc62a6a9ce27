"""
Unit tests for the lock manager.
"""

import pytest

from ordered_consumer.constants import LockReleaseMode
from ordered_consumer.exceptions import LockStoreUnavailable
from ordered_consumer.lock.manager import LockManager
from ordered_consumer.types.lock import lock_name, new_holder_marker
from tests.fakes import FakeClock, FakeRedis


class TestLockNames:
    """Tests for lock naming and holder markers."""

    def test_lock_name_prefix(self):
        assert lock_name("A") == "lock:A"

    def test_holder_markers_are_unique(self):
        first = new_holder_marker("consumer-1")
        second = new_holder_marker("consumer-1")

        assert first.startswith("consumer-1:")
        assert first != second


class TestAcquireRelease:
    """Tests for acquire and release."""

    @pytest.mark.asyncio
    async def test_acquire_when_free(self, lock_manager: LockManager, fake_redis: FakeRedis):
        """Test acquiring a free lock creates the key."""
        assert await lock_manager.acquire("lock:A", 300, "marker-1") is True
        assert fake_redis.value("lock:A") == "marker-1"

    @pytest.mark.asyncio
    async def test_acquire_when_held(self, lock_manager: LockManager):
        """Test a second acquire is denied while the lock exists."""
        assert await lock_manager.acquire("lock:A", 300, "marker-1") is True
        assert await lock_manager.acquire("lock:A", 300, "marker-2") is False

    @pytest.mark.asyncio
    async def test_distinct_keys_are_independent(self, lock_manager: LockManager):
        assert await lock_manager.acquire("lock:A", 300, "marker-1") is True
        assert await lock_manager.acquire("lock:B", 300, "marker-2") is True

    @pytest.mark.asyncio
    async def test_release_missing_key_is_noop(self, lock_manager: LockManager):
        """Test releasing a lock that does not exist does not raise."""
        await lock_manager.release("lock:missing", "marker-1")
        await lock_manager.release("lock:missing")

    @pytest.mark.asyncio
    async def test_release_frees_key(self, lock_manager: LockManager, fake_redis: FakeRedis):
        await lock_manager.acquire("lock:A", 300, "marker-1")

        await lock_manager.release("lock:A", "marker-1")

        assert not fake_redis.exists("lock:A")
        assert await lock_manager.acquire("lock:A", 300, "marker-2") is True

    @pytest.mark.asyncio
    async def test_ttl_expiry_frees_key(
        self,
        lock_manager: LockManager,
        fake_redis: FakeRedis,
        clock: FakeClock,
    ):
        """Test a lock never released disappears once its TTL passes."""
        await lock_manager.acquire("lock:A", 10, "marker-1")

        clock.advance(9.9)
        assert await lock_manager.acquire("lock:A", 10, "marker-2") is False

        clock.advance(0.1)
        assert not fake_redis.exists("lock:A")
        assert await lock_manager.acquire("lock:A", 10, "marker-2") is True


class TestReleaseModes:
    """Tests for holder-checked and unconditional release."""

    @pytest.mark.asyncio
    async def test_holder_release_keeps_other_holders_lock(self, fake_redis: FakeRedis):
        manager = LockManager(fake_redis, release_mode=LockReleaseMode.HOLDER)
        await manager.acquire("lock:A", 300, "marker-2")

        await manager.release("lock:A", "marker-1")

        assert fake_redis.value("lock:A") == "marker-2"

    @pytest.mark.asyncio
    async def test_unconditional_release_deletes_any_holder(self, fake_redis: FakeRedis):
        manager = LockManager(fake_redis, release_mode=LockReleaseMode.UNCONDITIONAL)
        await manager.acquire("lock:A", 300, "marker-2")

        await manager.release("lock:A", "marker-1")

        assert not fake_redis.exists("lock:A")
        assert fake_redis.calls("eval") == []

    @pytest.mark.asyncio
    async def test_holder_release_without_marker_is_unconditional(self, fake_redis: FakeRedis):
        manager = LockManager(fake_redis, release_mode=LockReleaseMode.HOLDER)
        await manager.acquire("lock:A", 300, "marker-2")

        await manager.release("lock:A")

        assert not fake_redis.exists("lock:A")


class TestStoreUnavailable:
    """Tests for lock store outages."""

    @pytest.mark.asyncio
    async def test_acquire_raises_lock_store_unavailable(
        self, lock_manager: LockManager, fake_redis: FakeRedis
    ):
        fake_redis.unavailable_for.add("set")

        with pytest.raises(LockStoreUnavailable) as exc_info:
            await lock_manager.acquire("lock:A", 300, "marker-1")

        assert exc_info.value.operation == "acquire"
        assert exc_info.value.key == "lock:A"

    @pytest.mark.asyncio
    async def test_release_raises_lock_store_unavailable(
        self, lock_manager: LockManager, fake_redis: FakeRedis
    ):
        fake_redis.unavailable_for.add("eval")

        with pytest.raises(LockStoreUnavailable):
            await lock_manager.release("lock:A", "marker-1")

    @pytest.mark.asyncio
    async def test_ping(self, lock_manager: LockManager, fake_redis: FakeRedis):
        assert await lock_manager.ping() is True

        fake_redis.unavailable_for.add("ping")
        with pytest.raises(LockStoreUnavailable):
            await lock_manager.ping()


class TestHold:
    """Tests for the scoped hold context manager."""

    @pytest.mark.asyncio
    async def test_hold_releases_on_exit(self, lock_manager: LockManager, fake_redis: FakeRedis):
        async with lock_manager.hold("lock:A", 300) as lock:
            assert lock is not None
            assert lock.name == "lock:A"
            assert lock.ttl_seconds == 300
            assert fake_redis.value("lock:A") == lock.holder_marker

        assert not fake_redis.exists("lock:A")

    @pytest.mark.asyncio
    async def test_hold_releases_on_exception(
        self, lock_manager: LockManager, fake_redis: FakeRedis
    ):
        """Test the lock is released when the block raises."""
        with pytest.raises(RuntimeError):
            async with lock_manager.hold("lock:A", 300):
                raise RuntimeError("boom")

        assert not fake_redis.exists("lock:A")

    @pytest.mark.asyncio
    async def test_hold_denied_yields_none_without_release(
        self, lock_manager: LockManager, fake_redis: FakeRedis
    ):
        await lock_manager.acquire("lock:A", 300, "other-holder")

        async with lock_manager.hold("lock:A", 300) as lock:
            assert lock is None

        assert fake_redis.value("lock:A") == "other-holder"
        assert fake_redis.calls("eval") == []
        assert fake_redis.calls("delete") == []

    @pytest.mark.asyncio
    async def test_hold_acquire_failure_attempts_release(
        self, lock_manager: LockManager, fake_redis: FakeRedis
    ):
        """Test a failed acquire call still tries a release, then raises."""
        fake_redis.unavailable_for.add("set")

        with pytest.raises(LockStoreUnavailable):
            async with lock_manager.hold("lock:A", 300):
                pytest.fail("block must not run")

        assert fake_redis.calls("eval") == ["lock:A"]

    @pytest.mark.asyncio
    async def test_hold_swallows_release_failure(
        self, lock_manager: LockManager, fake_redis: FakeRedis
    ):
        """Test a failed release leaves the lock to expire instead of raising."""
        async with lock_manager.hold("lock:A", 300) as lock:
            assert lock is not None
            fake_redis.unavailable_for.add("eval")

        assert fake_redis.exists("lock:A")

    @pytest.mark.asyncio
    async def test_hold_lost_acquire_reply_clears_own_set(self, fake_redis: FakeRedis):
        """Test a SET applied before its reply was lost is undone."""
        manager = LockManager(fake_redis, release_mode=LockReleaseMode.UNCONDITIONAL)
        fake_redis.reply_lost_for.add("set")

        with pytest.raises(LockStoreUnavailable):
            async with manager.hold("lock:X", 300):
                pytest.fail("block must not run")

        assert not fake_redis.exists("lock:X")

    @pytest.mark.asyncio
    async def test_hold_lost_acquire_reply_spares_live_holder(self, fake_redis: FakeRedis):
        """Test an acquire error never deletes a lock another consumer holds."""
        first = LockManager(
            fake_redis, release_mode=LockReleaseMode.UNCONDITIONAL, holder_id="c1"
        )
        second = LockManager(
            fake_redis, release_mode=LockReleaseMode.UNCONDITIONAL, holder_id="c2"
        )

        async with first.hold("lock:X", 300) as held:
            assert held is not None
            fake_redis.reply_lost_for.add("set")

            with pytest.raises(LockStoreUnavailable):
                async with second.hold("lock:X", 300):
                    pytest.fail("block must not run")

            assert fake_redis.value("lock:X") == held.holder_marker
            assert fake_redis.calls("delete") == []

        assert not fake_redis.exists("lock:X")
