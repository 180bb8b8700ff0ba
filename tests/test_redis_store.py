"""Tests for RedisAbuseStateStore."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import LockError

from mfa_core.exceptions import StorageUnavailableError
from mfa_core.gate import AntiAbuseGate, AttemptRecord, RateLimitWindow, StateChanges
from mfa_core.gate.redis_store import RedisAbuseStateStore


@pytest.mark.asyncio
class TestRedisAbuseStateStore:
    @pytest_asyncio.fixture
    async def redis_lock(self):
        lock = MagicMock()
        lock.acquire = AsyncMock(return_value=True)
        lock.release = AsyncMock()
        lock.owned = AsyncMock(return_value=True)
        lock.name = "test:lock:alice"
        return lock

    @pytest_asyncio.fixture
    async def redis_client(self, redis_lock):
        client = AsyncMock()
        # Mock pipeline properly as a synchronous method returning a context manager
        pipeline_mock = AsyncMock()

        # Pipeline methods are synchronous (builder pattern)
        pipeline_mock.set = MagicMock()
        pipeline_mock.delete = MagicMock()

        # Only execute is async
        pipeline_mock.execute = AsyncMock()

        client.pipeline = MagicMock(return_value=pipeline_mock)
        pipeline_mock.__aenter__.return_value = pipeline_mock
        pipeline_mock.__aexit__.return_value = None

        client.lock = MagicMock(return_value=redis_lock)
        client.get.return_value = None
        return client

    @pytest_asyncio.fixture
    async def store(self, redis_client):
        return RedisAbuseStateStore(redis_client, prefix="test")

    async def test_get_missing(self, store, redis_client):
        assert await store.get_attempts("alice") is None
        redis_client.get.assert_called_with("test:attempts:alice")

    async def test_get_attempts(self, store, redis_client):
        record = AttemptRecord(failures=2, last_attempt_at=100.0)
        redis_client.get.return_value = json.dumps(record.to_dict()).encode()

        assert await store.get_attempts("alice") == record

    async def test_get_window(self, store, redis_client):
        window = RateLimitWindow(count=3, reset_at=400.0)
        redis_client.get.return_value = json.dumps(window.to_dict()).encode()

        assert await store.get_window("verify:alice") == window
        redis_client.get.assert_called_with("test:window:verify:alice")

    async def test_read_error_is_storage_unavailable(self, store, redis_client):
        redis_client.get.side_effect = RedisConnectionError("down")

        with pytest.raises(StorageUnavailableError):
            await store.get_attempts("alice")

    async def test_commit_uses_one_transaction(self, store, redis_client):
        changes = StateChanges(
            attempts={
                "alice": AttemptRecord(failures=1, last_attempt_at=100.0),
                "bob": None,
            },
            windows={"verify:alice": RateLimitWindow(count=1, reset_at=400.0)},
        )

        await store.commit(changes)

        redis_client.pipeline.assert_called_once_with(transaction=True)
        pipeline = redis_client.pipeline.return_value
        pipeline.delete.assert_called_once_with("test:attempts:bob")
        pipeline.set.assert_any_call(
            "test:attempts:alice",
            json.dumps(changes.attempts["alice"].to_dict()),
        )
        pipeline.set.assert_any_call(
            "test:window:verify:alice",
            json.dumps(changes.windows["verify:alice"].to_dict()),
            pxat=400_000,
        )
        pipeline.execute.assert_awaited_once()

    async def test_locked_record_expires_with_lockout(self, store, redis_client):
        record = AttemptRecord(failures=5, last_attempt_at=100.0, locked_until=1000.5)

        await store.commit(StateChanges(attempts={"alice": record}))

        pipeline = redis_client.pipeline.return_value
        pipeline.set.assert_called_once_with(
            "test:attempts:alice",
            json.dumps(record.to_dict()),
            pxat=1_000_500,
        )

    async def test_empty_commit_skips_redis(self, store, redis_client):
        await store.commit(StateChanges())
        redis_client.pipeline.assert_not_called()

    async def test_commit_error_is_storage_unavailable(self, store, redis_client):
        pipeline = redis_client.pipeline.return_value
        pipeline.execute.side_effect = RedisConnectionError("down")

        with pytest.raises(StorageUnavailableError):
            await store.commit(
                StateChanges(windows={"k": RateLimitWindow(count=1, reset_at=1.0)})
            )

    async def test_lock_acquire_and_release(self, store, redis_client, redis_lock):
        async with store.lock("alice", timeout=2.0):
            redis_lock.release.assert_not_called()

        redis_client.lock.assert_called_once_with(
            "test:lock:alice",
            timeout=10.0,
            blocking_timeout=2.0,
            thread_local=False,
        )
        redis_lock.release.assert_awaited_once()

    async def test_lock_not_acquired(self, store, redis_lock):
        redis_lock.acquire.return_value = False

        with pytest.raises(StorageUnavailableError):
            async with store.lock("alice", timeout=0.1):
                pass

        redis_lock.release.assert_not_called()

    async def test_expired_lock_release_is_logged(self, store, redis_lock, caplog):
        redis_lock.release.side_effect = LockError("expired")

        async with store.lock("alice", timeout=1.0):
            pass

        assert "expired before release" in caplog.text

    async def test_commit_checks_lock_still_owned(
        self, store, redis_client, redis_lock
    ):
        async with store.lock("alice", timeout=1.0):
            await store.commit(
                StateChanges(windows={"k": RateLimitWindow(count=1, reset_at=1.0)})
            )

        redis_lock.owned.assert_awaited_once()
        redis_client.pipeline.return_value.execute.assert_awaited_once()

    async def test_commit_after_lock_expiry_is_refused(
        self, store, redis_client, redis_lock, caplog
    ):
        redis_lock.owned.return_value = False

        async with store.lock("alice", timeout=1.0):
            with pytest.raises(StorageUnavailableError):
                await store.commit(
                    StateChanges(windows={"k": RateLimitWindow(count=1, reset_at=1.0)})
                )

        redis_client.pipeline.assert_not_called()
        assert "expired before commit" in caplog.text

    async def test_lock_check_error_is_storage_unavailable(self, store, redis_lock):
        redis_lock.owned.side_effect = RedisConnectionError("down")

        async with store.lock("alice", timeout=1.0):
            with pytest.raises(StorageUnavailableError):
                await store.commit(
                    StateChanges(windows={"k": RateLimitWindow(count=1, reset_at=1.0)})
                )

    async def test_commit_outside_lock_skips_check(self, store, redis_lock):
        await store.commit(
            StateChanges(windows={"k": RateLimitWindow(count=1, reset_at=1.0)})
        )
        redis_lock.owned.assert_not_called()

    async def test_gate_fails_closed_when_lock_expires_mid_attempt(
        self, store, redis_client, redis_lock
    ):
        gate = AntiAbuseGate(store=store)

        with pytest.raises(StorageUnavailableError):
            async with gate.attempt("alice", now=100.0) as attempt:
                # A slow collaborator outlives the lock TTL
                redis_lock.owned.return_value = False
                attempt.fail()

        redis_client.pipeline.return_value.execute.assert_not_called()
        redis_lock.release.assert_awaited_once()

    async def test_gate_over_redis_store(self, store, redis_client):
        gate = AntiAbuseGate(store=store)

        async with gate.attempt("alice", now=100.0) as attempt:
            attempt.fail()

        pipeline = redis_client.pipeline.return_value
        pipeline.execute.assert_awaited_once()
        assert pipeline.set.call_count == 2

    async def test_purge_is_left_to_redis_expiry(self, store):
        assert await store.purge_expired(1e12) == 0
