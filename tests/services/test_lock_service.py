"""Tests for the store lock: bounded waits, idempotent release, hold()."""

import threading

import pytest

from worklog_kernel.exceptions import LockTimeoutError
from worklog_kernel.services.lock_service import ProcessLockProvider, default_lock_provider, hold


class TestProcessLockProvider:

    def test_acquire_and_release(self):
        provider = ProcessLockProvider()
        token = provider.acquire(0.1)
        assert provider.is_held
        assert token.scope == "worklog_store"
        provider.release(token)
        assert not provider.is_held

    def test_second_acquire_times_out(self):
        provider = ProcessLockProvider(scope="tests")
        token = provider.acquire(0.1)
        try:
            with pytest.raises(LockTimeoutError) as exc_info:
                provider.acquire(0.05)
        finally:
            provider.release(token)

        assert exc_info.value.code == "LOCK_TIMEOUT"
        assert exc_info.value.scope == "tests"
        assert exc_info.value.timeout_seconds == 0.05

    def test_release_is_idempotent(self):
        provider = ProcessLockProvider()
        token = provider.acquire(0.1)
        provider.release(token)
        provider.release(token)
        assert not provider.is_held

    def test_stale_token_does_not_release_new_holder(self):
        provider = ProcessLockProvider()
        stale = provider.acquire(0.1)
        provider.release(stale)

        current = provider.acquire(0.1)
        provider.release(stale)
        assert provider.is_held

        provider.release(current)
        assert not provider.is_held

    def test_waiter_gets_lock_after_release(self):
        provider = ProcessLockProvider()
        token = provider.acquire(0.1)
        acquired = threading.Event()

        def waiter():
            with hold(provider, 2.0):
                acquired.set()

        thread = threading.Thread(target=waiter)
        thread.start()
        assert not acquired.wait(0.05)
        provider.release(token)
        thread.join(timeout=2.0)

        assert acquired.is_set()
        assert not provider.is_held


class TestHold:

    def test_releases_on_exception(self):
        provider = ProcessLockProvider()
        with pytest.raises(RuntimeError):
            with hold(provider, 0.1):
                assert provider.is_held
                raise RuntimeError("inside the critical section")
        assert not provider.is_held

    def test_timeout_raises_before_block_runs(self):
        provider = ProcessLockProvider()
        token = provider.acquire(0.1)
        ran = []
        try:
            with pytest.raises(LockTimeoutError):
                with hold(provider, 0.01):
                    ran.append(True)
        finally:
            provider.release(token)
        assert ran == []


class TestDefaultLockProvider:

    def test_one_provider_per_scope(self):
        assert default_lock_provider() is default_lock_provider("worklog_store")
        assert default_lock_provider("reports") is default_lock_provider("reports")
        assert default_lock_provider("reports") is not default_lock_provider()
        assert default_lock_provider("reports").scope == "reports"

    def test_concurrent_first_use_yields_one_provider(self):
        barrier = threading.Barrier(8)
        seen = []

        def lookup():
            barrier.wait()
            seen.append(default_lock_provider("first-use"))

        threads = [threading.Thread(target=lookup) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=2.0)

        assert len(seen) == 8
        assert len({id(p) for p in seen}) == 1
