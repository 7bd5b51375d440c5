"""
Lock provider -- exclusive, time-bounded mutual exclusion over the stores.

Responsibility:
    Serializes every write to the entry store and report store.  Both the
    entry-append step of ``EntryService.submit()`` and the whole of
    ``AggregationEngine.close_week()`` run inside ``hold()``.

Invariants enforced:
    - At most one token is outstanding per provider at a time.
    - ``acquire`` never blocks longer than its timeout.
    - ``release`` is idempotent: releasing a stale or already released
      token is a no-op, so a guaranteed-release path can never fail.

Failure modes:
    - LockTimeoutError when the wait ceiling elapses.  Nothing has been
      mutated at that point; the caller may simply retry.
"""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass
from uuid import UUID, uuid4

from worklog_kernel.exceptions import LockTimeoutError
from worklog_kernel.logging_config import get_logger

logger = get_logger("services.lock")

STORE_LOCK_SCOPE = "worklog_store"


@dataclass(frozen=True)
class LockToken:
    token_id: UUID
    scope: str
    acquired_monotonic: float


class LockProvider(ABC):
    """acquire(timeout) -> token | LockTimeoutError; release(token) -> None."""

    scope: str = STORE_LOCK_SCOPE

    @abstractmethod
    def acquire(self, timeout: float) -> LockToken:
        ...

    @abstractmethod
    def release(self, token: LockToken) -> None:
        ...


class ProcessLockProvider(LockProvider):
    """
    In-process lock backed by ``threading.Lock``.

    Suitable when every writer shares one interpreter (single host, one
    worker).  Multi-process deployments need a provider backed by the
    database or an external lock service.
    """

    def __init__(self, scope: str = STORE_LOCK_SCOPE):
        self.scope = scope
        self._lock = threading.Lock()
        self._guard = threading.Lock()
        self._holder: UUID | None = None

    def acquire(self, timeout: float) -> LockToken:
        started = time.monotonic()
        if not self._lock.acquire(timeout=max(timeout, 0)):
            logger.warning(
                "lock_acquire_timeout",
                extra={"scope": self.scope, "timeout_seconds": timeout},
            )
            raise LockTimeoutError(self.scope, timeout)

        token = LockToken(token_id=uuid4(), scope=self.scope, acquired_monotonic=time.monotonic())
        with self._guard:
            self._holder = token.token_id
        logger.debug(
            "lock_acquired",
            extra={
                "scope": self.scope,
                "token_id": str(token.token_id),
                "waited_ms": round((token.acquired_monotonic - started) * 1000, 2),
            },
        )
        return token

    def release(self, token: LockToken) -> None:
        with self._guard:
            if self._holder != token.token_id:
                logger.debug(
                    "lock_release_ignored",
                    extra={"scope": self.scope, "token_id": str(token.token_id)},
                )
                return
            self._holder = None
            self._lock.release()
        logger.debug(
            "lock_released",
            extra={
                "scope": self.scope,
                "token_id": str(token.token_id),
                "held_ms": round((time.monotonic() - token.acquired_monotonic) * 1000, 2),
            },
        )

    @property
    def is_held(self) -> bool:
        return self._lock.locked()


_default_providers: dict[str, ProcessLockProvider] = {}
_registry_guard = threading.Lock()


def default_lock_provider(scope: str = STORE_LOCK_SCOPE) -> ProcessLockProvider:
    """
    The process-wide provider for ``scope``.

    Services built without an explicit provider share this one, so entry
    appends, week closes and adjustments exclude each other.
    """
    with _registry_guard:
        provider = _default_providers.get(scope)
        if provider is None:
            provider = _default_providers[scope] = ProcessLockProvider(scope)
        return provider


@contextmanager
def hold(provider: LockProvider, timeout: float) -> Generator[LockToken, None, None]:
    """Acquire ``provider`` for the duration of the block; always release.

    Raises:
        LockTimeoutError: before the block runs, if the lock is not
            obtained within ``timeout`` seconds.
    """
    token = provider.acquire(timeout)
    try:
        yield token
    finally:
        provider.release(token)
