"""Keyed locks that serialize booking commits for the same table and day."""

from __future__ import annotations

import asyncio
import weakref
from collections.abc import AsyncIterator, Iterable
from contextlib import AbstractAsyncContextManager, AsyncExitStack, asynccontextmanager
from typing import Protocol

import redis.asyncio as redis
from redis.exceptions import LockError, RedisError

from backend.app.core.errors import TransactionFailure
from backend.app.core.logging_config import get_logger

logger = get_logger(__name__)


class SlotLock(Protocol):
    def hold(self, key: str, timeout: float) -> AbstractAsyncContextManager[None]: ...


@asynccontextmanager
async def hold_many(lock: SlotLock, keys: Iterable[str], timeout: float) -> AsyncIterator[None]:
    """Acquire several keys in sorted order so concurrent callers never deadlock."""
    async with AsyncExitStack() as stack:
        for key in sorted(set(keys)):
            await stack.enter_async_context(lock.hold(key, timeout))
        yield


class LocalSlotLock:
    """In-process lock registry; correct only when a single worker serves bookings."""

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    @asynccontextmanager
    async def hold(self, key: str, timeout: float) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        try:
            await asyncio.wait_for(lock.acquire(), timeout=timeout)
        except asyncio.TimeoutError:
            raise TransactionFailure(f"Timed out waiting for booking lock {key}") from None
        try:
            yield
        finally:
            lock.release()


class RedisSlotLock:
    """Redis-backed lock shared by every worker pointing at the same Redis."""

    def __init__(self, client: redis.Redis, *, lease_seconds: float = 30.0, prefix: str = "booking-lock") -> None:
        self._client = client
        self._lease_seconds = lease_seconds
        self._prefix = prefix

    @asynccontextmanager
    async def hold(self, key: str, timeout: float) -> AsyncIterator[None]:
        lock = self._client.lock(
            f"{self._prefix}:{key}",
            timeout=self._lease_seconds,
            blocking_timeout=timeout,
        )
        try:
            acquired = await lock.acquire()
        except RedisError as exc:
            raise TransactionFailure("Booking lock backend unavailable") from exc
        if not acquired:
            raise TransactionFailure(f"Timed out waiting for booking lock {key}")
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError:
                # Lease expired while the transaction was still running.
                logger.warning("booking_lock_lease_expired", key=key)
