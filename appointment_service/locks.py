import asyncio
import logging
import weakref
from contextlib import asynccontextmanager

from redis.exceptions import LockError, RedisError

from .errors import TransientStorageError
from .redis_client import redis_client

logger = logging.getLogger(__name__)

LOCK_TTL_SECONDS = 30
LOCK_WAIT_SECONDS = 10


class KeyedLocks:
    """
    Mutual exclusion per key: an asyncio.Lock inside this process, plus a
    Redis lock shared by every instance when REDIS_URL is configured.
    """

    def __init__(self, prefix: str, ttl_seconds: int = LOCK_TTL_SECONDS, wait_seconds: float = LOCK_WAIT_SECONDS):
        self.prefix = prefix
        self.ttl_seconds = ttl_seconds
        self.wait_seconds = wait_seconds
        # an entry lives only while a holder or waiter references its lock
        self._local: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _local_lock(self, key: str) -> asyncio.Lock:
        lock = self._local.get(key)
        if lock is None:
            lock = self._local[key] = asyncio.Lock()
        return lock

    async def _acquire_remote(self, key: str, blocking: bool):
        if redis_client is None:
            return None, True

        lock = redis_client.lock(
            f"{self.prefix}:{key}",
            timeout=self.ttl_seconds,
            blocking=blocking,
            blocking_timeout=self.wait_seconds if blocking else None,
        )
        try:
            acquired = await lock.acquire()
        except RedisError as e:
            # the exclusion constraint still rejects overlapping rows
            logger.warning("redis lock %s:%s unavailable, continuing with local lock: %s", self.prefix, key, e)
            return None, True
        return (lock if acquired else None), acquired

    async def _release_remote(self, lock) -> None:
        try:
            await lock.release()
        except (LockError, RedisError) as e:
            logger.warning("redis lock release failed for %s: %s", lock.name, e)

    @asynccontextmanager
    async def hold(self, key: str):
        """Wait for the lock; TransientStorageError if another instance keeps it too long."""
        local = self._local_lock(key)
        async with local:
            remote, acquired = await self._acquire_remote(key, blocking=True)
            if not acquired:
                raise TransientStorageError("Store is busy, please try again")
            try:
                yield
            finally:
                if remote is not None:
                    await self._release_remote(remote)

    @asynccontextmanager
    async def try_hold(self, key: str):
        """Yield True if the lock was free, False (without waiting) if it is held elsewhere."""
        local = self._local_lock(key)
        if local.locked():
            yield False
            return

        async with local:
            remote, acquired = await self._acquire_remote(key, blocking=False)
            if not acquired:
                yield False
                return
            try:
                yield True
            finally:
                if remote is not None:
                    await self._release_remote(remote)


store_locks = KeyedLocks("booking_lock")
sweep_locks = KeyedLocks("sweep_lock", ttl_seconds=15 * 60)
