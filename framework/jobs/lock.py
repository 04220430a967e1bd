"""
Redis lock that keeps two runs of the same sweep from overlapping.

SET NX EX with a random token; release only deletes the key while it still
holds our token, so a run that outlived its TTL cannot free a newer run's lock.
"""

import uuid
from typing import Optional
import redis.asyncio as redis
from redis.exceptions import RedisError
from framework.config import settings
from framework.logging.logger import get_logger

logger = get_logger("job_lock")

_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class JobLockError(Exception):
    """Raised when the lock is already held by another run."""


class JobLock:
    def __init__(self, redis_client: redis.Redis, job_name: str, ttl_seconds: Optional[int] = None):
        self.redis = redis_client
        self.key = f"jobs:lock:{job_name}"
        self.ttl_seconds = ttl_seconds or settings.SWEEP_LOCK_TTL_SECONDS
        self.token = uuid.uuid4().hex
        self.acquired = False

    async def acquire(self) -> bool:
        self.acquired = bool(
            await self.redis.set(self.key, self.token, nx=True, ex=self.ttl_seconds)
        )
        return self.acquired

    async def release(self) -> None:
        if not self.acquired:
            return
        try:
            await self.redis.eval(_RELEASE_SCRIPT, 1, self.key, self.token)
        except RedisError as e:
            # The TTL frees the key eventually
            logger.warning(f"Failed to release job lock {self.key}: {e!r}")
        finally:
            self.acquired = False

    async def __aenter__(self):
        if not await self.acquire():
            raise JobLockError(f"Job lock {self.key} is held by another run")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.release()
