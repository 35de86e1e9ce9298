"""Redis client for cache and distributed locks"""
import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import RedisError
import os
import json
import uuid
from contextlib import asynccontextmanager
from typing import Optional, Any
import asyncio
import logging

logger = logging.getLogger(__name__)

redis_client: Optional[redis.Redis] = None
redis_pool: Optional[ConnectionPool] = None


async def init_redis():
    """Initialize the Redis connection pool"""
    global redis_client, redis_pool

    redis_url = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    redis_password = os.getenv("REDIS_PASSWORD")
    max_connections = int(os.getenv("REDIS_MAX_CONNECTIONS", "20"))

    redis_pool = ConnectionPool.from_url(
        redis_url,
        password=redis_password,
        max_connections=max_connections,
        decode_responses=True,
        socket_connect_timeout=5,
        socket_keepalive=True,
        retry_on_timeout=True,
        health_check_interval=30,
    )

    redis_client = redis.Redis(connection_pool=redis_pool)

    try:
        await redis_client.ping()
        logger.info(f"Redis connected (pool max_connections={max_connections})")
    except Exception as e:
        logger.error(f"Error connecting to Redis: {e}")


async def get_redis() -> redis.Redis:
    """Return the Redis client"""
    if redis_client is None:
        await init_redis()
    return redis_client


async def close_redis():
    """Close the Redis client and pool"""
    global redis_client, redis_pool
    if redis_client:
        await redis_client.close()
        redis_client = None
    if redis_pool:
        await redis_pool.disconnect()
        redis_pool = None
    logger.info("Redis disconnected")


class LockNotAcquired(Exception):
    pass


class DistributedLock:
    """Distributed lock on Redis"""

    def __init__(self, key: str, timeout: int = 10, expire: int = 30):
        self.key = f"lock:{key}"
        self.timeout = timeout
        self.expire = expire
        self.identifier = None

    async def acquire(self) -> bool:
        redis_conn = await get_redis()
        self.identifier = str(uuid.uuid4())

        loop = asyncio.get_running_loop()
        end_time = loop.time() + self.timeout
        while loop.time() < end_time:
            if await redis_conn.set(self.key, self.identifier, nx=True, ex=self.expire):
                return True
            await asyncio.sleep(0.1)

        return False

    async def release(self):
        if not self.identifier:
            return

        redis_conn = await get_redis()
        # Only the owner may release
        lua_script = """
        if redis.call("get", KEYS[1]) == ARGV[1] then
            return redis.call("del", KEYS[1])
        else
            return 0
        end
        """
        await redis_conn.eval(lua_script, 1, self.key, self.identifier)

    async def __aenter__(self):
        if not await self.acquire():
            raise LockNotAcquired(f"Could not acquire lock: {self.key}")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.release()


@asynccontextmanager
async def optional_lock(key: str, timeout: int = 5, expire: int = 10):
    """
    Take a DistributedLock when Redis is reachable.

    Yields True when the lock is held, False when Redis is down; callers
    must stay correct without it (conditional UPDATEs are the real guard).
    """
    lock = DistributedLock(key, timeout=timeout, expire=expire)
    try:
        acquired = await lock.acquire()
    except (RedisError, OSError) as e:
        logger.warning(f"Redis unavailable for lock {key}: {e}")
        yield False
        return

    if not acquired:
        raise LockNotAcquired(f"Could not acquire lock: {lock.key}")

    try:
        yield True
    finally:
        try:
            await lock.release()
        except (RedisError, OSError) as e:
            logger.warning(f"Error releasing lock {key}: {e}")


async def cache_get(key: str) -> Optional[Any]:
    """Read from cache; a cache outage is a miss"""
    try:
        redis_conn = await get_redis()
        value = await redis_conn.get(key)
    except (RedisError, OSError) as e:
        logger.warning(f"Cache read failed for {key}: {e}")
        return None
    if value:
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value
    return None


async def cache_set(key: str, value: Any, expire: int = 3600):
    """Write to cache"""
    if isinstance(value, (dict, list)):
        value = json.dumps(value, default=str)
    try:
        redis_conn = await get_redis()
        await redis_conn.setex(key, expire, value)
    except (RedisError, OSError) as e:
        logger.warning(f"Cache write failed for {key}: {e}")


async def cache_delete(key: str):
    """Delete from cache"""
    try:
        redis_conn = await get_redis()
        await redis_conn.delete(key)
    except (RedisError, OSError) as e:
        logger.warning(f"Cache delete failed for {key}: {e}")
