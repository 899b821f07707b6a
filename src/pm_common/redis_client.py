"""Redis client factory: used for settlement locks only.

NOT used for balances (those go through the ledger store).
The client is created and closed by the service container.
"""

import redis.asyncio as aioredis


def create_redis(url: str) -> aioredis.Redis:
    return aioredis.from_url(url, decode_responses=True)


async def close_redis(client: aioredis.Redis) -> None:
    await client.aclose()


class RedisLock:
    """SET NX EX lock keyed per resource; released only by the owner token."""

    _RELEASE_SCRIPT = """
    if redis.call('get', KEYS[1]) == ARGV[1] then
        return redis.call('del', KEYS[1])
    end
    return 0
    """

    def __init__(self, client: aioredis.Redis, key: str, token: str, ttl_seconds: int) -> None:
        self._client = client
        self._key = key
        self._token = token
        self._ttl = ttl_seconds

    async def acquire(self) -> bool:
        return bool(await self._client.set(self._key, self._token, nx=True, ex=self._ttl))

    async def release(self) -> None:
        await self._client.eval(self._RELEASE_SCRIPT, 1, self._key, self._token)
