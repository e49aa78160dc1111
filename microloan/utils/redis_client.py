from functools import lru_cache

from redis.asyncio import Redis

from microloan.core.settings import settings


@lru_cache(maxsize=1)
def get_redis_client() -> Redis:
    url = settings.rate_limit_storage_uri
    if not url.startswith("redis"):
        url = settings.redis_url
    return Redis.from_url(url, decode_responses=True)
