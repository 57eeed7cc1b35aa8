from redis import Redis

from app.core.config import settings

# Health checks and the worker heartbeat must fail fast when redis is unreachable.
REDIS_SOCKET_TIMEOUT_SECONDS = 2.0


def get_redis_client() -> Redis:
    return Redis.from_url(
        settings.cache_redis_url,
        decode_responses=True,
        socket_connect_timeout=REDIS_SOCKET_TIMEOUT_SECONDS,
        socket_timeout=REDIS_SOCKET_TIMEOUT_SECONDS,
    )
