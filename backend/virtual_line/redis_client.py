# backend/virtual_line/redis_client.py

from redis import Redis

from .config import settings

# Lazy: no connection is opened until the first command
redis_client = Redis.from_url(
    settings.redis_url,
    decode_responses=True,
    socket_timeout=2.0,
)
