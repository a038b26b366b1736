"""Redis connection for the domain event fan-out.

Only EventRelay publishes through it. Stock, reservations and bids stay in
PostgreSQL so they commit with the settlement transaction.
"""

import redis.asyncio as aioredis

from config.settings import settings

_publisher: aioredis.Redis | None = None


async def get_redis() -> aioredis.Redis:
    """Lazily open the shared client; `PUBLISH` is its only use."""
    global _publisher  # noqa: PLW0603
    if _publisher is None:
        _publisher = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            health_check_interval=30,
        )
        await _publisher.ping()
    return _publisher


async def close_redis() -> None:
    global _publisher  # noqa: PLW0603
    if _publisher is None:
        return
    client, _publisher = _publisher, None
    await client.aclose()
