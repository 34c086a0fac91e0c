import redis.asyncio as redis


async def init_redis(url: str) -> redis.Redis:
    """Open a Redis connection for the application lifespan."""
    return redis.from_url(
        url,
        decode_responses=True,
    )


async def close_redis(client: redis.Redis | None) -> None:
    """Close the Redis connection if it was initialised."""
    if client is not None:
        await client.aclose()
