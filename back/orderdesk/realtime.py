"""Publishes order/booking events to Redis for the staff dashboards' live feed."""

import json
import logging

import redis

from .settings import settings

logger = logging.getLogger(__name__)

# Redis client for pub/sub
redis_client: redis.Redis | None = None


def get_redis() -> redis.Redis | None:
    global redis_client
    if redis_client is None and settings.redis_url:
        try:
            redis_client = redis.from_url(settings.redis_url)
            redis_client.ping()
        except redis.RedisError as e:
            logger.warning(f"Redis unavailable at {settings.redis_url}: {e}")
            redis_client = None
    return redis_client


def channel_for(restaurant_id: int) -> str:
    return f"orders:restaurant:{restaurant_id}"


def publish_order_update(restaurant_id: int, event: dict) -> None:
    """Best effort: a missing feed never fails the request that produced the event."""
    r = get_redis()
    if r is None:
        return
    try:
        r.publish(channel_for(restaurant_id), json.dumps(event, default=str))
    except redis.RedisError as e:
        logger.warning(f"Failed to publish {event.get('type')} for restaurant {restaurant_id}: {e}")
