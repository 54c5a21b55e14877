"""Realtime notifications over Redis pub/sub.

Clients (seat map, admin dashboard, a user's "my bookings" page) subscribe to
``<prefix>:<topic>`` through whatever websocket gateway fronts Redis. Topics:

* ``schedule_<id>``  seatsUpdated
* ``admins``         bookingCreated / bookingCancelled
* ``user_<id>``      bookingCreated / bookingCancelled
"""
import json
import logging
from functools import lru_cache
import redis

from triply.core.config import settings

logger = logging.getLogger(__name__)

ADMINS_TOPIC = "admins"


def schedule_topic(schedule_id: str) -> str:
    return f"schedule_{schedule_id}"


def user_topic(user_id: str) -> str:
    return f"user_{user_id}"


@lru_cache(maxsize=1)
def get_client() -> redis.Redis:
    return redis.Redis.from_url(settings.REDIS_URL, socket_timeout=5)


def publish(topic: str, event: str, data: dict) -> int:
    """Publish one event. Returns the number of subscribers that received it (0 when disabled)."""
    if not settings.REALTIME_ENABLED:
        return 0
    message = json.dumps({"event": event, "data": data}, default=str)
    receivers = get_client().publish(f"{settings.REALTIME_CHANNEL_PREFIX}:{topic}", message)
    logger.debug("published %s to %s (%s receivers)", event, topic, receivers)
    return receivers
