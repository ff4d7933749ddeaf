"""
Progress events over Redis pub/sub, or nothing at all.

Channels:
  user:{user_id}                             credits and account events
  deck:{user_id}:{presentation_id}           generation and validation events

Publishing is skipped when FF_USE_REDIS is off or REDIS_URL is empty, and
a failed publish is only logged. Subscribers are the frontend's websocket
bridge; nothing in this service reads these channels.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

import redis.asyncio as aioredis

from .config import get_settings
from .flags import get_flags

logger = logging.getLogger(__name__)

_redis_client: Optional[aioredis.Redis] = None


def user_channel(user_id: str) -> str:
    return f"user:{user_id}"


def deck_channel(user_id: str, presentation_id: str) -> str:
    return f"deck:{user_id}:{presentation_id}"


def event_payload(event_type: str, data: Any = None, presentation_id: Optional[str] = None) -> str:
    envelope = {
        "type": event_type,
        "at": datetime.now(timezone.utc).isoformat(),
        "data": data,
    }
    if presentation_id:
        envelope["presentation_id"] = presentation_id
    return json.dumps(envelope, default=str)


def publishing_enabled() -> bool:
    return get_flags().use_redis and bool(get_settings().redis_url)


def _get_redis() -> aioredis.Redis:
    global _redis_client
    if _redis_client is None:
        _redis_client = aioredis.from_url(
            get_settings().redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
        )
    return _redis_client


async def publish(channel: str, payload: str) -> None:
    if not publishing_enabled():
        return
    try:
        await _get_redis().publish(channel, payload)
    except (aioredis.RedisError, OSError) as e:
        logger.warning("Redis publish failed (channel=%s): %s", channel, e)


async def notify_user(user_id: str, event_type: str, data: Any = None) -> None:
    await publish(user_channel(user_id), event_payload(event_type, data))


async def notify_presentation(user_id: str, presentation_id: str, event_type: str, data: Any = None) -> None:
    await publish(deck_channel(user_id, presentation_id), event_payload(event_type, data, presentation_id))


async def close_redis() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("Redis connection closed")
