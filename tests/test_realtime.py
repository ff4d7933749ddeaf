import json

from deckflow.core import redis as deck_redis
from deckflow.core.config import get_settings
from deckflow.core.flags import get_flags
from deckflow.services import realtime


def test_event_payload_envelope():
    payload = json.loads(deck_redis.event_payload("slide.added", {"slide_number": 2}, "p-1"))
    assert payload["type"] == "slide.added"
    assert payload["data"] == {"slide_number": 2}
    assert payload["presentation_id"] == "p-1"
    assert "at" in payload


def test_channels():
    assert deck_redis.user_channel("u") == "user:u"
    assert deck_redis.deck_channel("u", "p") == "deck:u:p"


def test_publishing_needs_flag_and_url(env):
    assert deck_redis.publishing_enabled() is False

    env.setenv("FF_USE_REDIS", "true")
    env.setenv("REDIS_URL", "redis://localhost:6379/0")
    get_settings.cache_clear()
    get_flags.cache_clear()
    assert deck_redis.publishing_enabled() is True


async def test_events_are_noops_when_disabled(monkeypatch):
    def fail():
        raise AssertionError("redis client requested while publishing is disabled")

    monkeypatch.setattr(deck_redis, "_get_redis", fail)
    await realtime.slide_added("u", "p", {"slide_number": 1})
    await realtime.credits_changed("u", 3)
