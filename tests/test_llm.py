import pytest

from deckflow.core.config import get_settings
from deckflow.services.llm import LLMUnavailable, backoff_delay, complete, provider_chain


def _keys(env, gemini="", aiml="", openai=""):
    env.setenv("GEMINI_API_KEY", gemini)
    env.setenv("AIML_API_KEY", aiml)
    env.setenv("OPENAI_API_KEY", openai)
    get_settings.cache_clear()


def test_provider_chain_puts_primary_first(env):
    _keys(env, gemini="g", openai="o")
    assert [p.name for p in provider_chain("openai")] == ["openai", "gemini"]


def test_provider_chain_skips_providers_without_key(env):
    _keys(env, gemini="g", openai="o")
    assert [p.name for p in provider_chain("aiml")] == ["gemini", "openai"]


def test_provider_url():
    chain = provider_chain("openai", get_settings().model_copy(update={"openai_api_key": "o"}))
    assert chain[0].url == "https://api.openai.com/v1/chat/completions"


def test_backoff_delay_honours_retry_after_and_cap():
    settings = get_settings()
    assert backoff_delay(0, settings, "2") == 2.0
    assert backoff_delay(0, settings, "600") == settings.llm_backoff_max
    assert backoff_delay(10, settings) == settings.llm_backoff_max
    assert 1.0 <= backoff_delay(0, settings, "soon") <= 2.0


async def test_complete_without_providers(env):
    _keys(env)
    with pytest.raises(LLMUnavailable):
        await complete([{"role": "user", "content": "hi"}], purpose="outline")
