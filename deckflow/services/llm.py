"""
Chat-completions client for the generative steps.

Every step (outline, slide content, the reviewers) goes through
complete(). Providers are tried in order: the FF_LLM_PROVIDER one first,
then any other provider with a key configured. Within one provider,
429/5xx responses and timeouts are retried with exponential backoff and
jitter; anything else fails over to the next provider immediately.
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

import httpx

from ..core.config import Settings, get_settings
from ..core.flags import get_flags

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {429, 500, 502, 503, 504}

GEMINI_OPENAI_URL = "https://generativelanguage.googleapis.com/v1beta/openai"


class ModelTier(str, Enum):
    FAST = "fast"           # per-slide style checks
    STANDARD = "standard"   # outline, slide content, narrative, fact check
    DEEP = "deep"           # content-density reviewer


def model_for_tier(tier: ModelTier) -> str:
    settings = get_settings()
    configured = {
        ModelTier.FAST: settings.llm_model_fast,
        ModelTier.STANDARD: settings.llm_model_standard,
        ModelTier.DEEP: settings.llm_model_deep,
    }[tier]
    return configured or settings.default_llm_model


class LLMUnavailable(RuntimeError):
    """No provider produced a completion."""


@dataclass
class Provider:
    name: str
    base_url: str
    api_key: str

    @property
    def url(self) -> str:
        return f"{self.base_url.rstrip('/')}/chat/completions"


@dataclass
class Completion:
    text: str
    provider: str
    model: str
    elapsed_ms: int
    usage: dict = field(default_factory=dict)


# ── Shared client ────────────────────────────────────────────────────

_client: Optional[httpx.AsyncClient] = None


def _get_client() -> httpx.AsyncClient:
    global _client
    if _client is None or _client.is_closed:
        _client = httpx.AsyncClient(
            timeout=httpx.Timeout(connect=10, read=get_settings().llm_read_timeout, write=30, pool=10),
            limits=httpx.Limits(max_connections=50, max_keepalive_connections=20),
        )
    return _client


async def close_client():
    """Close the shared HTTP client. Called on app shutdown."""
    global _client
    if _client and not _client.is_closed:
        await _client.aclose()
        _client = None


# ── Providers ────────────────────────────────────────────────────────

def _all_providers(settings: Settings) -> dict[str, Provider]:
    return {
        "gemini": Provider("gemini", GEMINI_OPENAI_URL, settings.gemini_api_key),
        "aiml": Provider("aiml", settings.aiml_base_url, settings.aiml_api_key),
        "openai": Provider("openai", settings.openai_base_url, settings.openai_api_key),
    }


def provider_chain(primary: Optional[str] = None, settings: Optional[Settings] = None) -> list[Provider]:
    """Primary provider first, then every other provider that has a key."""
    settings = settings or get_settings()
    providers = _all_providers(settings)
    first = (primary or get_flags().llm_provider).lower()
    order = [first] + [name for name in providers if name != first]
    return [providers[name] for name in order if name in providers and providers[name].api_key]


# ── Transport ────────────────────────────────────────────────────────

def backoff_delay(attempt: int, settings: Settings, retry_after: Optional[str] = None) -> float:
    if retry_after:
        try:
            return min(settings.llm_backoff_max, float(retry_after))
        except ValueError:
            pass
    base = settings.llm_backoff_base * (2 ** attempt) + random.uniform(0, 1)
    return min(settings.llm_backoff_max, base)


async def _post(provider: Provider, payload: dict, settings: Settings) -> httpx.Response:
    """POST one completion request, retrying transient failures."""
    client = _get_client()
    headers = {"Authorization": f"Bearer {provider.api_key}", "Content-Type": "application/json"}
    attempts = settings.llm_request_retries + 1
    last_exc: Optional[Exception] = None

    for attempt in range(attempts):
        try:
            resp = await client.post(provider.url, json=payload, headers=headers)
        except (httpx.TimeoutException, httpx.TransportError) as e:
            last_exc = e
            reason = "timeout" if isinstance(e, httpx.TimeoutException) else type(e).__name__
            retry_after = None
        else:
            if resp.status_code not in RETRYABLE_STATUS:
                if resp.status_code >= 400:
                    logger.error("%s error %d: %s", provider.name, resp.status_code, resp.text[:500])
                resp.raise_for_status()
                return resp
            last_exc = httpx.HTTPStatusError(str(resp.status_code), request=resp.request, response=resp)
            reason = str(resp.status_code)
            retry_after = resp.headers.get("retry-after")

        if attempt + 1 < attempts:
            delay = backoff_delay(attempt, settings, retry_after)
            logger.warning(
                "%s %s (attempt %d/%d), retrying in %.1fs",
                provider.name, reason, attempt + 1, attempts, delay,
            )
            await asyncio.sleep(delay)

    raise last_exc or LLMUnavailable(f"{provider.name} request failed")


def message_content(response: dict) -> str:
    """Assistant text of a chat-completions response."""
    return response.get("choices", [{}])[0].get("message", {}).get("content") or ""


# ── Completion ───────────────────────────────────────────────────────

async def complete(
    messages: list[dict],
    model: Optional[str] = None,
    purpose: str = "",
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
    json_mode: bool = False,
    provider: Optional[str] = None,
) -> Completion:
    """
    One completion, failing over across providers.

    `purpose` names the generative step and only shows up in logs.
    Raises LLMUnavailable when no provider is configured or all of them fail.
    """
    settings = get_settings()
    chain = provider_chain(provider, settings)
    if not chain:
        raise LLMUnavailable("No LLM provider configured. Set GEMINI_API_KEY, AIML_API_KEY or OPENAI_API_KEY.")

    payload: dict[str, Any] = {
        "model": model or settings.default_llm_model,
        "messages": messages,
        "temperature": temperature if temperature is not None else settings.default_llm_temperature,
        "max_tokens": max_tokens or settings.default_llm_max_tokens,
    }
    if json_mode:
        payload["response_format"] = {"type": "json_object"}

    errors: list[str] = []
    for candidate in chain:
        start = time.monotonic()
        try:
            resp = await _post(candidate, payload, settings)
        except (httpx.HTTPError, LLMUnavailable) as e:
            logger.error(
                "LLM [%s] failed on %s after %.1fs: %s",
                purpose or "chat", candidate.name, time.monotonic() - start, e,
            )
            errors.append(f"{candidate.name}: {e}")
            continue

        data = resp.json()
        usage = data.get("usage", {})
        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            "LLM [%s] %s %dms | in=%d out=%d tokens | model=%s",
            purpose or "chat", candidate.name, elapsed_ms,
            usage.get("prompt_tokens", 0), usage.get("completion_tokens", 0), payload["model"],
        )
        return Completion(
            text=message_content(data),
            provider=candidate.name,
            model=payload["model"],
            elapsed_ms=elapsed_ms,
            usage=usage,
        )

    raise LLMUnavailable("; ".join(errors))
