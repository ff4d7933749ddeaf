"""
Central feature flags. One file controls every external dependency.

Set via environment variables (prefix FF_) or .env file.
When a flag is OFF, the system uses a local fallback. Nothing crashes.
"""

from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FeatureFlags(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Cache / Realtime ─────────────────────────────────────────────
    use_redis: bool = Field(default=True, alias="FF_USE_REDIS")
    # ON  → Redis pub/sub for generation progress events. Needs REDIS_URL.
    # OFF → Events silently skipped. Nothing breaks.

    # ── LLM Provider ─────────────────────────────────────────────────
    llm_provider: str = Field(default="gemini", alias="FF_LLM_PROVIDER")
    # "gemini" → Google Gemini (default). Needs GEMINI_API_KEY.
    # "aiml"   → AIML API proxy. Needs AIML_API_KEY.
    # "openai" → Direct OpenAI. Needs OPENAI_API_KEY.

    # ── Knowledge base search ────────────────────────────────────────
    use_full_text_search: bool = Field(default=True, alias="FF_USE_FULL_TEXT_SEARCH")
    # ON  → tsvector ranking (PostgreSQL only).
    # OFF → Basic LIKE queries. Works on any backend.

    # ── Pipeline stages ──────────────────────────────────────────────
    enable_content_review: bool = Field(default=True, alias="FF_ENABLE_CONTENT_REVIEW")
    # ON  → Per-slide density reviewer may split overloaded slides.
    # OFF → Every slide counts as review-passed.

    enable_quality_review: bool = Field(default=True, alias="FF_ENABLE_QUALITY_REVIEW")
    # ON  → Style / fact-check / narrative / structural agents after the loop.
    # OFF → Only the structural agent runs (no LLM calls).

    enable_fact_check: bool = Field(default=True, alias="FF_ENABLE_FACT_CHECK")
    # OFF → Fact checker not registered. Fact score defaults to 1.0.

    # ── Feedback ─────────────────────────────────────────────────────
    enable_rule_codification: bool = Field(default=True, alias="FF_ENABLE_RULE_CODIFICATION")
    # ON  → Repeated corrections become "User prefers: ..." rules.
    # OFF → Corrections are logged but never codified.


@lru_cache
def get_flags() -> FeatureFlags:
    return FeatureFlags()
