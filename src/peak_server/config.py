"""
peak_server/config.py

Runtime configuration for the search server.

Every provider credential, model id, timeout and quota constant lives here.
A single :class:`PeakSettings` instance is built at start-up and handed to
the orchestrator, the providers, the store and the credit reporter.  Nothing
else in the package reads the environment directly.

A provider is enabled purely by the presence of its credential(s).
"""

from __future__ import annotations

import logging
from functools import lru_cache
from urllib.parse import urlparse

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("peak-server.config")

LOG_FORMAT: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _default_mode_models() -> dict[str, str]:
    return {
        "chat": "openai/gpt-4o-mini",
        "flash": "openai/gpt-4o-mini",
        "think": "deepseek/deepseek-r1",
        "code": "openai/gpt-4o-mini",
        "pro": "openai/gpt-4o-mini",
        "analyze": "openai/gpt-4o-mini",
    }


class PeakSettings(BaseSettings):
    """Settings loaded from environment variables / ``.env``.

    Attributes:
        openrouter_api_key: Bearer key for OpenRouter chat completions.
        openrouter_credits_key: Optional separate key for the billing
            endpoint.  Falls back to ``openrouter_api_key``.
        huggingface_token: Token for the HuggingFace inference API.
        stability_key: Stability AI key (paid image fallback).
        kling_access_key: Kling AI access key (JWT issuer).
        kling_secret_key: Kling AI secret key (JWT signing secret).
        tavily_api_key: Tavily search key.
        google_search_api_key: Google Custom Search key.
        cerebras_api_key: Cerebras key used for prompt rewriting.
        supabase_url: Base URL of the hosted Postgres REST database.
        supabase_anon_key: Anonymous key for the hosted database.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- credentials -------------------------------------------------------
    openrouter_api_key: str = ""
    openrouter_credits_key: str = ""
    huggingface_token: str = ""
    stability_key: str = ""
    kling_access_key: str = ""
    kling_secret_key: str = ""
    tavily_api_key: str = ""
    google_search_api_key: str = ""
    google_search_cx: str = "e5ec2e7bcf3e64e49"
    cerebras_api_key: str = ""
    supabase_url: str = ""
    supabase_anon_key: str = ""

    # --- endpoints ---------------------------------------------------------
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    huggingface_base_url: str = "https://api-inference.huggingface.co/models"
    stability_url: str = (
        "https://api.stability.ai/v2beta/stable-image/generate/core"
    )
    kling_base_url: str = "https://api-singapore.klingai.com"
    tavily_url: str = "https://api.tavily.com/search"
    google_search_url: str = "https://www.googleapis.com/customsearch/v1"
    cerebras_base_url: str = "https://api.cerebras.ai/v1"
    pollinations_image_url: str = "https://image.pollinations.ai/prompt"
    pollinations_video_url: str = (
        "https://gen.pollinations.ai/v1/chat/completions"
    )

    # --- text completion ---------------------------------------------------
    mode_models: dict[str, str] = Field(default_factory=_default_mode_models)
    default_model: str = "openai/gpt-4o-mini"
    fallback_model: str = "meta-llama/llama-3.1-8b-instruct:free"
    max_tokens: int = 1000
    app_referer: str = "https://peak-neural-engine.netlify.app"
    app_title: str = "Peak AI"
    live_keywords: list[str] = Field(
        default_factory=lambda: ["price", "news", "weather", "today"],
        description="Chat-mode queries containing these get web grounding.",
    )

    # --- media models ------------------------------------------------------
    hf_image_model: str = "black-forest-labs/FLUX.1-schnell"
    hf_video_model: str = "THUDM/CogVideoX-5b"
    hf_video_max_retries: int = 5
    hf_video_max_wait: float = 60.0
    stability_output_format: str = "webp"
    kling_model: str = "kling-v1"
    kling_model_hd: str = "kling-v1-6"
    kling_poll_interval: float = 15.0
    kling_max_attempts: int = 10
    kling_token_ttl: int = 1800
    cerebras_model: str = "llama3.1-8b"

    # --- quota -------------------------------------------------------------
    kling_daily_quota: int = 66
    kling_cost_per_call: int = 10

    # --- search ------------------------------------------------------------
    search_max_results: int = 5
    enable_ddg_search: bool = False

    # --- timeouts (seconds) ------------------------------------------------
    request_timeout: float = 60.0
    reasoning_timeout: float = 120.0
    pollinations_video_timeout: float = 60.0

    # --- server ------------------------------------------------------------
    api_host: str = "0.0.0.0"
    api_port: int = 8300
    log_level: str = "INFO"
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    # ------------------------------------------------------------------
    # Derived flags
    # ------------------------------------------------------------------

    @property
    def kling_enabled(self) -> bool:
        return bool(self.kling_access_key and self.kling_secret_key)

    @property
    def store_enabled(self) -> bool:
        """True when the hosted database URL is a valid http(s) URL with a key."""
        if not (self.supabase_url and self.supabase_anon_key):
            return False
        parsed = urlparse(self.supabase_url)
        return parsed.scheme in ("http", "https") and bool(parsed.netloc)

    def model_for_mode(self, mode: str) -> str:
        return self.mode_models.get(mode, self.default_model)

    def timeout_for_mode(self, mode: str) -> float:
        return self.reasoning_timeout if mode == "think" else self.request_timeout


@lru_cache(maxsize=1)
def get_settings() -> PeakSettings:
    """Return the process-wide settings instance."""
    settings = PeakSettings()
    logger.debug("Settings loaded (store_enabled=%s)", settings.store_enabled)
    return settings
