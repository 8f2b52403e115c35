"""
peak_server/orchestrator.py

Mode router and provider fallback chains.

Pipeline for one query:
  1. Intent detection may override the caller's mode.
  2. Text modes (chat, flash, think, code, pro, analyze) go straight to
     OpenRouter with the mode's model.  ``pro``/``analyze`` (and ``chat`` when
     the query asks about live data) are grounded with web-search results
     spliced into the system prompt first.
  3. Media modes walk an ordered provider list and return the first non-null
     payload:
        image/visualize  HuggingFace FLUX -> Stability AI -> Pollinations URL
        video            Kling -> HuggingFace CogVideoX -> Pollinations video
     The last provider of each chain cannot fail.
  4. Anything else falls through to the default text model.

Providers without credentials are skipped with a warning.  A provider that
returns ``None`` is never retried.  The only provider error that escapes a
chain is Kling's ``QuotaExceededError``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any

import httpx

from .config import PeakSettings
from .intent_classifier import (
    IMAGE_MODES,
    SEARCH_MODES,
    TEXT_MODES,
    Mode,
    content_text,
    resolve_mode,
    strip_command,
)
from .payloads import ProviderResult
from .providers import (
    CerebrasChat,
    HuggingFaceImage,
    HuggingFaceVideo,
    KlingVideo,
    OpenRouterChat,
    PollinationsImage,
    PollinationsVideo,
    Provider,
    ProviderContext,
    StabilityImage,
    StyleEnhancer,
    WebSearch,
)
from .providers.search import splice_context
from .store import SupabaseStore

logger = logging.getLogger("peak-server.orchestrator")

EventCallback = Callable[[dict[str, Any]], None]

_LANGUAGE_NAMES: dict[str, str] = {
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "hi": "Hindi",
    "te": "Telugu",
    "ja": "Japanese",
    "zh": "Chinese",
}

_SYSTEM_PROMPT: str = (
    "Core Identity: You are Peak AI, a next-generation real-time search and "
    "intelligence engine that combines large language models with live web "
    "grounding.\n\n"
    "STRICT INSTRUCTION: Provide your response in three distinct sections "
    "separated by tags:\n\n"
    "[QUICK]\n- A 2-3 sentence direct answer.\n\n"
    "[DETAILED]\n- A deep dive analysis.\n\n"
    "[EXPLANATION]\n- A \"First Principles\" breakdown of the why, in simple terms."
)

_CODE_SYSTEM_PROMPT: str = (
    "You are Peak AI in code mode. Answer with working, idiomatic code in "
    "fenced blocks followed by a short explanation."
)


def build_system_prompt(mode: str, lang: str) -> str:
    base = _CODE_SYSTEM_PROMPT if mode == Mode.CODE else _SYSTEM_PROMPT
    language = _LANGUAGE_NAMES.get(lang.lower(), lang) if lang else "English"
    return f"{base}\n\nLANGUAGE: Respond in {language} ONLY."


def normalise_messages(
    messages: Sequence[dict[str, Any]] | None, query: str
) -> list[dict[str, str]]:
    """Flatten history to ``[{role, content}]`` text turns.

    Structured content is reduced to its text parts.  If no turns survive,
    the query becomes the single user turn.
    """
    turns: list[dict[str, str]] = []
    for turn in messages or []:
        role = str(turn.get("role", ""))
        content = content_text(turn.get("content"))
        if role in ("system", "user", "assistant") and content:
            turns.append({"role": role, "content": content})
    if not any(t["role"] == "user" for t in turns):
        turns.append({"role": "user", "content": query})
    return turns


def _emit(on_event: EventCallback | None, stage: str, content: str) -> None:
    if on_event is None:
        return
    try:
        on_event({"stage": stage, "content": content})
    except Exception as exc:
        logger.warning("on_event callback error: %s", exc, exc_info=True)


class SearchOrchestrator:
    """Routes a query to the provider chain for its mode.

    Args:
        settings: Explicit configuration; decides which providers are enabled.
        client: Shared async HTTP client used by every provider.
        store: Optional hosted-database store (Kling usage accounting).
    """

    def __init__(
        self,
        settings: PeakSettings,
        client: httpx.AsyncClient,
        store: SupabaseStore | None = None,
    ) -> None:
        self.settings = settings
        self.chat = OpenRouterChat(settings, client)
        self.search = WebSearch(settings, client)
        enhancer = StyleEnhancer(self.search, CerebrasChat(settings, client))

        self.image_chain: list[Provider] = [
            HuggingFaceImage(settings, client),
            StabilityImage(settings, client),
            PollinationsImage(settings, client),
        ]
        self.video_chain: list[Provider] = [
            KlingVideo(settings, client, store),
            HuggingFaceVideo(settings, client),
            PollinationsVideo(settings, client, enhancer),
        ]

    async def run(
        self,
        query: str,
        mode: str | None = None,
        messages: Sequence[dict[str, Any]] | None = None,
        *,
        quality: str = "standard",
        lang: str = "en",
        on_event: EventCallback | None = None,
    ) -> ProviderResult:
        """Answer *query* and return the normalized result.

        Raises:
            QuotaExceededError: Billing/quota failure on OpenRouter or Kling.
            MissingCredentialError: A text mode was requested without an
                OpenRouter key.
            ProviderError: The text provider failed on both models.
        """
        effective = resolve_mode(query, mode)
        logger.info("=== Query received (requested=%r effective=%r) ===", mode, effective)
        _emit(on_event, "router", f"[Routing] mode={effective}")

        context = ProviderContext(
            mode=effective,
            messages=list(messages or []),
            quality=quality,
            lang=lang,
        )

        prompt = strip_command(query) or query.strip()
        if effective in IMAGE_MODES:
            payload = await self._run_chain(self.image_chain, prompt, context, on_event)
            return ProviderResult.from_payload(payload or "Failed to generate image.")
        if effective == Mode.VIDEO:
            payload = await self._run_chain(self.video_chain, prompt, context, on_event)
            return ProviderResult.from_payload(payload or "Failed to generate video.")
        if effective not in TEXT_MODES:
            logger.info("Unknown mode %r; using default text provider", effective)
        return await self._run_text(query, context, on_event)

    async def _run_chain(
        self,
        chain: Sequence[Provider],
        query: str,
        context: ProviderContext,
        on_event: EventCallback | None,
    ) -> str | None:
        for provider in chain:
            if not provider.enabled:
                logger.warning("[chain] %s skipped: credentials not configured", provider.name)
                continue
            _emit(on_event, provider.name, f"[{provider.name}] attempting...")
            payload = await provider.attempt(query, context)
            if payload is not None:
                logger.info("[chain] %s succeeded", provider.name)
                return payload
            logger.info("[chain] %s returned nothing; advancing", provider.name)
        return None

    def _wants_grounding(self, query: str, mode: str) -> bool:
        if mode in SEARCH_MODES:
            return True
        lowered = query.lower()
        return mode == Mode.CHAT and any(k in lowered for k in self.settings.live_keywords)

    async def _run_text(
        self,
        query: str,
        context: ProviderContext,
        on_event: EventCallback | None,
    ) -> ProviderResult:
        mode = context.mode
        system_prompt = build_system_prompt(mode, context.lang)

        if self._wants_grounding(query, mode):
            _emit(on_event, "search", f"[search] grounding query {query!r}")
            block = await self.search.augment(query)
            if block:
                system_prompt = splice_context(system_prompt, block)

        turns = [{"role": "system", "content": system_prompt}]
        turns.extend(normalise_messages(context.messages, query))

        model = self.settings.model_for_mode(mode)
        _emit(on_event, "generator", f"[Generating] {model}")
        text = await self.chat.answer(
            turns,
            model=model,
            timeout=self.settings.timeout_for_mode(mode),
        )
        if not text:
            logger.warning("[generator] Empty answer from %s", model)
            text = "No response received."
        logger.info("=== Query complete ===")
        return ProviderResult.from_text(text)
