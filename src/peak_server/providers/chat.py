"""
peak_server/providers/chat.py

OpenAI-compatible chat-completion clients.

  OpenRouterChat  answers every text mode; tries the mode's model, then the
                  configured free fallback model once.
  CerebrasChat    small fast model used to rewrite video prompts.

Unlike the media providers these raise on failure: a text request has no
further provider to fall back to, so the error goes to the request handler.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..config import PeakSettings
from ..errors import (
    MissingCredentialError,
    ProviderError,
    ProviderTimeoutError,
    QuotaExceededError,
)
from .base import json_path

logger = logging.getLogger("peak-server.chat")

_OPENROUTER_BILLING_MARKERS: tuple[str, ...] = ("credit", "quota", "insufficient")


class ChatCompletionClient:
    """Minimal ``POST /chat/completions`` client.

    Attributes:
        name: Provider label used in logs and errors.
    """

    name: str = "chat"

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        base_url: str,
        api_key: str,
        default_timeout: float = 60.0,
        extra_headers: dict[str, str] | None = None,
    ) -> None:
        self._client = client
        self._url = base_url.rstrip("/") + "/chat/completions"
        self._api_key = api_key
        self._default_timeout = default_timeout
        self._extra_headers = extra_headers or {}

    @property
    def enabled(self) -> bool:
        return bool(self._api_key)

    async def complete(
        self,
        messages: list[dict[str, Any]],
        *,
        model: str,
        max_tokens: int = 1000,
        timeout: float | None = None,
        **options: Any,
    ) -> str:
        """Send one completion request and return the assistant text.

        Raises:
            MissingCredentialError: No API key configured.
            ProviderTimeoutError: The request timed out.
            ProviderError: Transport failure or non-2xx status.
        """
        if not self._api_key:
            raise MissingCredentialError(f"Missing {self.name} API key")

        payload: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "max_tokens": max_tokens,
            **options,
        }
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            **self._extra_headers,
        }

        logger.info("[%s] model=%r messages=%d", self.name, model, len(messages))
        try:
            response = await self._client.post(
                self._url,
                json=payload,
                headers=headers,
                timeout=timeout or self._default_timeout,
            )
        except httpx.TimeoutException as exc:
            raise ProviderTimeoutError(f"{self.name} request timed out", provider=self.name) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"{self.name} transport error: {exc}", provider=self.name) from exc

        if not response.is_success:
            self._raise_for_error(response)

        content = json_path(response.json(), "choices", 0, "message", "content")
        text = (content or "").strip()
        logger.info("[%s] response length=%d chars", self.name, len(text))
        return text

    def _raise_for_error(self, response: httpx.Response) -> None:
        raise ProviderError(
            f"{self.name} API error {response.status_code}: {response.text[:500]}",
            provider=self.name,
            status_code=response.status_code,
        )


class OpenRouterChat(ChatCompletionClient):
    """OpenRouter client with billing detection and a one-shot fallback model."""

    name = "openrouter"

    def __init__(self, settings: PeakSettings, client: httpx.AsyncClient) -> None:
        super().__init__(
            client,
            base_url=settings.openrouter_base_url,
            api_key=settings.openrouter_api_key,
            default_timeout=settings.request_timeout,
            extra_headers={
                "HTTP-Referer": settings.app_referer,
                "X-Title": settings.app_title,
            },
        )
        self._fallback_model = settings.fallback_model
        self._max_tokens = settings.max_tokens

    def _raise_for_error(self, response: httpx.Response) -> None:
        body = response.text.lower()
        if response.status_code == 402 or any(m in body for m in _OPENROUTER_BILLING_MARKERS):
            logger.warning("[openrouter] billing failure (HTTP %d)", response.status_code)
            raise QuotaExceededError()
        super()._raise_for_error(response)

    async def answer(
        self,
        messages: list[dict[str, Any]],
        *,
        model: str,
        timeout: float | None = None,
    ) -> str:
        """Complete with *model*, retrying once with the fallback model.

        If the fallback also fails, the primary model's error is raised.
        """
        try:
            return await self.complete(
                messages, model=model, max_tokens=self._max_tokens, timeout=timeout
            )
        except MissingCredentialError:
            raise
        except Exception as primary_exc:
            if not self._fallback_model or self._fallback_model == model:
                raise
            logger.warning(
                "[openrouter] primary model %r failed (%s); trying fallback %r",
                model,
                primary_exc,
                self._fallback_model,
            )
            try:
                return await self.complete(
                    messages,
                    model=self._fallback_model,
                    max_tokens=self._max_tokens,
                    timeout=timeout,
                )
            except Exception as fallback_exc:
                logger.error("[openrouter] fallback model also failed: %s", fallback_exc)
                raise primary_exc from fallback_exc


class CerebrasChat(ChatCompletionClient):
    name = "cerebras"

    def __init__(self, settings: PeakSettings, client: httpx.AsyncClient) -> None:
        super().__init__(
            client,
            base_url=settings.cerebras_base_url,
            api_key=settings.cerebras_api_key,
            default_timeout=settings.request_timeout,
        )
        self.model = settings.cerebras_model
