"""
peak_server/providers/video.py

Secondary and free video providers (Kling lives in ``kling.py``):

  HuggingFaceVideo   CogVideoX via the inference API; re-submits while the
                     model is loading, using the provider's estimated delay.
  PollinationsVideo  free endpoint; on any failure degrades to an image URL
                     tagged as video, so it never fails.
  StyleEnhancer      optional prompt rewrite for the free provider when the
                     query names a visual style.
"""

from __future__ import annotations

import logging
import random
import re
from typing import Final

import httpx

from ..config import PeakSettings
from ..intent_classifier import strip_command
from ..payloads import MediaKind, encode_media, to_data_uri
from ..polling import poll_until
from .base import Provider, ProviderContext, json_path
from .chat import CerebrasChat
from .images import pollinations_image_url
from .search import WebSearch

logger = logging.getLogger("peak-server.video")

MODEL_LOADING_STATUS: Final[int] = 503
DEFAULT_LOADING_WAIT: Final[float] = 10.0

STYLE_KEYWORDS: Final[tuple[str, ...]] = (
    "anime",
    "cinematic",
    "pixar",
    "claymation",
    "cyberpunk",
    "watercolor",
    "noir",
    "ghibli",
    "pixel art",
)

_REWRITE_SYSTEM_PROMPT: Final[str] = (
    "You rewrite short video-generation prompts. Keep the subject and action "
    "of the original prompt, add concrete visual details for the requested "
    "style, and reply with the rewritten prompt only: one paragraph, no "
    "preamble, under 80 words."
)


def _loading_delay(response: httpx.Response) -> float:
    try:
        estimated = response.json().get("estimated_time")
    except (ValueError, AttributeError):
        estimated = None
    return float(estimated) if estimated else DEFAULT_LOADING_WAIT


def _is_model_loading(response: httpx.Response) -> bool:
    if response.status_code != MODEL_LOADING_STATUS:
        return False
    try:
        body = response.json()
    except ValueError:
        return "loading" in response.text.lower()
    return isinstance(body, dict) and (
        "estimated_time" in body or "loading" in str(body.get("error", "")).lower()
    )


class HuggingFaceVideo(Provider):
    name = "huggingface-video"

    @property
    def enabled(self) -> bool:
        return bool(self.settings.huggingface_token)

    async def generate(self, prompt: str) -> str:
        """Run one generation, retrying only while the model is loading.

        Raises:
            ProviderError: Any non-success status other than "model loading".
            PollTimeoutError: Still loading after the retry ceiling.
        """
        url = f"{self.settings.huggingface_base_url.rstrip('/')}/{self.settings.hf_video_model}"
        headers = {
            "Authorization": f"Bearer {self.settings.huggingface_token}",
            "Content-Type": "application/json",
        }
        max_wait = self.settings.hf_video_max_wait

        async def _submit() -> httpx.Response:
            return await self._request("POST", url, json={"inputs": prompt}, headers=headers)

        def _is_terminal(response: httpx.Response) -> bool:
            if _is_model_loading(response):
                logger.info("[huggingface] video model loading; retrying")
                return False
            self._check(response)
            return True

        response = await poll_until(
            _submit,
            _is_terminal,
            interval=lambda r: min(_loading_delay(r), max_wait),
            max_attempts=self.settings.hf_video_max_retries + 1,
            label="huggingface video",
        )
        return encode_media(MediaKind.VIDEO, to_data_uri("video/mp4", response.content))

    async def attempt(self, query: str, context: ProviderContext) -> str | None:
        try:
            return await self.generate(strip_command(query))
        except Exception as exc:
            logger.error("[huggingface] video generation failed: %s", exc)
            return None


class StyleEnhancer:
    """Look up a named style and rewrite the prompt around it.

    Every step is optional: no style keyword, no search result, no Cerebras
    key or a failed rewrite all return the prompt unchanged.
    """

    def __init__(self, search: WebSearch, rewriter: CerebrasChat) -> None:
        self.search = search
        self.rewriter = rewriter

    @staticmethod
    def find_style(prompt: str) -> str | None:
        lowered = prompt.lower()
        for style in STYLE_KEYWORDS:
            if re.search(rf"\b{re.escape(style)}\b", lowered):
                return style
        return None

    async def enhance(self, prompt: str) -> str:
        style = self.find_style(prompt)
        if style is None or not self.rewriter.enabled:
            return prompt

        notes = await self.search.augment(f"{style} visual style characteristics for video")
        user_content = f"Style: {style}\nOriginal prompt: {prompt}"
        if notes:
            user_content += f"\n\nStyle reference notes:\n{notes}"
        try:
            rewritten = await self.rewriter.complete(
                [
                    {"role": "system", "content": _REWRITE_SYSTEM_PROMPT},
                    {"role": "user", "content": user_content},
                ],
                model=self.rewriter.model,
                max_tokens=200,
            )
        except Exception as exc:
            logger.warning("[style] prompt rewrite failed: %s", exc)
            return prompt
        if not rewritten:
            return prompt
        logger.info("[style] rewrote prompt for style %r", style)
        return rewritten


class PollinationsVideo(Provider):
    """Free video fallback.  Always returns a ``VIDEO_DATA:`` payload."""

    name = "pollinations-video"

    def __init__(
        self,
        settings: PeakSettings,
        client: httpx.AsyncClient,
        enhancer: StyleEnhancer | None = None,
    ) -> None:
        super().__init__(settings, client)
        self.enhancer = enhancer

    async def attempt(self, query: str, context: ProviderContext) -> str | None:
        prompt = strip_command(query) or query.strip()
        if self.enhancer is not None:
            prompt = await self.enhancer.enhance(prompt)

        payload = {
            "messages": [{"role": "user", "content": prompt}],
            "model": "flux-video",
            "seed": random.randint(0, 999),
        }
        try:
            response = self._check(
                await self._request(
                    "POST",
                    self.settings.pollinations_video_url,
                    json=payload,
                    timeout=self.settings.pollinations_video_timeout,
                )
            )
            video_url = str(json_path(response.json(), "choices", 0, "message", "content") or "")
            if not video_url.startswith("http"):
                raise ValueError("no video URL returned")
            return encode_media(MediaKind.VIDEO, video_url)
        except Exception as exc:
            logger.warning("[pollinations] video failed (%s); using still image", exc)
            return encode_media(
                MediaKind.VIDEO,
                pollinations_image_url(self.settings.pollinations_image_url, prompt),
            )
