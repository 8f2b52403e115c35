"""
peak_server/providers/images.py

Image generation providers, in fallback order:

  HuggingFaceImage   FLUX.1-schnell via the inference API (primary)
  StabilityImage     Stability AI "core" endpoint (paid fallback)
  PollinationsImage  deterministic URL, no request, never fails
"""

from __future__ import annotations

import logging
from urllib.parse import quote

from ..payloads import MediaKind, encode_media, to_data_uri
from .base import Provider, ProviderContext

logger = logging.getLogger("peak-server.images")

QUALITY_SUFFIX: str = "4K, highly detailed, photorealistic, masterpiece, 8k resolution"


def pollinations_image_url(base_url: str, prompt: str) -> str:
    """Build the free image URL for *prompt* (trimmed, fully percent-encoded)."""
    return f"{base_url.rstrip('/')}/{quote(prompt.strip(), safe='')}"


class HuggingFaceImage(Provider):
    name = "huggingface-image"

    @property
    def enabled(self) -> bool:
        return bool(self.settings.huggingface_token)

    async def attempt(self, query: str, context: ProviderContext) -> str | None:
        url = f"{self.settings.huggingface_base_url.rstrip('/')}/{self.settings.hf_image_model}"
        payload = {
            "inputs": f"{query}, {QUALITY_SUFFIX}",
            "parameters": {"width": 1024, "height": 1024},
        }
        headers = {
            "Authorization": f"Bearer {self.settings.huggingface_token}",
            "Content-Type": "application/json",
            "x-use-cache": "false",
        }
        try:
            response = self._check(
                await self._request("POST", url, json=payload, headers=headers)
            )
        except Exception as exc:
            logger.error("[huggingface] image generation failed: %s", exc)
            return None

        mime = response.headers.get("content-type", "image/jpeg").split(";")[0]
        if not mime.startswith("image/"):
            mime = "image/jpeg"
        logger.info("[huggingface] image generated (%d bytes)", len(response.content))
        return encode_media(MediaKind.IMAGE, to_data_uri(mime, response.content))


class StabilityImage(Provider):
    name = "stability"

    @property
    def enabled(self) -> bool:
        return bool(self.settings.stability_key)

    async def attempt(self, query: str, context: ProviderContext) -> str | None:
        output_format = self.settings.stability_output_format
        # Multipart form: the endpoint rejects JSON bodies.
        form = {"prompt": (None, query), "output_format": (None, output_format)}
        headers = {
            "Authorization": f"Bearer {self.settings.stability_key}",
            "Accept": "image/*",
        }
        try:
            response = self._check(
                await self._request("POST", self.settings.stability_url, files=form, headers=headers)
            )
        except Exception as exc:
            logger.error("[stability] generation failed: %s", exc)
            return None

        logger.info("[stability] image generated (%d bytes)", len(response.content))
        return encode_media(
            MediaKind.IMAGE, to_data_uri(f"image/{output_format}", response.content)
        )


class PollinationsImage(Provider):
    """Free fallback.  Pure URL construction, so it cannot fail."""

    name = "pollinations-image"

    async def attempt(self, query: str, context: ProviderContext) -> str | None:
        url = pollinations_image_url(self.settings.pollinations_image_url, query)
        return encode_media(MediaKind.IMAGE, url)
