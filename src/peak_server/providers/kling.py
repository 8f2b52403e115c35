"""
peak_server/providers/kling.py

Kling AI text-to-video: the paid, primary video provider.

Flow:
  1. Sign a short-lived HS256 JWT from the access/secret key pair.
  2. Submit the job; the response carries a task id.
  3. Poll the task every ``kling_poll_interval`` seconds for up to
     ``kling_max_attempts`` attempts.
  4. On success, add ``kling_cost_per_call`` to today's usage counter.

This is the one provider that does not swallow every failure: billing or
quota trouble is re-raised as :class:`QuotaExceededError` so the user sees
why video generation stopped working.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
import jwt

from ..config import PeakSettings
from ..errors import (
    JobFailedError,
    PollTimeoutError,
    ProviderError,
    QuotaExceededError,
    is_billing_failure,
)
from ..payloads import MediaKind, encode_media
from ..polling import poll_until
from ..store import SupabaseStore
from .base import Provider, ProviderContext, json_path

logger = logging.getLogger("peak-server.kling")

SUCCESS_STATES: frozenset[str] = frozenset({"succeed", "success"})
FAILED_STATE: str = "failed"
NOT_BEFORE_SKEW: int = 5


def build_token(access_key: str, secret_key: str, *, ttl: int = 1800, now: float | None = None) -> str:
    """Sign the bearer token Kling expects.

    ``nbf`` is back-dated a few seconds to tolerate clock skew.
    """
    issued = int(now if now is not None else time.time())
    claims = {"iss": access_key, "exp": issued + ttl, "nbf": issued - NOT_BEFORE_SKEW}
    return jwt.encode(claims, secret_key, algorithm="HS256", headers={"typ": "JWT"})


def task_status(body: dict[str, Any] | None) -> str:
    if not body:
        return ""
    return str(json_path(body, "data", "task_status") or body.get("task_status") or "")


def first_video_url(body: dict[str, Any] | None) -> str | None:
    videos = json_path(body, "data", "task_result", "videos") or json_path(
        body, "task_result", "videos"
    )
    return json_path(videos, 0, "url")


class KlingVideo(Provider):
    """Submit-and-poll video generation with usage accounting."""

    name = "kling"

    def __init__(
        self,
        settings: PeakSettings,
        client: httpx.AsyncClient,
        store: SupabaseStore | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        super().__init__(settings, client)
        self.store = store
        self._sleep = sleep

    @property
    def enabled(self) -> bool:
        return self.settings.kling_enabled

    @property
    def _endpoint(self) -> str:
        return f"{self.settings.kling_base_url.rstrip('/')}/v1/videos/text2video"

    def _headers(self) -> dict[str, str]:
        token = build_token(
            self.settings.kling_access_key,
            self.settings.kling_secret_key,
            ttl=self.settings.kling_token_ttl,
        )
        return {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}

    async def submit(self, prompt: str, *, quality: str = "standard") -> str:
        """Create a generation task and return its id."""
        model = self.settings.kling_model_hd if quality == "high" else self.settings.kling_model
        payload = {"model": model, "prompt": prompt, "duration": "5", "aspect_ratio": "16:9"}
        response = self._check(
            await self._request("POST", self._endpoint, json=payload, headers=self._headers())
        )
        body = response.json()
        task_id = json_path(body, "data", "task_id") or body.get("task_id")
        if not task_id:
            raise ProviderError("Kling returned no task_id", provider=self.name)
        logger.info("[kling] submitted task %s (model=%s)", task_id, model)
        return str(task_id)

    async def wait_for_video(self, task_id: str) -> str:
        """Poll *task_id* until it finishes and return the first video URL.

        Raises:
            JobFailedError: The task reported ``failed``.
            PollTimeoutError: No terminal state within the attempt budget.
        """
        url = f"{self._endpoint}/{task_id}"
        headers = self._headers()

        async def _check_status() -> dict[str, Any] | None:
            response = await self._request("GET", url, headers=headers)
            if not response.is_success:
                logger.warning("[kling] status check HTTP %d", response.status_code)
                return None
            return response.json()

        def _is_terminal(body: dict[str, Any] | None) -> bool:
            status = task_status(body)
            if status == FAILED_STATE:
                raise JobFailedError(f"Kling task {task_id} failed", provider=self.name)
            # A finished task may report success before its videos are listed.
            return status in SUCCESS_STATES and bool(first_video_url(body))

        body = await poll_until(
            _check_status,
            _is_terminal,
            interval=self.settings.kling_poll_interval,
            max_attempts=self.settings.kling_max_attempts,
            wait_first=True,
            label=f"kling task {task_id}",
            sleep=self._sleep,
        )
        return str(first_video_url(body))

    async def generate(self, prompt: str, *, quality: str = "standard") -> str:
        """Submit, poll and account for one video.  Raises on any failure."""
        task_id = await self.submit(prompt, quality=quality)
        video_url = await self.wait_for_video(task_id)
        await self._record_usage()
        return encode_media(MediaKind.VIDEO, video_url)

    async def _record_usage(self) -> None:
        if self.store is None:
            return
        try:
            await self.store.increment_usage(self.settings.kling_cost_per_call)
        except Exception as exc:
            logger.error("[kling] failed to record usage: %s", exc)

    async def attempt(self, query: str, context: ProviderContext) -> str | None:
        try:
            return await self.generate(query, quality=context.quality)
        except (PollTimeoutError, JobFailedError) as exc:
            logger.error("[kling] video job did not complete: %s", exc)
            return None
        except Exception as exc:
            if is_billing_failure(str(exc)):
                logger.warning("[kling] billing/quota failure: %s", exc)
                raise QuotaExceededError(
                    "Video generation credits are exhausted for today. Please try again tomorrow."
                ) from exc
            logger.error("[kling] video generation failed: %s", exc)
            return None
