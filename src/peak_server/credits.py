"""
peak_server/credits.py

Read-only credit/quota report for the UI's credits tracker.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .config import PeakSettings
from .store import SupabaseStore

logger = logging.getLogger("peak-server.credits")


class CreditReporter:
    """Combines OpenRouter's billing figures with today's Kling usage."""

    def __init__(
        self,
        settings: PeakSettings,
        client: httpx.AsyncClient,
        store: SupabaseStore | None = None,
    ) -> None:
        self.settings = settings
        self.client = client
        self.store = store

    async def openrouter(self) -> dict[str, float]:
        """Fetch OpenRouter credits.  Zeroed on any failure or missing key."""
        stats: dict[str, float] = {"total_credits": 0, "total_usage": 0, "remaining": 0}
        key = self.settings.openrouter_credits_key or self.settings.openrouter_api_key
        if not key:
            return stats
        try:
            response = await self.client.get(
                f"{self.settings.openrouter_base_url.rstrip('/')}/credits",
                headers={"Authorization": f"Bearer {key}"},
                timeout=self.settings.request_timeout,
            )
            if not response.is_success:
                logger.warning("[credits] OpenRouter HTTP %d", response.status_code)
                return stats
            data = response.json().get("data") or {}
        except Exception as exc:
            logger.error("[credits] failed to fetch OpenRouter credits: %s", exc)
            return stats

        total = data.get("total_credits") or 0
        usage = data.get("total_usage") or 0
        return {"total_credits": total, "total_usage": usage, "remaining": total - usage}

    async def kling(self) -> dict[str, int]:
        total = self.settings.kling_daily_quota
        stats = {"total": total, "used": 0, "remaining": total}
        if self.store is None:
            return stats
        try:
            used = await self.store.get_usage()
        except Exception as exc:
            logger.warning("[credits] could not read Kling usage: %s", exc)
            return stats
        return {"total": total, "used": used, "remaining": max(0, total - used)}

    async def report(self) -> dict[str, Any]:
        return {"openrouter": await self.openrouter(), "kling": await self.kling()}
