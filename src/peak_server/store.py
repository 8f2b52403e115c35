"""
peak_server/store.py

Client for the hosted Postgres REST database (Supabase / PostgREST).

Tables used:
  system_stats    one row per UTC date: ``{date, kling_usage}``
  error_logs      ``{error_message, context, timestamp}``
  search_history  ``{id, query, answer, created_at}``

The Kling usage counter is read and then written in two separate requests.
Two requests finishing at the same moment can both read N and both write
N + cost, so the counter may under-count.  It is an advisory daily quota,
not a billing ledger, and that drift is accepted.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from .config import PeakSettings

logger = logging.getLogger("peak-server.store")

USAGE_TABLE: str = "system_stats"
ERROR_TABLE: str = "error_logs"
HISTORY_TABLE: str = "search_history"


def today_key(now: datetime | None = None) -> str:
    """Return the usage-counter key for *now* (UTC calendar date)."""
    return (now or datetime.now(timezone.utc)).strftime("%Y-%m-%d")


class SupabaseStore:
    """Thin PostgREST wrapper over a shared ``httpx.AsyncClient``."""

    def __init__(self, settings: PeakSettings, client: httpx.AsyncClient) -> None:
        self._base = settings.supabase_url.rstrip("/") + "/rest/v1"
        self._client = client
        self._timeout = settings.request_timeout
        self._headers = {
            "apikey": settings.supabase_anon_key,
            "Authorization": f"Bearer {settings.supabase_anon_key}",
            "Content-Type": "application/json",
        }

    # ------------------------------------------------------------------
    # Low-level helpers
    # ------------------------------------------------------------------

    async def _select(self, table: str, params: dict[str, str]) -> list[dict[str, Any]]:
        response = await self._client.get(
            f"{self._base}/{table}",
            params=params,
            headers=self._headers,
            timeout=self._timeout,
        )
        response.raise_for_status()
        rows = response.json()
        return rows if isinstance(rows, list) else []

    async def _insert(self, table: str, row: dict[str, Any]) -> None:
        response = await self._client.post(
            f"{self._base}/{table}",
            json=row,
            headers={**self._headers, "Prefer": "return=minimal"},
            timeout=self._timeout,
        )
        response.raise_for_status()

    async def _update(
        self, table: str, filters: dict[str, str], values: dict[str, Any]
    ) -> None:
        response = await self._client.patch(
            f"{self._base}/{table}",
            params=filters,
            json=values,
            headers={**self._headers, "Prefer": "return=minimal"},
            timeout=self._timeout,
        )
        response.raise_for_status()

    # ------------------------------------------------------------------
    # Usage counter
    # ------------------------------------------------------------------

    async def get_usage(self, date: str | None = None) -> int:
        """Return the Kling usage recorded for *date* (default: today).

        A missing row reads as 0.  Read-only; calling it twice without an
        increment in between returns the same value.
        """
        rows = await self._select(
            USAGE_TABLE,
            {"select": "kling_usage", "date": f"eq.{date or today_key()}"},
        )
        if not rows:
            return 0
        return int(rows[0].get("kling_usage") or 0)

    async def increment_usage(self, amount: int, date: str | None = None) -> int:
        """Add *amount* to the usage counter for *date* (default: today).

        Read-then-write, not atomic.  See the module docstring.

        Returns:
            The value written.
        """
        key = date or today_key()
        rows = await self._select(
            USAGE_TABLE, {"select": "kling_usage", "date": f"eq.{key}"}
        )
        if rows:
            new_value = int(rows[0].get("kling_usage") or 0) + amount
            await self._update(
                USAGE_TABLE, {"date": f"eq.{key}"}, {"kling_usage": new_value}
            )
        else:
            new_value = amount
            await self._insert(USAGE_TABLE, {"date": key, "kling_usage": new_value})
        logger.info("[usage] %s kling_usage=%d (+%d)", key, new_value, amount)
        return new_value

    # ------------------------------------------------------------------
    # Error log
    # ------------------------------------------------------------------

    async def log_error(self, error: BaseException | str, context: str) -> None:
        """Record an error row.  Never raises."""
        row = {
            "error_message": str(error),
            "context": context,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        try:
            await self._insert(ERROR_TABLE, row)
        except Exception as exc:
            logger.error("[error_log] failed to persist error log entry: %s", exc)

    # ------------------------------------------------------------------
    # Search history
    # ------------------------------------------------------------------

    async def add_history(self, query: str, answer: str) -> None:
        await self._insert(HISTORY_TABLE, {"query": query.strip(), "answer": answer})

    async def recent_history(self, limit: int = 5) -> list[dict[str, Any]]:
        return await self._select(
            HISTORY_TABLE,
            {
                "select": "id,query,answer,created_at",
                "order": "created_at.desc",
                "limit": str(limit),
            },
        )


def build_store(settings: PeakSettings, client: httpx.AsyncClient) -> SupabaseStore | None:
    """Return a store if the database is configured, else ``None``."""
    if not settings.store_enabled:
        logger.warning("Hosted database not configured; usage, history and error logs disabled")
        return None
    return SupabaseStore(settings, client)
