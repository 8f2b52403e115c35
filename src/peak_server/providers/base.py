"""
peak_server/providers/base.py

Common provider interface.

Every fallback chain in the orchestrator is a list of :class:`Provider`
objects.  ``attempt()`` returns a payload string on success and ``None`` on
any failure, so the orchestrator only has to walk the list until something
comes back.
"""

from __future__ import annotations

import dataclasses
import logging
from abc import ABC, abstractmethod
from typing import Any, ClassVar

import httpx

from ..config import PeakSettings
from ..errors import ProviderError, ProviderTimeoutError

logger = logging.getLogger("peak-server.providers")


@dataclasses.dataclass(slots=True)
class ProviderContext:
    """Per-request information a provider may need besides the query.

    Attributes:
        mode: Effective mode after intent detection.
        messages: Conversation history as ``[{"role", "content"}]`` dicts.
        quality: Caller's quality hint (``"standard"`` or ``"high"``).
        lang: Requested response language code.
    """

    mode: str
    messages: list[dict[str, Any]] = dataclasses.field(default_factory=list)
    quality: str = "standard"
    lang: str = "en"


class Provider(ABC):
    """One external service able to answer a query for a given capability."""

    name: ClassVar[str] = "provider"

    def __init__(self, settings: PeakSettings, client: httpx.AsyncClient) -> None:
        self.settings = settings
        self.client = client

    @property
    def enabled(self) -> bool:
        """False when the provider's credentials are not configured."""
        return True

    @abstractmethod
    async def attempt(self, query: str, context: ProviderContext) -> str | None:
        """Try to answer *query*.  Return a payload string or ``None``."""

    async def _request(
        self,
        method: str,
        url: str,
        *,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send one request, translating transport errors to provider errors.

        Non-2xx responses are returned as-is; callers decide what counts as
        failure (some providers use 503 as a "retry later" signal).
        """
        try:
            return await self.client.request(
                method,
                url,
                timeout=timeout if timeout is not None else self.settings.request_timeout,
                **kwargs,
            )
        except httpx.TimeoutException as exc:
            raise ProviderTimeoutError(
                f"{self.name} request timed out", provider=self.name
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(
                f"{self.name} transport error: {exc}", provider=self.name
            ) from exc

    def _check(self, response: httpx.Response) -> httpx.Response:
        """Raise :class:`ProviderError` (with the body text) on non-2xx."""
        if response.is_success:
            return response
        raise ProviderError(
            f"{self.name} HTTP {response.status_code}: {response.text[:500]}",
            provider=self.name,
            status_code=response.status_code,
        )


def json_path(data: Any, *keys: str | int) -> Any:
    """Walk nested dicts/lists, returning ``None`` on the first miss."""
    current = data
    for key in keys:
        if isinstance(key, int):
            if not isinstance(current, list) or len(current) <= key:
                return None
        elif not isinstance(current, dict):
            return None
        current = current[key] if isinstance(key, int) else current.get(key)
        if current is None:
            return None
    return current
