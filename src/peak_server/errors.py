"""
peak_server/errors.py

Exception hierarchy for provider and orchestration failures.

Provider adapters raise these internally and, except for
:class:`QuotaExceededError`, convert them to ``None`` before the orchestrator
sees them.  The HTTP layer maps whatever reaches it to a sanitized message
via :func:`public_error`.
"""

from __future__ import annotations

from typing import Final

FRIENDLY_MESSAGE: Final[str] = "Our AI is resting. Please come back tomorrow!"

# Substrings that mark an upstream failure as a billing/quota problem.
BILLING_KEYWORDS: Final[tuple[str, ...]] = (
    "402",
    "429",
    "insufficient",
    "credit",
    "quota",
    "balance",
)

# Substrings the request handler treats as credential/billing trouble.
CREDENTIAL_KEYWORDS: Final[tuple[str, ...]] = (
    "api key",
    "unauthorized",
    "401",
    "402",
    "credit",
    "quota",
    "insufficient",
    "balance",
    "missing",
)


class PeakError(Exception):
    """Base class for all search-server errors."""


class MissingCredentialError(PeakError):
    """A provider was invoked without its required credential."""


class ProviderError(PeakError):
    """An upstream provider returned an error or an unusable payload.

    Attributes:
        provider: Short provider name, e.g. ``"kling"``.
        status_code: Upstream HTTP status, if one was received.
    """

    def __init__(
        self,
        message: str,
        *,
        provider: str = "",
        status_code: int | None = None,
    ) -> None:
        self.provider = provider
        self.status_code = status_code
        super().__init__(message)


class ProviderTimeoutError(ProviderError):
    """An outbound call exceeded its timeout."""


class PollTimeoutError(ProviderTimeoutError):
    """A polled job did not reach a terminal state within its attempt budget."""


class JobFailedError(ProviderError):
    """A polled job reached a terminal failure state."""


class QuotaExceededError(PeakError):
    """A billing/quota failure, carrying a message that is safe to show users."""

    def __init__(self, user_message: str = FRIENDLY_MESSAGE) -> None:
        self.user_message = user_message
        super().__init__(user_message)


def is_billing_failure(text: str) -> bool:
    """Return True if *text* mentions any billing/quota keyword."""
    lowered = text.lower()
    return any(keyword in lowered for keyword in BILLING_KEYWORDS)


def public_error(exc: BaseException) -> tuple[int, str]:
    """Map an exception to an HTTP status and a caller-safe message.

    Args:
        exc: The exception that escaped the orchestrator.

    Returns:
        ``(status_code, message)``.  Never includes a traceback.
    """
    if isinstance(exc, QuotaExceededError):
        return 429, exc.user_message
    text = str(exc).lower()
    if any(keyword in text for keyword in CREDENTIAL_KEYWORDS):
        return 503, FRIENDLY_MESSAGE
    return 500, f"error: {exc}"
