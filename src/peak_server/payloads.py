"""
peak_server/payloads.py

Result shape shared by the orchestrator and the HTTP layer.

Media results travel through the same text channel as chat answers, tagged
with an ``IMAGE_DATA:`` or ``VIDEO_DATA:`` prefix followed by a URL or a
base64 data URI.  The front end switches on that prefix, so it must never
change.
"""

from __future__ import annotations

import base64
import dataclasses
from enum import StrEnum
from typing import Final

DIRECT_ANSWER_LENGTH: Final[int] = 150


class MediaKind(StrEnum):
    IMAGE = "IMAGE_DATA"
    VIDEO = "VIDEO_DATA"


_CAPTIONS: Final[dict[MediaKind, str]] = {
    MediaKind.IMAGE: "Image generated.",
    MediaKind.VIDEO: "Video generated.",
}


@dataclasses.dataclass(slots=True, frozen=True)
class ProviderResult:
    """Normalized orchestrator output.

    Attributes:
        detailed_answer: Full text answer or a tagged media payload.
        direct_answer: Short preview shown above the detailed answer.
    """

    detailed_answer: str
    direct_answer: str

    @classmethod
    def from_text(cls, text: str) -> ProviderResult:
        return cls(
            detailed_answer=text,
            direct_answer=text[:DIRECT_ANSWER_LENGTH] + "...",
        )

    @classmethod
    def from_payload(cls, payload: str) -> ProviderResult:
        """Build a result from a provider payload, media-tagged or plain."""
        decoded = decode_media(payload)
        if decoded is None:
            return cls.from_text(payload)
        kind, _ = decoded
        return cls(detailed_answer=payload, direct_answer=_CAPTIONS[kind])

    def to_dict(self) -> dict[str, str]:
        return {
            "detailed_answer": self.detailed_answer,
            "direct_answer": self.direct_answer,
        }


def encode_media(kind: MediaKind, location: str) -> str:
    """Tag *location* (URL or data URI) with the media prefix."""
    return f"{kind.value}:{location}"


def decode_media(payload: str) -> tuple[MediaKind, str] | None:
    """Split a tagged payload into ``(kind, location)``.

    Only the first prefix is removed, so the location comes back exactly as
    it was encoded.  Returns ``None`` for untagged text.
    """
    for kind in MediaKind:
        prefix = f"{kind.value}:"
        if payload.startswith(prefix):
            return kind, payload[len(prefix):]
    return None


def to_data_uri(mime_type: str, data: bytes) -> str:
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"
