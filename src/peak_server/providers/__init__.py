"""External AI/service provider adapters."""

from .base import Provider, ProviderContext
from .chat import CerebrasChat, ChatCompletionClient, OpenRouterChat
from .images import HuggingFaceImage, PollinationsImage, StabilityImage
from .kling import KlingVideo
from .search import WebSearch
from .video import HuggingFaceVideo, PollinationsVideo, StyleEnhancer

__all__ = [
    "CerebrasChat",
    "ChatCompletionClient",
    "HuggingFaceImage",
    "HuggingFaceVideo",
    "KlingVideo",
    "OpenRouterChat",
    "PollinationsImage",
    "PollinationsVideo",
    "Provider",
    "ProviderContext",
    "StabilityImage",
    "StyleEnhancer",
    "WebSearch",
]
