"""tests/test_intent_classifier.py

Unit tests for intent detection and query normalisation
(peak_server/intent_classifier.py).
"""

from __future__ import annotations

# Third-Party Libraries
import pytest

# Local Modules
from peak_server.intent_classifier import (
    Mode,
    content_text,
    detect_intent,
    resolve_mode,
    strip_command,
)


class TestDetectIntent:
    """Test suite for detect_intent()."""

    @pytest.mark.parametrize(
        "query",
        ["/image a red fox", "/IMAGE a red fox", "  /draw a castle", "/image"],
    )
    def test_image_command_prefix(self, query: str) -> None:
        """Test explicit image commands resolve to image mode."""
        assert detect_intent(query) is Mode.IMAGE

    @pytest.mark.parametrize(
        "query",
        [
            "Please generate an image of a lighthouse",
            "create an image of mountains",
            "can you draw a picture of my dog",
            "visualize the solar system",
        ],
    )
    def test_image_phrases(self, query: str) -> None:
        """Test free-text image phrases."""
        assert detect_intent(query) is Mode.IMAGE

    @pytest.mark.parametrize(
        "query",
        ["/code fizzbuzz", "write a function that reverses a list", "function to parse dates"],
    )
    def test_code_intent(self, query: str) -> None:
        """Test command and phrase detection for code mode."""
        assert detect_intent(query) is Mode.CODE

    @pytest.mark.parametrize(
        "query",
        ["/video a cat surfing", "/animate a sunrise", "make a video of rain"],
    )
    def test_video_intent(self, query: str) -> None:
        """Test command and phrase detection for video mode."""
        assert detect_intent(query) is Mode.VIDEO

    def test_image_takes_precedence_over_code(self) -> None:
        """Test that image intent wins when code phrases also match."""
        assert detect_intent("generate an image of a function to sort numbers") is Mode.IMAGE

    def test_code_takes_precedence_over_video(self) -> None:
        """Test that code intent wins over video phrases."""
        assert detect_intent("write a function to make a video thumbnail") is Mode.CODE

    @pytest.mark.parametrize("query", ["What is 2+2?", "", "tell me about imagery in poetry"])
    def test_no_match(self, query: str) -> None:
        """Test queries without a recognized pattern return None."""
        assert detect_intent(query) is None


class TestResolveMode:
    """Test suite for resolve_mode()."""

    @pytest.mark.parametrize("requested", ["chat", "pro", "video", "code", None])
    def test_image_prefix_overrides_requested_mode(self, requested: str | None) -> None:
        """Test an image command wins regardless of the caller's mode."""
        assert resolve_mode("/image a red fox", requested) == "image"

    @pytest.mark.parametrize("requested", ["chat", "think", "pro", "analyze", "poetry"])
    def test_requested_mode_preserved(self, requested: str) -> None:
        """Test the caller's mode is kept when nothing is detected."""
        assert resolve_mode("What is 2+2?", requested) == requested

    def test_defaults_to_chat(self) -> None:
        """Test a missing mode becomes chat."""
        assert resolve_mode("hello", None) == "chat"
        assert resolve_mode("hello", "") == "chat"

    @pytest.mark.parametrize("requested", [" Think ", "PRO", "custom-mode"])
    def test_requested_mode_unchanged(self, requested: str) -> None:
        """Test the caller's mode is returned verbatim, with no case or whitespace folding."""
        assert resolve_mode("hello", requested) == requested


class TestStripCommand:
    """Test suite for strip_command()."""

    @pytest.mark.parametrize(
        "query,expected",
        [
            ("/image a red fox", "a red fox"),
            ("  /Draw   a castle ", "a castle"),
            ("/video a cat surfing", "a cat surfing"),
            ("/animate", ""),
            ("a red fox", "a red fox"),
            ("/imagery is nice", "/imagery is nice"),
        ],
    )
    def test_strip(self, query: str, expected: str) -> None:
        """Test only a leading command token is removed."""
        assert strip_command(query) == expected


class TestContentText:
    """Test suite for content_text()."""

    def test_plain_string(self) -> None:
        """Test plain text passes through."""
        assert content_text("What is 2+2?") == "What is 2+2?"

    def test_none(self) -> None:
        """Test None becomes an empty string."""
        assert content_text(None) == ""

    def test_structured_parts(self, sample_messages: list[dict]) -> None:
        """Test text parts are joined and image parts ignored."""
        assert content_text(sample_messages[-1]["content"]) == "What is in this picture?"

    def test_structured_without_text(self) -> None:
        """Test a list with only non-text parts yields an empty string."""
        parts = [{"type": "image_url", "image_url": {"url": "https://example.com/a.png"}}]
        assert content_text(parts) == ""
