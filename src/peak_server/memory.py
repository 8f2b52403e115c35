"""
peak_server/memory.py

Rolling conversation window for the interactive CLI.

The HTTP API is stateless (the browser sends its own history with every
request); the REPL keeps the last N turns here and replays them as the
``messages`` list.
"""

from __future__ import annotations

from typing import Any

from .payloads import decode_media


class RollingMemory:
    """Fixed-size FIFO of ``{role, content}`` turns."""

    def __init__(self, max_messages: int = 20) -> None:
        """Initialize rolling memory with a fixed capacity.

        Args:
            max_messages: Maximum number of turns to retain.  A value of 20
                keeps roughly ten question/answer exchanges.
        """
        self.max_messages = max_messages
        self._messages: list[dict[str, Any]] = []

    def add_message(self, role: str, content: str) -> None:
        """Append a turn, dropping the oldest once the window is full.

        Media payloads are stored as a short placeholder so base64 data
        never gets replayed to the text model.
        """
        decoded = decode_media(content)
        if decoded is not None:
            kind, _ = decoded
            content = f"[{kind.name.lower()} generated]"
        self._messages.append({"role": role, "content": content})
        if len(self._messages) > self.max_messages:
            self._messages.pop(0)

    def get_context(self) -> list[dict[str, Any]]:
        return list(self._messages)

    def clear(self) -> None:
        self._messages.clear()

    def message_count(self) -> int:
        return len(self._messages)
