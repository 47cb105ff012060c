"""
Error types for the Ollama integration.
"""

from __future__ import annotations

from typing import Optional


class AIError(RuntimeError):
    """Base class for failures talking to the completion backend."""


class BackendUnavailable(AIError):
    """Raised when the completion backend cannot be reached at all."""


class BackendError(AIError):
    """Raised when the backend answers with a non-success status."""

    def __init__(self, status_code: int, reason: Optional[str] = None):
        self.status_code = status_code
        self.reason = reason or ""
        super().__init__(f"Ollama error: {status_code} {self.reason}".rstrip())


class TransportInterrupted(AIError):
    """Raised when the connection drops after the stream has started."""


class MalformedLine(ValueError):
    """A stream line that is not a JSON object. Logged and skipped, never surfaced."""

    def __init__(self, line: str):
        self.line = line
        super().__init__(f"Malformed stream line: {line[:80]!r}")
