"""
Line framing for newline-delimited JSON streams.

Chunks arrive with arbitrary boundaries, including in the middle of a line or
of a multi-byte UTF-8 character, so decoding is incremental and any partial
line is held over until its terminating newline shows up.
"""

from __future__ import annotations

import codecs
import json
import logging
from typing import Any, List, Optional

from ..errors import MalformedLine

logger = logging.getLogger(__name__)


class LineFramer:
    """Turns raw byte chunks into complete `\\n`-terminated text lines."""

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""

    @property
    def pending(self) -> str:
        """Text received but not yet terminated by a newline."""
        return self._buffer

    def feed(self, chunk: bytes) -> List[str]:
        """Decode a chunk and return every line it completes, without the newline."""
        self._buffer += self._decoder.decode(chunk)
        if "\n" not in self._buffer:
            return []
        *lines, self._buffer = self._buffer.split("\n")
        return lines

    def finish(self) -> str:
        """
        Close the framer at end of stream and return the discarded tail.
        An unterminated last line is never parsed.
        """
        self._buffer += self._decoder.decode(b"", final=True)
        tail, self._buffer = self._buffer, ""
        if tail.strip():
            logger.debug("Discarding unterminated trailing line (%d chars)", len(tail))
        return tail


def parse_line(line: str) -> Optional[dict]:
    """
    Parse one stream line into an event envelope.
    Returns None for blank lines; raises MalformedLine for anything that is not a JSON object.
    """
    if not line.strip():
        return None
    try:
        envelope = json.loads(line)
    except ValueError as exc:
        raise MalformedLine(line) from exc
    if not isinstance(envelope, dict):
        raise MalformedLine(line)
    return envelope


def extract_fragment(envelope: dict, mode: str) -> Optional[str]:
    """
    Pull the generated text out of an envelope.
    `generate` lines carry a flat `response`; `chat` lines nest it under `message.content`.
    """
    if mode == "chat":
        message: Any = envelope.get("message")
        text = message.get("content") if isinstance(message, dict) else None
    else:
        text = envelope.get("response")
    if isinstance(text, str) and text:
        return text
    return None
