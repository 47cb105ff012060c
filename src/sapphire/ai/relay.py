"""
Streaming completion relay.

Drives one streaming request against the backend: frames the chunked body into
JSON lines, extracts text fragments, accumulates them and hands each one to the
consumer as it arrives. The relay is a lazy, non-restartable iterator of
`Fragment`s; `run()` wraps it for callback-style consumers.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Iterator, Optional

import requests

from ..datamodel import CompletionRequest, Fragment, StreamOutcome, StreamState
from ..errors import AIError, MalformedLine, TransportInterrupted
from .cancellation import CancellationToken
from .framing import LineFramer, extract_fragment, parse_line

logger = logging.getLogger(__name__)

FragmentCallback = Callable[[str, str], None]


class StreamRelay:
    """One streaming request, from issue to exactly one terminal state."""

    def __init__(self, client, request: CompletionRequest):
        if not request.stream:
            request = request.model_copy(update={"stream": True})
        self.client = client
        self.request = request
        self.token = CancellationToken()
        self.state = StreamState.IDLE
        self.outcome: Optional[StreamOutcome] = None
        self._text = ""
        self._count = 0
        self._started = False
        self._lock = threading.Lock()

    @property
    def text(self) -> str:
        """Everything accumulated so far."""
        return self._text

    @property
    def fragments(self) -> int:
        return self._count

    def __repr__(self) -> str:
        return f"<StreamRelay {self.request.mode} model={self.request.model} {self.state.value}>"

    # -----------------------------
    # Terminal transitions
    # -----------------------------
    def _finish(self, state: StreamState, error: Optional[str] = None) -> bool:
        with self._lock:
            if self.state.terminal:
                return False
            self.state = state
            text = "" if state == StreamState.CANCELLED else self._text
            self.outcome = StreamOutcome(status=state, text=text, error=error, fragments=self._count)
        self.token.release()
        return True

    def cancel(self) -> bool:
        """
        Cancel the request. Safe at any time and from any thread.
        Returns True only if there was something left to cancel.
        """
        with self._lock:
            if self.state.terminal:
                return False
        self.token.cancel()
        if self._finish(StreamState.CANCELLED):
            logger.debug("Cancelled %r after %d fragments", self, self._count)
            return True
        return False

    # -----------------------------
    # Streaming
    # -----------------------------
    def _emit(self, delta: str) -> Optional[Fragment]:
        with self._lock:
            if self.state.terminal:
                return None
            self._text += delta
            fragment = Fragment(delta=delta, accumulated=self._text, index=self._count)
            self._count += 1
            return fragment

    def _fragments_from_lines(self, lines) -> Iterator[str]:
        mode = self.request.mode
        for line in lines:
            try:
                envelope = parse_line(line)
            except MalformedLine as exc:
                logger.debug("%s", exc)
                continue
            if envelope is None:
                continue
            if "error" in envelope:
                logger.warning("Ollama reported an error mid-stream: %s", envelope.get("error"))
            delta = extract_fragment(envelope, mode)
            if delta is not None:
                yield delta

    def __iter__(self) -> Iterator[Fragment]:
        with self._lock:
            if self._started:
                raise RuntimeError(f"{self!r} has already been started")
            self._started = True
            if self.state.terminal:
                # Cancelled before it was ever started.
                return iter(())
            self.state = StreamState.STREAMING
        return self._stream()

    def _deltas(self, response, framer: LineFramer) -> Iterator[str]:
        for chunk in response.iter_content(chunk_size=None):
            if self.token.cancelled:
                return
            if chunk:
                yield from self._fragments_from_lines(framer.feed(chunk))

    def _stream(self) -> Iterator[Fragment]:
        try:
            response = self.client.open_stream(self.request, self.token)
        except AIError as exc:
            self._finish(StreamState.FAILED, str(exc))
            raise
        if response is None:
            self._finish(StreamState.CANCELLED)
            return

        framer = LineFramer()
        try:
            for delta in self._deltas(response, framer):
                if self.token.cancelled:
                    break
                fragment = self._emit(delta)
                if fragment is None:
                    break
                yield fragment
        except GeneratorExit:
            # Consumer dropped the iterator mid-stream.
            self.cancel()
            raise
        except Exception as exc:
            # Closing the response from cancel() surfaces here as a read error.
            if self.token.cancelled:
                self._finish(StreamState.CANCELLED)
                return
            if isinstance(exc, requests.RequestException):
                err = TransportInterrupted(f"Stream from Ollama interrupted: {exc}")
                self._finish(StreamState.FAILED, str(err))
                raise err from exc
            self._finish(StreamState.FAILED, str(exc))
            raise
        finally:
            response.close()

        if self.token.cancelled:
            self._finish(StreamState.CANCELLED)
            return
        framer.finish()
        self._finish(StreamState.COMPLETED)

    def run(self, on_fragment: Optional[FragmentCallback] = None) -> StreamOutcome:
        """
        Drive the stream to a terminal outcome, calling `on_fragment(delta, accumulated)`
        for each fragment. Failures and cancellation are reported in the outcome, not raised.
        """
        try:
            for fragment in self:
                if on_fragment is not None:
                    on_fragment(fragment.delta, fragment.accumulated)
        except AIError as exc:
            logger.debug("Stream failed: %s", exc)
        finally:
            if not self.state.terminal:
                self.cancel()
        return self.outcome
