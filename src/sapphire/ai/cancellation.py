from __future__ import annotations

import threading
import uuid
from typing import Any, Optional


class CancellationToken:
    """
    One-shot cancellation handle for a single in-flight request.

    The transport attaches its live response; cancelling closes it so a read
    blocked on the socket aborts. Once the request reaches a terminal state the
    token is released and further cancels are no-ops.
    """

    def __init__(self):
        self.id = uuid.uuid4().hex
        self._lock = threading.Lock()
        self._cancelled = threading.Event()
        self._released = False
        self._response: Optional[Any] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def released(self) -> bool:
        return self._released

    def attach(self, response: Any) -> bool:
        """
        Bind the transport's response to this token.
        Returns False (and closes the response) if the token was already cancelled.
        """
        with self._lock:
            if self._cancelled.is_set() or self._released:
                _close_quietly(response)
                return False
            self._response = response
            return True

    def cancel(self) -> bool:
        """Returns True only when this call is the one that cancelled a live request."""
        with self._lock:
            if self._released or self._cancelled.is_set():
                return False
            self._cancelled.set()
            response, self._response = self._response, None
        if response is not None:
            _close_quietly(response)
        return True

    def release(self) -> None:
        with self._lock:
            self._released = True
            self._response = None

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else ("released" if self._released else "live")
        return f"<CancellationToken {self.id[:8]} {state}>"


def _close_quietly(response: Any) -> None:
    try:
        response.close()
    except Exception:  # noqa: BLE001
        pass
