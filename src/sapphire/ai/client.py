"""
HTTP client for a locally running Ollama server.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

import requests

from ..config import DEFAULT_SETTINGS
from ..datamodel import BackendStatus, CompletionRequest, ModelInfo
from ..errors import AIError, BackendError, BackendUnavailable
from .cancellation import CancellationToken
from .framing import extract_fragment

logger = logging.getLogger(__name__)


class OllamaClient:
    """Talks to Ollama's generate, chat and tags endpoints."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        connect_timeout: Optional[float] = DEFAULT_SETTINGS["connect_timeout"],
        stream_idle_timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or DEFAULT_SETTINGS["ollama_url"]).rstrip("/")
        self.connect_timeout = connect_timeout
        self.stream_idle_timeout = stream_idle_timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: Dict[str, Any], session: Optional[requests.Session] = None) -> "OllamaClient":
        return cls(
            base_url=settings.get("ollama_url"),
            connect_timeout=settings.get("connect_timeout"),
            stream_idle_timeout=settings.get("stream_idle_timeout"),
            session=session,
        )

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    @property
    def _timeout(self) -> Tuple[Optional[float], Optional[float]]:
        return (self.connect_timeout, self.stream_idle_timeout)

    def _post(self, request: CompletionRequest, stream: bool) -> requests.Response:
        url = self._url(request.endpoint)
        try:
            resp = self.session.post(
                url, json=request.payload(stream=stream), stream=stream, timeout=self._timeout
            )
        except requests.RequestException as exc:
            raise BackendUnavailable(f"Cannot reach Ollama at {self.base_url}: {exc}") from exc

        if not resp.ok:
            status, reason = resp.status_code, resp.reason
            resp.close()
            raise BackendError(status, reason)
        return resp

    def open_stream(self, request: CompletionRequest, token: CancellationToken) -> Optional[requests.Response]:
        """
        Start a streaming request and bind its response to `token`.
        Returns None when the token was cancelled while the request was being issued.
        """
        logger.debug("Opening %s stream with model %s", request.mode, request.model)
        resp = self._post(request, stream=True)
        if not token.attach(resp):
            return None
        return resp

    def complete(self, request: CompletionRequest) -> str:
        """Non-streaming completion; returns the full text in one piece."""
        resp = self._post(request, stream=False)
        try:
            data = resp.json()
        except ValueError as exc:
            raise AIError("Ollama returned a response that is not JSON") from exc
        finally:
            resp.close()
        if not isinstance(data, dict):
            raise AIError("Ollama returned an unexpected response shape")
        return extract_fragment(data, request.mode) or ""

    def _get_tags(self) -> List[ModelInfo]:
        resp = self.session.get(self._url("/api/tags"), timeout=self.connect_timeout)
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, dict):
            raise ValueError("Ollama returned an unexpected /api/tags response")
        return [ModelInfo.model_validate(m) for m in data.get("models") or []]

    def status(self) -> BackendStatus:
        """Report whether the server is up and which models it has."""
        try:
            models = self._get_tags()
        except requests.HTTPError:
            return BackendStatus(running=False)
        except (requests.RequestException, ValueError) as exc:
            return BackendStatus(running=False, error=str(exc))
        return BackendStatus(running=True, models=models)

    def list_models(self) -> List[ModelInfo]:
        try:
            return self._get_tags()
        except (requests.RequestException, ValueError) as exc:
            logger.debug("Model listing failed: %s", exc)
            return []
