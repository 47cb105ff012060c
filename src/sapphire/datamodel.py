"""
Core datamodel for Sapphire notes and the Ollama relay.
"""

import re
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

_HTML_TAG = re.compile(r"<[^>]*>")


def plain_text(html: Optional[str]) -> str:
    """Strip markup from editor content."""
    return _HTML_TAG.sub("", html or "").strip()


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Note(BaseModel):
    """A single note as persisted by the note store."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    title: str = "Untitled"
    content: str = ""
    preview: str = ""
    word_count: int = 0
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
    pinned: bool = False
    favorite: bool = False
    folder: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    links: List[str] = Field(default_factory=list)

    def link_to(self, note_id: str):
        """Create a link to another note."""
        if note_id not in self.links:
            self.links.append(note_id)
            self.updated_at = _now()


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class CompletionRequest(BaseModel):
    """
    One request to the completion backend.
    Exactly one of `prompt` (single-turn) or `messages` (chat) is set.
    """

    model: str = Field(min_length=1)
    prompt: Optional[str] = None
    system: Optional[str] = None
    messages: Optional[List[ChatMessage]] = None
    stream: bool = True

    @model_validator(mode="after")
    def _one_of_prompt_or_messages(self):
        if (self.prompt is None) == (self.messages is None):
            raise ValueError("exactly one of prompt or messages must be set")
        if self.messages is not None and self.system is not None:
            raise ValueError("system is only valid with a single prompt; pass a system message instead")
        return self

    @property
    def mode(self) -> str:
        return "generate" if self.prompt is not None else "chat"

    @property
    def endpoint(self) -> str:
        return "/api/generate" if self.mode == "generate" else "/api/chat"

    def payload(self, stream: Optional[bool] = None) -> Dict[str, Any]:
        """Request body as the backend expects it."""
        body: Dict[str, Any] = {"model": self.model}
        if self.mode == "generate":
            body["prompt"] = self.prompt
            if self.system is not None:
                body["system"] = self.system
        else:
            body["messages"] = [m.model_dump() for m in self.messages]
        body["stream"] = self.stream if stream is None else stream
        return body


class Fragment(BaseModel):
    """A piece of generated text, plus everything accumulated so far."""

    delta: str
    accumulated: str
    index: int = Field(ge=0)


class StreamState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (StreamState.COMPLETED, StreamState.CANCELLED, StreamState.FAILED)


class StreamOutcome(BaseModel):
    """Terminal result of one relay invocation."""

    status: StreamState
    text: str = ""
    error: Optional[str] = None
    fragments: int = 0

    @property
    def ok(self) -> bool:
        return self.status == StreamState.COMPLETED


class ModelInfo(BaseModel):
    """A model entry from the backend's model listing."""

    model_config = ConfigDict(extra="ignore")

    name: str
    size: Optional[int] = None
    modified_at: Optional[str] = None
    digest: Optional[str] = None


class BackendStatus(BaseModel):
    running: bool
    models: List[ModelInfo] = Field(default_factory=list)
    error: Optional[str] = None
