"""
AI features built atop the Ollama client: streaming generation, chat, quick
actions and tag/title suggestions.
"""

from __future__ import annotations

import logging
import re
import weakref
from typing import Dict, Iterable, List, Optional, Union

from ..config import DEFAULT_SETTINGS
from ..datamodel import ChatMessage, CompletionRequest, Note, plain_text
from ..tags import parse_suggested_tags
from .actions import get_action
from .cancellation import CancellationToken
from .client import OllamaClient
from .relay import StreamRelay

logger = logging.getLogger(__name__)

TAGS_SYSTEM_PROMPT = (
    "You are a helpful assistant that suggests relevant tags for notes. "
    "Respond only with comma-separated single-word tags."
)
TITLE_SYSTEM_PROMPT = "You are a helpful assistant. Respond only with a short title."
CHAT_CONTEXT_CHARS = 2000
_QUOTES = re.compile(r"^[\"']|[\"']$")

MessageLike = Union[ChatMessage, Dict[str, str]]


class AIService:
    """Entry point for every AI feature; each streaming call returns its own relay."""

    def __init__(self, client: OllamaClient, model: Optional[str] = None):
        self.client = client
        self.model = model or DEFAULT_SETTINGS["ai_model"]
        # token id -> relay; relays the caller drops fall out on their own
        self._active: "weakref.WeakValueDictionary[str, StreamRelay]" = weakref.WeakValueDictionary()

    def _model(self, model: Optional[str]) -> str:
        return model or self.model

    def _track(self, request: CompletionRequest) -> StreamRelay:
        relay = StreamRelay(self.client, request)
        self._prune()
        self._active[relay.token.id] = relay
        return relay

    def _prune(self):
        for token_id, relay in list(self._active.items()):
            if relay.state.terminal:
                del self._active[token_id]

    # -----------------------------
    # Streaming
    # -----------------------------
    def generate(self, prompt: str, system: Optional[str] = None, model: Optional[str] = None) -> StreamRelay:
        request = CompletionRequest(model=self._model(model), prompt=prompt, system=system, stream=True)
        return self._track(request)

    def chat(self, messages: Iterable[MessageLike], model: Optional[str] = None) -> StreamRelay:
        msgs = [m if isinstance(m, ChatMessage) else ChatMessage.model_validate(m) for m in messages]
        request = CompletionRequest(model=self._model(model), messages=msgs, stream=True)
        return self._track(request)

    def action(self, name: str, text: str, model: Optional[str] = None) -> StreamRelay:
        system, prompt = get_action(name).render(text)
        return self.generate(prompt, system=system, model=model)

    def cancel(self, token: CancellationToken) -> bool:
        """Cancel the request owning `token`. False if it already finished or is unknown."""
        relay = self._active.pop(token.id, None)
        if relay is None:
            return token.cancel()
        return relay.cancel()

    def active(self) -> List[StreamRelay]:
        self._prune()
        return list(self._active.values())

    # -----------------------------
    # Non-streaming
    # -----------------------------
    def complete(self, prompt: str, system: Optional[str] = None, model: Optional[str] = None) -> str:
        request = CompletionRequest(model=self._model(model), prompt=prompt, system=system, stream=False)
        return self.client.complete(request)

    def suggest_tags(self, title: Optional[str], content: Optional[str], model: Optional[str] = None) -> List[str]:
        text = plain_text(content)[:1000]
        prompt = (
            "Based on this note, suggest 3-5 relevant single-word tags. "
            "Return only the tags as a comma-separated list, nothing else.\n\n"
            f"Title: {title or 'Untitled'}\n\nContent: {text}"
        )
        answer = self.complete(prompt, system=TAGS_SYSTEM_PROMPT, model=model)
        tags = parse_suggested_tags(answer)
        logger.debug("Suggested tags: %s", tags)
        return tags

    def suggest_title(self, content: Optional[str], model: Optional[str] = None) -> str:
        text = plain_text(content)[:500]
        prompt = (
            "Based on this note content, suggest a short, descriptive title (max 6 words). "
            f"Return only the title, nothing else.\n\n{text}"
        )
        answer = self.complete(prompt, system=TITLE_SYSTEM_PROMPT, model=model)
        return _QUOTES.sub("", answer.strip())


def note_context(note: Optional[Note]) -> str:
    """System prompt that grounds chat in the note being edited."""
    if note is None:
        return "You are a helpful AI assistant integrated into a note-taking app called Sapphire."
    text = plain_text(note.content)
    excerpt = text[:CHAT_CONTEXT_CHARS] + ("..." if len(text) > CHAT_CONTEXT_CHARS else "")
    return (
        "You are a helpful AI assistant integrated into a note-taking app called Sapphire.\n"
        f'The user is currently working on a note titled "{note.title}".\n\n'
        f"Note content:\n{excerpt}\n\n"
        "Help the user with their question about their note or provide writing assistance."
    )


class ChatSession:
    """Multi-turn chat about a note. The history only grows with completed replies."""

    def __init__(self, service: AIService, note: Optional[Note] = None, model: Optional[str] = None):
        self.service = service
        self.note = note
        self.model = model
        self.history: List[ChatMessage] = []

    def messages(self) -> List[ChatMessage]:
        return [ChatMessage(role="system", content=note_context(self.note)), *self.history]

    def ask(self, message: str) -> StreamRelay:
        self.history.append(ChatMessage(role="user", content=message))
        return self.service.chat(self.messages(), model=self.model)

    def record(self, relay: StreamRelay) -> bool:
        """Add the assistant's reply to the history once its relay has completed."""
        outcome = relay.outcome
        if outcome is None or not outcome.ok or not outcome.text:
            return False
        self.history.append(ChatMessage(role="assistant", content=outcome.text))
        return True

    def clear(self):
        self.history = []
