"""
Storage layer for Sapphire notes.
Each note is a single JSON file under `<base>/notes/`.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from .datamodel import Note, plain_text

logger = logging.getLogger(__name__)

PREVIEW_CHARS = 100
SNIPPET_CONTEXT = 40


@dataclass
class SearchHit:
    """Represents a search result."""

    note_id: str
    title: str
    snippet: str
    match_in_title: bool


class NoteStore:
    """Key-value store of notes on the local file system."""

    def __init__(self, base_path: Path):
        self.base_path = Path(base_path)
        self.notes_dir = self.base_path / "notes"
        self.notes_dir.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def _safe_id(note_id: str) -> str:
        # Ids become file names; never let one escape the notes directory.
        return Path(note_id).name

    def _note_path(self, note_id: str) -> Path:
        return self.notes_dir / f"{self._safe_id(note_id)}.json"

    def get(self, note_id: str) -> Optional[Note]:
        """Load a note, or None if there is no such note."""
        path = self._note_path(note_id)
        if not path.exists():
            return None

        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)

        note = Note.model_validate(data)
        if note.created_at.tzinfo is None:
            note.created_at = note.created_at.replace(tzinfo=timezone.utc)
        if note.updated_at.tzinfo is None:
            note.updated_at = note.updated_at.replace(tzinfo=timezone.utc)
        return note

    def list(self) -> List[Note]:
        """All readable notes; files that fail to parse are skipped."""
        notes = []
        for path in sorted(self.notes_dir.glob("*.json")):
            try:
                note = self.get(path.stem)
            except (OSError, ValueError, ValidationError) as exc:
                logger.warning("Skipping unreadable note %s: %s", path.name, exc)
                continue
            if note:
                notes.append(note)
        return notes

    def save(self, note: Note) -> Note:
        """
        Persist a note, refreshing its derived fields.
        Returns the stored note.
        """
        note.id = self._safe_id(note.id)
        text = plain_text(note.content)
        note.preview = text[:PREVIEW_CHARS]
        note.word_count = len(text.split())
        note.title = note.title or "Untitled"
        note.updated_at = datetime.now(timezone.utc)

        with open(self._note_path(note.id), "w", encoding="utf-8") as f:
            f.write(note.model_dump_json(indent=2))
        return note

    def delete(self, note_id: str) -> bool:
        path = self._note_path(note_id)
        if not path.exists():
            return False
        path.unlink()
        return True

    def search(self, query: str) -> List[SearchHit]:
        """Case-insensitive substring search over titles and note text."""
        needle = query.lower()
        if not needle:
            return []

        hits = []
        for note in self.list():
            text = plain_text(note.content).lower()
            title = note.title.lower()
            if needle not in title and needle not in text:
                continue

            snippet = ""
            idx = text.find(needle)
            if idx >= 0:
                start = max(0, idx - SNIPPET_CONTEXT)
                end = min(len(text), idx + len(needle) + SNIPPET_CONTEXT)
                snippet = ("..." if start > 0 else "") + text[start:end] + ("..." if end < len(text) else "")

            hits.append(
                SearchHit(note_id=note.id, title=note.title, snippet=snippet, match_in_title=needle in title)
            )
        return hits

    def backlinks(self, note_id: str) -> List[Note]:
        """Notes that link to the given note."""
        return [note for note in self.list() if note_id in note.links]
