#!/usr/bin/env python3
"""
CLI interface for Sapphire notes and its Ollama integration.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from .ai.actions import action_names
from .ai.client import OllamaClient
from .ai.relay import StreamRelay
from .ai.service import AIService, ChatSession
from .config import default_base_path, load_settings, save_settings
from .datamodel import Note, StreamOutcome, StreamState, plain_text
from .errors import AIError
from .storage import NoteStore
from .tags import merge_tags, normalize_tags


class SapphireCLI:
    """Command-line interface for notes and AI actions."""

    def __init__(self, base_path: Optional[Path] = None, model: Optional[str] = None):
        if base_path is None:
            base_path = default_base_path()

        self.base_path = Path(base_path)
        self.settings = load_settings(base_path)
        self.store = NoteStore(base_path)
        self.client = OllamaClient.from_settings(self.settings)
        self.ai = AIService(self.client, model=model or self.settings.get("ai_model"))

    # -----------------------------
    # Notes
    # -----------------------------
    def create_note(self, title: str, content: str = "", tags: list = None) -> str:
        """Create a new note."""
        note = self.store.save(Note(title=title, content=content, tags=normalize_tags(tags)))
        print(f"Created note: {note.id}")
        print(f"Title: {note.title}")
        return note.id

    def _load(self, note_id: str) -> Optional[Note]:
        try:
            note = self.store.get(note_id)
        except (OSError, ValueError, ValidationError) as exc:
            print(f"Could not read note {note_id}: {exc}")
            return None
        if not note:
            print(f"Note not found: {note_id}")
        return note

    def show_note(self, note_id: str):
        """Display a note."""
        note = self._load(note_id)
        if not note:
            return

        print(f"\nID: {note.id}")
        print(f"Title: {note.title}")
        print(f"Created: {note.created_at.strftime('%Y-%m-%d %H:%M:%S')}")
        print(f"Updated: {note.updated_at.strftime('%Y-%m-%d %H:%M:%S')}")
        print(f"Words: {note.word_count}")

        if note.tags:
            print(f"Tags: {', '.join(note.tags)}")

        print(f"\nContent:\n{'-' * 80}")
        print(note.content)
        print("-" * 80)

        backlinks = self.store.backlinks(note.id)
        if backlinks:
            print("\nLinked from:")
            for source in backlinks:
                print(f"  - {source.title} ({source.id})")

    def list_notes(self, sort_by: str = "updated"):
        """List all notes."""
        notes = self.store.list()

        if not notes:
            print("No notes found.")
            return

        if sort_by == "created":
            notes.sort(key=lambda n: n.created_at, reverse=True)
        elif sort_by == "title":
            notes.sort(key=lambda n: n.title.lower())
        else:
            notes.sort(key=lambda n: n.updated_at, reverse=True)
        # Pinned notes stay on top.
        notes.sort(key=lambda n: not n.pinned)

        print(f"\nTotal notes: {len(notes)}\n")

        for note in notes:
            print(f"{note.title}")
            print(f"  ID: {note.id}")
            print(f"  Updated: {note.updated_at.strftime('%Y-%m-%d %H:%M:%S')}")
            if note.tags:
                print(f"  Tags: {', '.join(note.tags)}")
            print()

    def delete_note(self, note_id: str):
        """Delete a note."""
        if self.store.delete(note_id):
            print(f"Deleted note: {note_id}")
        else:
            print(f"Note not found: {note_id}")

    def search_notes(self, query: str):
        hits = self.store.search(query)
        if not hits:
            print("No results found.")
            return

        print(f"\nFound {len(hits)} results:\n")
        for i, hit in enumerate(hits, 1):
            print(f"{i}. {hit.title}")
            print(f"   ID: {hit.note_id}")
            if hit.snippet:
                print(f"   {hit.snippet}")
            print()

    # -----------------------------
    # AI
    # -----------------------------
    def status(self):
        status = self.ai.client.status()
        if not status.running:
            print(f"Ollama is not running at {self.client.base_url}.")
            if status.error:
                print(f"  ({status.error})")
            return
        print(f"Ollama is running at {self.client.base_url}.")
        print(f"Models available: {len(status.models)}")

    def list_models(self):
        models = self.ai.client.list_models()
        if not models:
            print("No models found.")
            return
        for m in models:
            marker = "*" if m.name == self.ai.model else " "
            print(f"{marker} {m.name}")

    def use_model(self, name: str):
        """Make `name` the default model for future runs."""
        self.settings["ai_model"] = name
        self.ai.model = name
        save_settings(self.base_path, self.settings)
        print(f"Default model: {name}")

    def _stream(self, relay: StreamRelay) -> StreamOutcome:
        """Print fragments as they arrive. Ctrl-C cancels the request."""

        def on_fragment(delta: str, accumulated: str):
            sys.stdout.write(delta)
            sys.stdout.flush()

        try:
            outcome = relay.run(on_fragment)
        except KeyboardInterrupt:
            relay.cancel()
            outcome = relay.outcome

        if relay.fragments:
            print()
        if outcome.status == StreamState.CANCELLED:
            print("Cancelled.")
        elif outcome.status == StreamState.FAILED:
            print(f"Error: {outcome.error}")
        return outcome

    def generate(self, prompt: str, system: Optional[str] = None, stream: bool = True) -> Optional[str]:
        if not stream:
            try:
                text = self.ai.complete(prompt, system=system)
            except AIError as exc:
                print(f"Error: {exc}")
                return None
            print(text)
            return text
        outcome = self._stream(self.ai.generate(prompt, system=system))
        return outcome.text if outcome.ok else None

    def run_action(self, action: str, text: Optional[str] = None, note_id: Optional[str] = None) -> Optional[str]:
        if note_id:
            note = self._load(note_id)
            if not note:
                return None
            text = plain_text(note.content)
        if not text:
            print("Nothing to process.")
            return None
        outcome = self._stream(self.ai.action(action, text))
        return outcome.text if outcome.ok else None

    def chat(self, note_id: Optional[str] = None, prompt: str = "> "):
        """Interactive chat; an empty line, 'exit' or EOF ends it."""
        note = self._load(note_id) if note_id else None
        if note_id and not note:
            return
        session = ChatSession(self.ai, note=note)
        while True:
            try:
                message = input(prompt).strip()
            except (EOFError, KeyboardInterrupt):
                print()
                break
            if not message or message.lower() in {"exit", "quit"}:
                break
            relay = session.ask(message)
            self._stream(relay)
            session.record(relay)

    def suggest_tags(self, note_id: str, apply: bool = False) -> Optional[List[str]]:
        note = self._load(note_id)
        if not note:
            return None
        try:
            tags = self.ai.suggest_tags(note.title, note.content)
        except AIError as exc:
            print(f"Error: {exc}")
            return None
        print(f"Suggested tags: {', '.join(tags) if tags else '(none)'}")
        if apply and tags:
            note.tags = merge_tags(note.tags, tags)
            self.store.save(note)
            print(f"Tags: {', '.join(note.tags)}")
        return tags

    def suggest_title(self, note_id: str, apply: bool = False) -> Optional[str]:
        note = self._load(note_id)
        if not note:
            return None
        try:
            title = self.ai.suggest_title(note.content)
        except AIError as exc:
            print(f"Error: {exc}")
            return None
        print(f"Suggested title: {title}")
        if apply and title:
            note.title = title
            self.store.save(note)
            print(f"Renamed note: {note.id}")
        return title


def main():
    parser = argparse.ArgumentParser(description="Sapphire notes CLI")
    parser.add_argument("--base-path", type=Path, help="Base path for notes storage")
    parser.add_argument("--model", help="Ollama model to use (defaults to settings)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Notes
    create_parser = subparsers.add_parser("new", aliases=["create"], help="Create a new note")
    create_parser.add_argument("title", help="Note title")
    create_parser.add_argument("-c", "--content", default="", help="Note content")
    create_parser.add_argument("-t", "--tags", nargs="+", help="Tags")

    show_parser = subparsers.add_parser("show", aliases=["get"], help="Display a note")
    show_parser.add_argument("note_id", help="Note ID")

    list_parser = subparsers.add_parser("list", aliases=["ls"], help="List all notes")
    list_parser.add_argument(
        "-s", "--sort", choices=["updated", "created", "title"], default=None, help="Sort by"
    )

    delete_parser = subparsers.add_parser("rm", aliases=["delete"], help="Delete a note")
    delete_parser.add_argument("note_id", help="Note ID")

    search_parser = subparsers.add_parser("search", aliases=["find"], help="Search notes")
    search_parser.add_argument("query", help="Search query")

    # AI
    subparsers.add_parser("status", help="Check whether Ollama is running")
    models_parser = subparsers.add_parser("models", help="List Ollama models")
    models_parser.add_argument("--use", metavar="NAME", help="Save NAME as the default model")

    generate_parser = subparsers.add_parser("generate", aliases=["ask"], help="Stream a completion")
    generate_parser.add_argument("prompt", help="Prompt text")
    generate_parser.add_argument("-s", "--system", help="System prompt")
    generate_parser.add_argument("--no-stream", action="store_true", help="Wait for the full answer")

    chat_parser = subparsers.add_parser("chat", help="Chat about a note")
    chat_parser.add_argument("--note", dest="note_id", help="Note ID to use as context")

    action_parser = subparsers.add_parser("action", help="Run a quick AI action")
    action_parser.add_argument("action", choices=action_names(), help="Action name")
    source = action_parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--note", dest="note_id", help="Use the note's content")
    source.add_argument("--text", help="Use this text")

    tags_parser = subparsers.add_parser("suggest-tags", help="Suggest tags for a note")
    tags_parser.add_argument("note_id", help="Note ID")
    tags_parser.add_argument("--apply", action="store_true", help="Add the tags to the note")

    title_parser = subparsers.add_parser("suggest-title", help="Suggest a title for a note")
    title_parser.add_argument("note_id", help="Note ID")
    title_parser.add_argument("--apply", action="store_true", help="Rename the note")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return

    cli = SapphireCLI(args.base_path, model=args.model)

    if args.command in ["new", "create"]:
        cli.create_note(args.title, args.content, args.tags)
    elif args.command in ["show", "get"]:
        cli.show_note(args.note_id)
    elif args.command in ["list", "ls"]:
        cli.list_notes(args.sort or cli.settings.get("sort_by", "updated"))
    elif args.command in ["rm", "delete"]:
        cli.delete_note(args.note_id)
    elif args.command in ["search", "find"]:
        cli.search_notes(args.query)
    elif args.command == "status":
        cli.status()
    elif args.command == "models":
        if args.use:
            cli.use_model(args.use)
        else:
            cli.list_models()
    elif not cli.settings.get("ai_enabled", True):
        print("AI features are disabled in settings.")
    elif args.command in ["generate", "ask"]:
        cli.generate(args.prompt, system=args.system, stream=not args.no_stream)
    elif args.command == "chat":
        cli.chat(args.note_id)
    elif args.command == "action":
        cli.run_action(args.action, text=args.text, note_id=args.note_id)
    elif args.command == "suggest-tags":
        cli.suggest_tags(args.note_id, apply=args.apply)
    elif args.command == "suggest-title":
        cli.suggest_title(args.note_id, apply=args.apply)


if __name__ == "__main__":
    main()
