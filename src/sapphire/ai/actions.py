"""
Prompt table for the quick text actions offered on a selection or note.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Tuple


class UnknownActionError(ValueError):
    """Raised when an action name is not in the prompt table."""


@dataclass(frozen=True)
class ActionPrompt:
    system: str
    template: str

    def render(self, text: str) -> Tuple[str, str]:
        """Returns (system, prompt) for the given text."""
        return self.system, self.template.format(text=text)


def _translate(language: str) -> ActionPrompt:
    return ActionPrompt(
        system=f"You are a translator. Translate to {language}. Respond only with the translation.",
        template=f"Translate the following to {language}:\n\n{{text}}",
    )


ACTIONS: Dict[str, ActionPrompt] = {
    "summarize": ActionPrompt(
        system="You are a helpful assistant that creates concise summaries. Respond only with the summary, no preamble.",
        template="Summarize the following text in 2-3 sentences:\n\n{text}",
    ),
    "expand": ActionPrompt(
        system=(
            "You are a helpful writing assistant. Expand on the given text while maintaining its tone and style. "
            "Respond only with the expanded text."
        ),
        template="Expand the following text with more detail and depth:\n\n{text}",
    ),
    "rewrite": ActionPrompt(
        system=(
            "You are a helpful writing assistant. Rewrite the given text to improve clarity and flow. "
            "Respond only with the rewritten text."
        ),
        template="Rewrite the following text to be clearer and more engaging:\n\n{text}",
    ),
    "simplify": ActionPrompt(
        system=(
            "You are a helpful writing assistant. Simplify the given text using plain language. "
            "Respond only with the simplified text."
        ),
        template="Simplify the following text for easier understanding:\n\n{text}",
    ),
    "professional": ActionPrompt(
        system=(
            "You are a professional writing assistant. Rewrite in a formal, professional tone. "
            "Respond only with the rewritten text."
        ),
        template="Rewrite the following in a professional tone:\n\n{text}",
    ),
    "casual": ActionPrompt(
        system=(
            "You are a friendly writing assistant. Rewrite in a casual, conversational tone. "
            "Respond only with the rewritten text."
        ),
        template="Rewrite the following in a casual, friendly tone:\n\n{text}",
    ),
    "bullets": ActionPrompt(
        system="You are a helpful assistant. Convert text to bullet points. Respond only with the bullet points.",
        template="Convert the following text into clear bullet points:\n\n{text}",
    ),
    "fix_grammar": ActionPrompt(
        system="You are a grammar expert. Fix grammar and spelling errors. Respond only with the corrected text.",
        template="Fix any grammar and spelling errors in the following text:\n\n{text}",
    ),
    "translate_spanish": _translate("Spanish"),
    "translate_french": _translate("French"),
    "translate_german": _translate("German"),
    "translate_chinese": _translate("Simplified Chinese"),
    "translate_japanese": _translate("Japanese"),
    "explain": ActionPrompt(
        system="You are a helpful teacher. Explain concepts clearly. Respond with a clear explanation.",
        template="Explain the following in simple terms:\n\n{text}",
    ),
    "continue": ActionPrompt(
        system="You are a creative writing assistant. Continue the text naturally. Respond only with the continuation.",
        template="Continue writing from where this text leaves off:\n\n{text}",
    ),
}


def action_names() -> List[str]:
    return list(ACTIONS)


def get_action(name: str) -> ActionPrompt:
    try:
        return ACTIONS[name]
    except KeyError:
        raise UnknownActionError(f"Unknown action: {name}") from None
