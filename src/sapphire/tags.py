from __future__ import annotations

import re
from typing import Iterable, List, Optional


_TAG_WS = re.compile(r"\s+")
_TAG_SAFE = re.compile(r"[^\w-]+")
_TAG_DASHES = re.compile(r"-+")

MAX_SUGGESTED_TAG_LENGTH = 20


def normalize_tag(value: str) -> str:
    tag = (value or "").strip().lower().lstrip("#")
    tag = _TAG_WS.sub("-", tag)
    tag = _TAG_SAFE.sub("-", tag)
    tag = _TAG_DASHES.sub("-", tag)
    tag = tag.strip("-_")
    return tag


def normalize_tags(values: Optional[Iterable[str]]) -> List[str]:
    seen = set()
    out: List[str] = []
    for raw in values or []:
        tag = normalize_tag(raw)
        if not tag or tag in seen:
            continue
        seen.add(tag)
        out.append(tag)
    return out


def parse_suggested_tags(text: str) -> List[str]:
    """
    Parse a model's comma-separated tag answer.
    Overlong entries are usually prose rather than tags and are dropped.
    """
    candidates = [t.strip().lower() for t in (text or "").split(",")]
    candidates = [t for t in candidates if t and len(t) < MAX_SUGGESTED_TAG_LENGTH]
    return normalize_tags(candidates)


def merge_tags(existing: Optional[Iterable[str]], suggested: Optional[Iterable[str]]) -> List[str]:
    """Merge and deduplicate while preserving order."""
    return normalize_tags(list(existing or []) + list(suggested or []))
