"""
Lightweight settings loading for Sapphire.
Reads a JSON file in the base path, falling back to defaults.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger(__name__)

SETTINGS_FILENAME = "settings.json"

DEFAULT_SETTINGS: Dict[str, Any] = {
    "ai_enabled": True,
    "ai_model": "gemma3:latest",
    "ollama_url": "http://localhost:11434",
    "connect_timeout": 5.0,
    # Read timeout between chunks; None waits on the backend indefinitely.
    "stream_idle_timeout": None,
    "sort_by": "updated",
    "sort_order": "desc",
}


def default_base_path() -> Path:
    return Path(os.environ.get("SAPPHIRE_HOME", Path.home() / ".sapphire"))


def load_settings(base_path: Path) -> Dict[str, Any]:
    path = Path(base_path) / SETTINGS_FILENAME
    cfg = DEFAULT_SETTINGS.copy()
    if path.exists():
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            # Merge shallowly with defaults
            cfg.update(data)
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable settings file %s: %s", path, exc)
            cfg = DEFAULT_SETTINGS.copy()

    host = os.environ.get("OLLAMA_HOST")
    if host:
        cfg["ollama_url"] = host if "://" in host else f"http://{host}"
    return cfg


def save_settings(base_path: Path, settings: Dict[str, Any]) -> Path:
    path = Path(base_path) / SETTINGS_FILENAME
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(settings, f, indent=2)
    return path
