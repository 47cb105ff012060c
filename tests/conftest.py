import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if SRC.exists():
    sys.path.insert(0, str(SRC))


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    # Keep a developer's local Ollama host and notes directory out of tests.
    monkeypatch.delenv("OLLAMA_HOST", raising=False)
    monkeypatch.setenv("SAPPHIRE_HOME", str(tmp_path / "home"))
