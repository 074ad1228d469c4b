"""Filesystem pattern helpers.

Rules:
- write generated primers under workspace/
- print only small summaries/previews (never dump huge payloads to stdout)
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any

WORKSPACE_DIR = Path("workspace")


def ensure_workspace() -> Path:
    WORKSPACE_DIR.mkdir(parents=True, exist_ok=True)
    return WORKSPACE_DIR


def workspace_root() -> Path:
    return ensure_workspace()


def write_text(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def write_json(path: Path, obj: Any) -> Path:
    return write_text(path, json.dumps(obj, ensure_ascii=True, indent=2))


def safe_preview_text(text: str, max_bytes: int = 512) -> str:
    data = text.encode("utf-8", errors="replace")
    if len(data) <= max_bytes:
        return text
    cut = data[:max_bytes]
    return cut.decode("utf-8", errors="ignore") + "..."
