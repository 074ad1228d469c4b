from __future__ import annotations

from pathlib import Path
from typing import List, Optional

ACP_DIR = ".acp"
CACHE_FILENAME = "acp.cache.json"
VARS_FILENAME = "acp.vars.json"
ATTEMPTS_FILENAME = "acp.attempts.json"


def parse_csv(value: Optional[str]) -> Optional[List[str]]:
    if value is None:
        return None
    return [part.strip() for part in value.split(",") if part.strip()]


def resolve_repo_path(repo: Path, arg: Optional[str], default_name: str) -> Path:
    if arg:
        path = Path(arg)
        return path if path.is_absolute() else (repo / path).resolve()
    return (repo / ACP_DIR / default_name).resolve()


def resolve_cache_path(repo: Path, arg: Optional[str]) -> Path:
    return resolve_repo_path(repo, arg, CACHE_FILENAME)


def resolve_vars_path(repo: Path, arg: Optional[str]) -> Path:
    return resolve_repo_path(repo, arg, VARS_FILENAME)


def resolve_attempts_path(repo: Path, arg: Optional[str]) -> Path:
    return resolve_repo_path(repo, arg, ATTEMPTS_FILENAME)


def resolve_out_path(out_arg: str, *, workspace_root: Path) -> Path:
    out_path = Path(out_arg)
    if out_path.is_absolute():
        return out_path
    out_str = out_path.as_posix()
    if out_str.startswith("workspace/"):
        out_path = Path(out_str[len("workspace/") :])
    return (workspace_root / out_path).resolve()
