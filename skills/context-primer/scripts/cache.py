from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)

CACHE_VERSION = "1.0.0"

LOCK_FROZEN = "frozen"
LOCK_RESTRICTED = "restricted"
LOCK_APPROVAL = "approval-required"
LOCK_TESTS = "tests-required"
LOCK_DOCS = "docs-required"
LOCK_NORMAL = "normal"

LOCK_LEVELS = (LOCK_FROZEN, LOCK_RESTRICTED, LOCK_APPROVAL, LOCK_TESTS, LOCK_DOCS)
PROTECTED_LEVELS = (LOCK_FROZEN, LOCK_RESTRICTED)

_LOCK_ALIASES = {
    "approval": LOCK_APPROVAL,
    "approvalrequired": LOCK_APPROVAL,
    "testsrequired": LOCK_TESTS,
    "docsrequired": LOCK_DOCS,
}


class CacheError(ValueError):
    pass


def now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


def normalize_lock_level(value: Any) -> str:
    if not isinstance(value, str):
        return LOCK_NORMAL
    text = value.strip().lower().replace("_", "-")
    if text in LOCK_LEVELS:
        return text
    return _LOCK_ALIASES.get(text.replace("-", ""), LOCK_NORMAL)


def new_cache(name: str, root: str = ".") -> Dict[str, Any]:
    return {
        "version": CACHE_VERSION,
        "generated_at": now_iso(),
        "project": {"name": name, "root": root},
        "stats": {
            "files": 0,
            "symbols": 0,
            "lines": 0,
            "primary_language": None,
            "annotation_coverage": 0.0,
        },
        "files": {},
        "symbols": {},
        "domains": {},
        "graph": None,
        "constraints": None,
        "conventions": {"file_naming": [], "imports": None},
        "hacks": [],
    }


def load_cache(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise CacheError(f"No cache found at {path}. Run the indexer first.")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise CacheError(f"Failed to read cache {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise CacheError(f"Cache {path} is not a JSON object")
    return data


def save_cache(path: Path, cache: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(cache, ensure_ascii=True, indent=2), encoding="utf-8")


def load_optional_json(path: Optional[Path]) -> Optional[Dict[str, Any]]:
    if path is None or not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Failed to parse %s: %s", path, exc)
        return None
    if not isinstance(data, dict):
        logger.warning("Ignoring %s: not a JSON object", path)
        return None
    return data


def _mapping(cache: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = cache.get(key)
    return value if isinstance(value, dict) else {}


def files(cache: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    return _mapping(cache, "files")


def symbols(cache: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    return _mapping(cache, "symbols")


def domains(cache: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    return _mapping(cache, "domains")


def stats(cache: Dict[str, Any]) -> Dict[str, Any]:
    return _mapping(cache, "stats")


def graph_edges(cache: Dict[str, Any]) -> Tuple[Dict[str, List[str]], Dict[str, List[str]]]:
    graph = cache.get("graph")
    if not isinstance(graph, dict):
        return {}, {}
    forward = graph.get("forward") if isinstance(graph.get("forward"), dict) else {}
    reverse = graph.get("reverse") if isinstance(graph.get("reverse"), dict) else {}
    return forward, reverse


def has_constraints(cache: Dict[str, Any]) -> bool:
    return isinstance(cache.get("constraints"), dict)


def constraints_by_file(cache: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    constraints = cache.get("constraints")
    if not isinstance(constraints, dict):
        return {}
    by_file = constraints.get("by_file")
    return by_file if isinstance(by_file, dict) else {}


def mutation_lock(record: Dict[str, Any]) -> Optional[Tuple[str, Optional[str]]]:
    mutation = record.get("mutation") if isinstance(record, dict) else None
    if not isinstance(mutation, dict):
        return None
    return normalize_lock_level(mutation.get("level")), mutation.get("reason")


def hacks(cache: Dict[str, Any]) -> List[Dict[str, Any]]:
    value = cache.get("hacks")
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def add_file(
    cache: Dict[str, Any],
    path: str,
    *,
    language: str = "unknown",
    layer: Optional[str] = None,
    imports: Iterable[str] = (),
    exports: Iterable[str] = (),
    lines: int = 0,
) -> Dict[str, Any]:
    node = {
        "path": path,
        "language": language,
        "layer": layer,
        "lines": lines,
        "imports": list(imports),
        "exports": list(exports),
        "imported_by": [],
    }
    cache["files"][path] = node
    for target in node["imports"]:
        target_node = cache["files"].get(target)
        if target_node is not None and path not in target_node["imported_by"]:
            target_node["imported_by"].append(path)
    for other_path, other in cache["files"].items():
        if path in other.get("imports", []) and other_path not in node["imported_by"]:
            node["imported_by"].append(other_path)
    cache["stats"]["files"] = len(cache["files"])
    cache["stats"]["lines"] = sum(int(f.get("lines", 0) or 0) for f in cache["files"].values())
    return node


def add_symbol(
    cache: Dict[str, Any],
    name: str,
    *,
    file: str,
    symbol_type: str = "function",
    purpose: Optional[str] = None,
) -> Dict[str, Any]:
    node = {"name": name, "type": symbol_type, "file": file, "purpose": purpose}
    cache["symbols"][name] = node
    cache["stats"]["symbols"] = len(cache["symbols"])
    return node


def add_domain(
    cache: Dict[str, Any],
    name: str,
    *,
    files: Iterable[str] = (),
    symbols: Iterable[str] = (),
    description: Optional[str] = None,
) -> Dict[str, Any]:
    node = {
        "name": name,
        "files": list(files),
        "symbols": list(symbols),
        "description": description,
    }
    cache["domains"][name] = node
    return node


def add_call(cache: Dict[str, Any], caller: str, callee: str) -> None:
    if not isinstance(cache.get("graph"), dict):
        cache["graph"] = {"forward": {}, "reverse": {}}
    forward = cache["graph"].setdefault("forward", {})
    reverse = cache["graph"].setdefault("reverse", {})
    forward.setdefault(caller, [])
    if callee not in forward[caller]:
        forward[caller].append(callee)
    reverse.setdefault(callee, [])
    if caller not in reverse[callee]:
        reverse[callee].append(caller)


def set_lock(
    cache: Dict[str, Any], path: str, level: str, reason: Optional[str] = None
) -> None:
    if not isinstance(cache.get("constraints"), dict):
        cache["constraints"] = {"by_file": {}}
    by_file = cache["constraints"].setdefault("by_file", {})
    by_file[path] = {"mutation": {"level": level, "reason": reason}}
