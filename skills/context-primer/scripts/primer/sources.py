from __future__ import annotations

import posixpath
from operator import itemgetter
from typing import Any, Callable, Dict, List

import cache as cache_model

from .types import SectionData

ENTRY_POINT_NAMES = (
    "main.rs",
    "main.ts",
    "main.py",
    "__main__.py",
    "index.ts",
    "index.js",
    "app.ts",
    "app.py",
    "mod.rs",
)
ENTRY_POINT_LIMIT = 10
DEFAULT_CONSTRAINT_LEVELS = cache_model.PROTECTED_LEVELS

SOURCE_DOMAINS = "cache.domains"
SOURCE_CONSTRAINTS = "cache.constraints.by_lock_level"
SOURCE_LAYERS = "cache.layers"
SOURCE_ENTRY_POINTS = "cache.entryPoints"
SOURCE_HACKS = "cache.hacks"
SOURCE_VARIABLES = "vars.variables"
SOURCE_ATTEMPTS = "attempts.active"


def entry_point_paths(cache: Dict[str, Any]) -> List[str]:
    paths = []
    for path, node in cache_model.files(cache).items():
        name = posixpath.basename(str(node.get("path") or path)).lower()
        if name in ENTRY_POINT_NAMES:
            paths.append(path)
    return sorted(paths)


def layer_counts(cache: Dict[str, Any]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for node in cache_model.files(cache).values():
        layer = node.get("layer")
        if layer:
            counts[layer] = counts.get(layer, 0) + 1
    return counts


def domain_items(cache: Dict[str, Any], data: SectionData) -> List[Dict[str, Any]]:
    items = []
    for name, domain in sorted(cache_model.domains(cache).items()):
        item: Dict[str, Any] = {
            "name": name,
            "fileCount": len(domain.get("files") or []),
            "symbolCount": len(domain.get("symbols") or []),
        }
        if domain.get("description"):
            item["description"] = domain["description"]
        items.append(item)
    return items


def constraint_items(cache: Dict[str, Any], data: SectionData) -> List[Dict[str, Any]]:
    levels = data.include or DEFAULT_CONSTRAINT_LEVELS
    items = []
    for path, record in sorted(cache_model.constraints_by_file(cache).items()):
        lock = cache_model.mutation_lock(record)
        if lock is None:
            continue
        level, reason = lock
        if level not in levels:
            continue
        item: Dict[str, Any] = {"path": path, "level": level}
        if reason:
            item["reason"] = reason
        items.append(item)
    return items


def layer_items(cache: Dict[str, Any], data: SectionData) -> List[Dict[str, Any]]:
    return [
        {"name": name, "fileCount": count}
        for name, count in sorted(layer_counts(cache).items())
    ]


def entry_point_items(cache: Dict[str, Any], data: SectionData) -> List[Dict[str, Any]]:
    files = cache_model.files(cache)
    return [
        {"path": path, "type": str(files[path].get("language") or "unknown")}
        for path in entry_point_paths(cache)[:ENTRY_POINT_LIMIT]
    ]


def hack_items(cache: Dict[str, Any], data: SectionData) -> List[Dict[str, Any]]:
    items = []
    for hack in cache_model.hacks(cache):
        item = {
            "file": hack.get("file", ""),
            "reason": hack.get("reason", ""),
            "expires": hack.get("expires", ""),
            "expired": bool(hack.get("expired")),
        }
        items.append(item)
    return sorted(items, key=lambda item: str(item["file"]))


SOURCES: Dict[str, Callable[[Dict[str, Any], SectionData], List[Dict[str, Any]]]] = {
    SOURCE_DOMAINS: domain_items,
    SOURCE_CONSTRAINTS: constraint_items,
    SOURCE_LAYERS: layer_items,
    SOURCE_ENTRY_POINTS: entry_point_items,
    SOURCE_HACKS: hack_items,
}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def sort_items(items: List[Dict[str, Any]], sort_by: str, order: str) -> List[Dict[str, Any]]:
    """Numbers sort among numbers and strings among strings.

    Numeric values come first, then strings, then items whose value is
    missing or of any other type, which keep their input order. Equal values
    keep their input order in both directions.
    """
    reverse = order != "asc"
    numbers: List[Dict[str, Any]] = []
    strings: List[Dict[str, Any]] = []
    others: List[Dict[str, Any]] = []
    for item in items:
        value = item.get(sort_by)
        if _is_number(value):
            numbers.append(item)
        elif isinstance(value, str):
            strings.append(item)
        else:
            others.append(item)
    key = itemgetter(sort_by)
    return sorted(numbers, key=key, reverse=reverse) + sorted(strings, key=key, reverse=reverse) + others


def _matches(item: Dict[str, Any], data: SectionData) -> bool:
    for key, accepted in data.match:
        value = item.get(key)
        if isinstance(accepted, tuple):
            if value not in accepted:
                return False
        elif value != accepted:
            return False
    return True


def extract_items(cache: Dict[str, Any], data: SectionData) -> List[Dict[str, Any]]:
    """Items for a data-bound section: source, filter, sort, then cap."""
    extractor = SOURCES.get(data.source)
    if extractor is None:
        return []
    items = [item for item in extractor(cache, data) if _matches(item, data)]
    if data.sort_by:
        items = sort_items(items, data.sort_by, data.sort_order)
    if data.max_items is not None:
        items = items[: data.max_items]
    return items
