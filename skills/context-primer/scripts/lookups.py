"""Read-only lookups over the code-analysis cache.

These back the CLI query subcommands. Every function returns plain JSON-ready
dicts/lists. A missing graph or constraints block yields empty results; only
an unresolvable target raises ``LookupFailure``.
"""
from __future__ import annotations

import posixpath
from collections import Counter
from typing import Any, Dict, List, Optional

import cache as cache_model

HOTPATH_LIMIT = 20
KEY_FILE_LIMIT = 10
SIMILAR_FILE_LIMIT = 5
DEBUG_HOTPATH_LIMIT = 5
DEBUG_MIN_CALLERS = 3

OPERATIONS = ("create", "modify", "debug", "explore")


class LookupFailure(ValueError):
    pass


def architecture(cache: Dict[str, Any]) -> Dict[str, Any]:
    files = cache_model.files(cache)
    domains = [
        {
            "name": name,
            "description": domain.get("description"),
            "file_count": len(domain.get("files") or []),
        }
        for name, domain in sorted(cache_model.domains(cache).items())
    ]
    languages = sorted({str(node.get("language") or "unknown") for node in files.values()})
    return {
        "project_name": (cache.get("project") or {}).get("name"),
        "total_files": len(files),
        "total_symbols": len(cache_model.symbols(cache)),
        "domains": domains,
        "languages": languages,
    }


def file_context(cache: Dict[str, Any], path: str) -> Dict[str, Any]:
    node = cache_model.files(cache).get(path)
    if node is None:
        raise LookupFailure(f"File not found: {path}")
    return dict(node)


def symbol_context(cache: Dict[str, Any], name: str) -> Dict[str, Any]:
    symbol = cache_model.symbols(cache).get(name)
    if symbol is None:
        raise LookupFailure(f"Symbol not found: {name}")
    forward, reverse = cache_model.graph_edges(cache)
    return {
        "symbol": dict(symbol),
        "callers": list(reverse.get(name) or []),
        "callees": list(forward.get(name) or []),
    }


def domain_files(cache: Dict[str, Any], name: str) -> Dict[str, Any]:
    domain = cache_model.domains(cache).get(name)
    if domain is None:
        raise LookupFailure(f"Domain not found: {name}")
    return dict(domain)


def check_constraints(cache: Dict[str, Any], path: str) -> Dict[str, Any]:
    if not cache_model.has_constraints(cache):
        return {"message": "No constraints defined in cache"}
    record = cache_model.constraints_by_file(cache).get(path)
    if record is None:
        return {"message": "No constraints found for this file"}
    return dict(record)


def hotpaths(cache: Dict[str, Any], limit: int = HOTPATH_LIMIT) -> List[Dict[str, Any]]:
    """Most-called symbols, by number of distinct callers."""
    _, reverse = cache_model.graph_edges(cache)
    symbols = cache_model.symbols(cache)
    ranked = sorted(
        ((name, len(callers or [])) for name, callers in reverse.items()),
        key=lambda pair: (-pair[1], pair[0]),
    )
    results: List[Dict[str, Any]] = []
    for name, caller_count in ranked[: max(0, limit)]:
        symbol = symbols.get(name)
        if symbol is None:
            continue
        results.append(
            {
                "name": name,
                "caller_count": caller_count,
                "file": symbol.get("file"),
                "symbol_type": symbol.get("type"),
            }
        )
    return results


def expand_variable(variables: Optional[Dict[str, Any]], name: str) -> Dict[str, Any]:
    if variables is None:
        raise LookupFailure("No vars file loaded")
    table = variables.get("variables")
    if not isinstance(table, dict) or name not in table:
        raise LookupFailure(f"Variable not found: {name}")
    value = table[name]
    return dict(value) if isinstance(value, dict) else {"value": value}


def _parent(path: str) -> str:
    return posixpath.dirname(path)


def directory_language(cache: Dict[str, Any], directory: str) -> Optional[str]:
    counts: Counter = Counter()
    prefix = directory.rstrip("/") + "/"
    for path, node in cache_model.files(cache).items():
        parent = _parent(path)
        if parent == directory or parent.startswith(prefix):
            counts[str(node.get("language") or "unknown").lower()] += 1
    if not counts:
        return None
    return sorted(counts.items(), key=lambda pair: (-pair[1], pair[0]))[0][0]


def _naming_convention(cache: Dict[str, Any], directory: str) -> Optional[Dict[str, Any]]:
    conventions = cache.get("conventions") or {}
    entries = [item for item in conventions.get("file_naming") or [] if isinstance(item, dict)]
    for item in entries:
        if item.get("directory") == directory:
            return item
    candidates = [item for item in entries if directory.startswith(str(item.get("directory") or ""))]
    if not candidates:
        return None
    return max(candidates, key=lambda item: len(str(item.get("directory") or "")))


def _import_style(cache: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    conventions = cache.get("conventions") or {}
    imports = conventions.get("imports")
    if not isinstance(imports, dict):
        return None
    return {
        "module_system": str(imports.get("module_system") or "esm").lower(),
        "path_style": str(imports.get("path_style") or "relative").lower(),
        "index_exports": bool(imports.get("index_exports", False)),
    }


def create_context(cache: Dict[str, Any], directory: str) -> Dict[str, Any]:
    naming = _naming_convention(cache, directory)
    similar = sorted(path for path in cache_model.files(cache) if _parent(path) == directory)
    return {
        "operation": "create",
        "directory": directory,
        "language": directory_language(cache, directory),
        "naming_convention": {
            "pattern": naming.get("pattern"),
            "confidence": naming.get("confidence"),
            "examples": list(naming.get("examples") or []),
        }
        if naming
        else None,
        "import_style": _import_style(cache),
        "similar_files": similar[:SIMILAR_FILE_LIMIT],
        "recommended_pattern": naming.get("pattern") if naming else None,
    }


def _domain_of(cache: Dict[str, Any], path: str) -> Optional[str]:
    for name, domain in sorted(cache_model.domains(cache).items()):
        if path in (domain.get("files") or []):
            return name
    return None


def modify_context(cache: Dict[str, Any], path: str, find_usages: bool = False) -> Dict[str, Any]:
    node = cache_model.files(cache).get(path) or {}
    importers = sorted(node.get("imported_by") or [])
    lock = cache_model.mutation_lock(cache_model.constraints_by_file(cache).get(path) or {})
    result: Dict[str, Any] = {
        "operation": "modify",
        "file": path,
        "importers": importers,
        "importer_count": len(importers),
        "constraints": {"level": lock[0], "reason": lock[1]} if lock else None,
        "symbols": list(node.get("exports") or []),
        "domain": _domain_of(cache, path),
    }
    if find_usages:
        _, reverse = cache_model.graph_edges(cache)
        result["usages"] = {
            name: sorted(reverse.get(name) or []) for name in result["symbols"] if reverse.get(name)
        }
    return result


def _symbol_summary(symbol: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "name": symbol.get("name"),
        "type": str(symbol.get("type") or "").lower(),
        "purpose": symbol.get("purpose"),
    }


def debug_context(cache: Dict[str, Any], target: str) -> Dict[str, Any]:
    files = cache_model.files(cache)
    symbols = cache_model.symbols(cache)
    if target in files:
        file_path = target
        summaries = [
            _symbol_summary(symbols[name])
            for name in files[target].get("exports") or []
            if name in symbols
        ]
    elif target in symbols:
        file_path = str(symbols[target].get("file") or "")
        summaries = [_symbol_summary(symbols[target])]
    else:
        return {
            "operation": "debug",
            "error": f"Target not found: {target}. Provide a file path or symbol name.",
        }

    _, reverse = cache_model.graph_edges(cache)
    hot = [
        name
        for name, callers in sorted(reverse.items())
        if len(callers or []) >= DEBUG_MIN_CALLERS and (name == target or name in file_path)
    ]
    return {
        "operation": "debug",
        "target": target,
        "file": file_path,
        "related_files": list((files.get(file_path) or {}).get("imports") or []),
        "symbols": summaries,
        "hotpaths": hot[:DEBUG_HOTPATH_LIMIT],
    }


def explore_context(cache: Dict[str, Any], domain_filter: Optional[str] = None) -> Dict[str, Any]:
    stats = cache_model.stats(cache)
    domains = [
        {
            "name": name,
            "file_count": len(domain.get("files") or []),
            "symbol_count": len(domain.get("symbols") or []),
            "description": domain.get("description"),
        }
        for name, domain in sorted(cache_model.domains(cache).items())
        if domain_filter is None or domain_filter in name
    ]
    ranked = sorted(
        cache_model.files(cache).items(),
        key=lambda pair: (-len(pair[1].get("imported_by") or []), pair[0]),
    )
    return {
        "operation": "explore",
        "domain_filter": domain_filter,
        "stats": {
            "files": stats.get("files", 0),
            "symbols": stats.get("symbols", 0),
            "lines": stats.get("lines", 0),
            "primary_language": stats.get("primary_language"),
            "annotation_coverage": stats.get("annotation_coverage", 0.0),
        },
        "domains": domains,
        "key_files": [path for path, _ in ranked[:KEY_FILE_LIMIT]],
    }


def operation_context(
    cache: Dict[str, Any],
    operation: str,
    target: Optional[str] = None,
    find_usages: bool = False,
) -> Dict[str, Any]:
    if operation == "explore":
        return explore_context(cache, target)
    if operation not in OPERATIONS:
        raise LookupFailure(
            f"Unknown operation: {operation}. Use: create, modify, debug, or explore"
        )
    if not target:
        kind = {"create": "directory path", "modify": "file path", "debug": "file or symbol"}
        raise LookupFailure(f"'target' ({kind[operation]}) required for {operation} operation")
    if operation == "create":
        return create_context(cache, target)
    if operation == "modify":
        return modify_context(cache, target, find_usages)
    return debug_context(cache, target)
