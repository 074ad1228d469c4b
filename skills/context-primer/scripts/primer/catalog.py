"""Section catalog loading.

The catalog is validated with JSON Schema first, then converted into frozen
dataclasses. Structural problems that the schema cannot express (duplicate
ids, dangling or cyclic ``depends_on``) are checked afterwards. Every
failure raises ``CatalogError`` so a generator is never built from a bad
catalog.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import jsonschema

from .budget import DEFAULT_FIXED_TOKENS
from .types import (
    Capability,
    Category,
    DimensionWeights,
    FormatTemplate,
    OutputFormat,
    PrimerCatalog,
    PrimerMetadata,
    PrimerSection,
    SectionData,
    SectionFormats,
    SectionValue,
    SelectionPhase,
    SelectionStrategy,
    ValueModifier,
)

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = Path(__file__).resolve().parent / "defaults" / "primer.defaults.json"

_STRING_LIST = {"type": "array", "items": {"type": "string"}}
_OPTIONAL_STRING = {"type": ["string", "null"]}

_TEMPLATE_SCHEMA = {
    "type": "object",
    "properties": {
        "template": _OPTIONAL_STRING,
        "header": _OPTIONAL_STRING,
        "footer": _OPTIONAL_STRING,
        "item_template": _OPTIONAL_STRING,
        "separator": {"type": "string"},
        "empty_template": _OPTIONAL_STRING,
    },
}

_WEIGHTS_SCHEMA = {
    "type": "object",
    "properties": {name: {"type": "number"} for name in ("safety", "efficiency", "accuracy", "base")},
}

CATALOG_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["version", "sections"],
    "properties": {
        "$schema": {"type": "string"},
        "version": {"type": "string"},
        "metadata": {"type": "object"},
        "capabilities": {"type": "object"},
        "categories": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id", "name"],
                "properties": {
                    "id": {"type": "string"},
                    "name": {"type": "string"},
                    "priority": {"type": "integer"},
                },
            },
        },
        "sections": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id", "category"],
                "properties": {
                    "id": {"type": "string", "minLength": 1},
                    "name": {"type": "string"},
                    "category": {"type": "string"},
                    "priority": {"type": "integer"},
                    "tokens": {
                        "oneOf": [
                            {"type": "integer", "minimum": 0},
                            {"const": "dynamic"},
                        ]
                    },
                    "value": {
                        "type": "object",
                        "properties": {
                            "safety": {"type": "integer"},
                            "efficiency": {"type": "integer"},
                            "accuracy": {"type": "integer"},
                            "base": {"type": "integer"},
                            "modifiers": {
                                "type": "array",
                                "items": {
                                    "type": "object",
                                    "required": ["condition"],
                                    "properties": {
                                        "condition": {"type": "string"},
                                        "add": {"type": "integer"},
                                        "multiply": {"type": "number"},
                                        "set": {"type": "integer"},
                                        "dimension": {
                                            "enum": ["safety", "efficiency", "accuracy", "base", "all"]
                                        },
                                        "reason": {"type": "string"},
                                    },
                                },
                            },
                        },
                    },
                    "required": {"type": "boolean"},
                    "required_if": _OPTIONAL_STRING,
                    "capabilities": _STRING_LIST,
                    "capabilities_all": _STRING_LIST,
                    "depends_on": _STRING_LIST,
                    "conflicts_with": _STRING_LIST,
                    "tags": _STRING_LIST,
                    "data": {
                        "type": "object",
                        "required": ["source"],
                        "properties": {
                            "source": {"type": "string"},
                            "fields": _STRING_LIST,
                            "filter": {"type": ["array", "object", "null"]},
                            "sort_by": _OPTIONAL_STRING,
                            "sort_order": {"enum": ["asc", "desc"]},
                            "max_items": {"type": ["integer", "null"], "minimum": 0},
                            "item_tokens": {"type": ["integer", "null"], "minimum": 0},
                            "empty_behavior": {"enum": ["exclude", "placeholder", "error"]},
                        },
                    },
                    "formats": {
                        "type": "object",
                        "properties": {fmt.value: _TEMPLATE_SCHEMA for fmt in OutputFormat},
                    },
                },
            },
        },
        "selection_strategy": {
            "type": "object",
            "properties": {
                "algorithm": {"type": "string"},
                "weights": _WEIGHTS_SCHEMA,
                "presets": {"type": "object", "additionalProperties": _WEIGHTS_SCHEMA},
                "phases": {
                    "type": "array",
                    "items": {"type": "object", "required": ["name"]},
                },
                "minimum_budget": {"type": "integer", "minimum": 0},
                "dynamic_modifiers_enabled": {"type": "boolean"},
            },
        },
    },
}


class CatalogError(ValueError):
    pass


def _tuple(values: Optional[Iterable[Any]]) -> Tuple[Any, ...]:
    return tuple(values or ())


def _modifier(data: Mapping[str, Any]) -> ValueModifier:
    return ValueModifier(
        condition=data["condition"],
        add=data.get("add"),
        multiply=data.get("multiply"),
        set_value=data.get("set"),
        dimension=data.get("dimension", "all"),
        reason=data.get("reason"),
    )


def _value(data: Mapping[str, Any]) -> SectionValue:
    return SectionValue(
        safety=data.get("safety", 0),
        efficiency=data.get("efficiency", 0),
        accuracy=data.get("accuracy", 0),
        base=data.get("base", 50),
        modifiers=tuple(_modifier(item) for item in data.get("modifiers", [])),
    )


def _data(data: Mapping[str, Any]) -> SectionData:
    raw_filter = data.get("filter")
    include: Tuple[str, ...] = ()
    match: Tuple[Tuple[str, Any], ...] = ()
    if isinstance(raw_filter, list):
        include = tuple(str(item) for item in raw_filter)
    elif isinstance(raw_filter, dict):
        match = tuple(
            (key, tuple(value) if isinstance(value, list) else value)
            for key, value in sorted(raw_filter.items())
        )
    return SectionData(
        source=data["source"],
        fields=_tuple(data.get("fields")),
        include=include,
        match=match,
        sort_by=data.get("sort_by"),
        sort_order=data.get("sort_order", "desc"),
        max_items=data.get("max_items"),
        item_tokens=data.get("item_tokens"),
        empty_behavior=data.get("empty_behavior", "exclude"),
    )


def _template(data: Optional[Mapping[str, Any]]) -> Optional[FormatTemplate]:
    if data is None:
        return None
    return FormatTemplate(
        template=data.get("template"),
        header=data.get("header"),
        footer=data.get("footer"),
        item_template=data.get("item_template"),
        separator=data.get("separator", "\n"),
        empty_template=data.get("empty_template"),
    )


def _section(data: Mapping[str, Any]) -> PrimerSection:
    raw_tokens = data.get("tokens", DEFAULT_FIXED_TOKENS)
    formats = data.get("formats") or {}
    return PrimerSection(
        id=data["id"],
        category=data["category"],
        name=data.get("name", ""),
        description=data.get("description"),
        priority=data.get("priority", 50),
        tokens=None if raw_tokens == "dynamic" else int(raw_tokens),
        value=_value(data.get("value") or {}),
        required=bool(data.get("required", False)),
        required_if=data.get("required_if"),
        capabilities=_tuple(data.get("capabilities")),
        capabilities_all=_tuple(data.get("capabilities_all")),
        depends_on=_tuple(data.get("depends_on")),
        conflicts_with=_tuple(data.get("conflicts_with")),
        data=_data(data["data"]) if data.get("data") else None,
        formats=SectionFormats(
            markdown=_template(formats.get("markdown")),
            compact=_template(formats.get("compact")),
            json=_template(formats.get("json")),
        ),
        tags=_tuple(data.get("tags")),
    )


def _strategy(data: Mapping[str, Any]) -> SelectionStrategy:
    return SelectionStrategy(
        algorithm=data.get("algorithm", "value-optimized"),
        weights=DimensionWeights.from_dict(data.get("weights") or {}),
        presets=tuple(
            (name, DimensionWeights.from_dict(weights))
            for name, weights in sorted((data.get("presets") or {}).items())
        ),
        phases=tuple(
            SelectionPhase(
                name=phase["name"],
                sort=phase.get("sort", "value-per-token"),
                budget_percent=phase.get("budget_percent"),
            )
            for phase in data.get("phases", [])
        ),
        minimum_budget=data.get("minimum_budget", 80),
        dynamic_modifiers_enabled=data.get("dynamic_modifiers_enabled", True),
    )


def check_dependencies(sections: Iterable[PrimerSection]) -> None:
    """Reject duplicate ids, unknown dependencies and dependency cycles."""
    by_id: Dict[str, PrimerSection] = {}
    for section in sections:
        if section.id in by_id:
            raise CatalogError(f"Duplicate section id: {section.id}")
        by_id[section.id] = section

    for section in by_id.values():
        for dep_id in section.depends_on:
            if dep_id not in by_id:
                raise CatalogError(f"Section {section.id} depends on unknown section: {dep_id}")

    done: set = set()
    for start in by_id:
        if start in done:
            continue
        path: List[str] = []
        on_path: set = set()
        stack: List[Tuple[str, int]] = [(start, 0)]
        while stack:
            node, idx = stack.pop()
            if idx == 0:
                path.append(node)
                on_path.add(node)
            deps = by_id[node].depends_on
            if idx < len(deps):
                stack.append((node, idx + 1))
                child = deps[idx]
                if child in on_path:
                    cycle = path[path.index(child):] + [child]
                    raise CatalogError("Dependency cycle: " + " -> ".join(cycle))
                if child not in done:
                    stack.append((child, 0))
                continue
            path.pop()
            on_path.discard(node)
            done.add(node)


def parse_catalog(document: Mapping[str, Any]) -> PrimerCatalog:
    try:
        jsonschema.validate(instance=document, schema=CATALOG_SCHEMA)
    except jsonschema.ValidationError as exc:
        location = "/".join(str(part) for part in exc.absolute_path) or "<root>"
        raise CatalogError(f"Invalid catalog at {location}: {exc.message}") from exc

    sections = tuple(_section(item) for item in document["sections"])
    check_dependencies(sections)

    metadata = document.get("metadata")
    capabilities = document.get("capabilities") or {}
    catalog = PrimerCatalog(
        version=document["version"],
        sections=sections,
        schema=document.get("$schema"),
        metadata=PrimerMetadata(
            name=metadata.get("name"),
            description=metadata.get("description"),
            author=metadata.get("author"),
            license=metadata.get("license"),
            min_acp_version=metadata.get("min_acp_version"),
        )
        if metadata
        else None,
        capabilities=tuple(
            Capability(
                id=info.get("id", key),
                name=info.get("name", key),
                description=info.get("description"),
                tools=_tuple(info.get("tools")),
            )
            for key, info in sorted(capabilities.items())
            if isinstance(info, dict)
        ),
        categories=tuple(
            Category(
                id=item["id"],
                name=item["name"],
                description=item.get("description"),
                priority=item.get("priority", 50),
            )
            for item in document.get("categories", [])
        ),
        selection_strategy=_strategy(document["selection_strategy"])
        if document.get("selection_strategy")
        else None,
        document=json.dumps(document, ensure_ascii=True, sort_keys=True),
    )
    logger.debug("Loaded catalog %s with %d sections", catalog.version, len(sections))
    return catalog


def load_catalog(path: Optional[Union[str, Path]] = None) -> PrimerCatalog:
    catalog_path = Path(path) if path else DEFAULT_CATALOG_PATH
    try:
        document = json.loads(catalog_path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise CatalogError(f"Failed to read catalog {catalog_path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise CatalogError(f"Malformed catalog {catalog_path}: {exc}") from exc
    if not isinstance(document, dict):
        raise CatalogError(f"Catalog {catalog_path} is not a JSON object")
    return parse_catalog(document)
