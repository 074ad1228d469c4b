#!/usr/bin/env python3
"""Context primer CLI: generate budgeted primers and query the code cache."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import lookups
from _fs import safe_preview_text, write_json, write_text, workspace_root
from cache import CacheError, load_cache, load_optional_json
from lookups import LookupFailure
from primer import (
    DEFAULT_CAPABILITIES,
    CatalogError,
    OutputFormat,
    Preset,
    PrimerGenerator,
    ProjectState,
    build_request,
    configure_tokenizer,
)
from primer.budget import DEFAULT_TOKEN_BUDGET
from utils import LOG_LEVELS, configure_logging, progress
from .config import (
    parse_csv,
    resolve_attempts_path,
    resolve_cache_path,
    resolve_out_path,
    resolve_vars_path,
)

logger = logging.getLogger(__name__)

LOOKUP_COMMANDS = (
    "architecture",
    "file",
    "symbol",
    "domain",
    "constraints",
    "hotpaths",
    "context",
)


def emit_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=True, indent=2))


def emit_error(message: str) -> int:
    print(json.dumps({"error": message}, ensure_ascii=True), file=sys.stderr)
    return 2


def load_inputs(args: argparse.Namespace) -> Dict[str, Any]:
    repo = Path(args.repo).resolve()
    cache_path = resolve_cache_path(repo, args.cache)
    logger.debug("Loading cache from %s", cache_path)
    return {
        "cache": load_cache(cache_path),
        "variables": load_optional_json(resolve_vars_path(repo, args.vars)),
        "attempts": load_optional_json(resolve_attempts_path(repo, args.attempts)),
    }


def run_primer(args: argparse.Namespace) -> int:
    configure_tokenizer(args.precise_tokens)
    generator = PrimerGenerator.from_path(args.catalog)
    inputs = load_inputs(args)
    request = build_request(
        token_budget=args.budget,
        output_format=args.format,
        preset=args.preset,
        capabilities=parse_csv(args.capabilities),
        categories=parse_csv(args.categories),
        tags=parse_csv(args.tags),
        force_include=parse_csv(args.force),
        modifiers_enabled=not args.no_modifiers,
    )
    if args.out:
        progress(f"Generating primer ({request.token_budget} tokens, {request.preset.value})")
    result = generator.generate(
        inputs["cache"],
        request,
        variables=inputs["variables"],
        attempts=inputs["attempts"],
    )

    if args.out:
        out_path = resolve_out_path(args.out, workspace_root=workspace_root())
        if args.json:
            write_json(out_path, result.to_dict())
        else:
            write_text(out_path, result.content)
        progress(
            f"{len(result.sections)} sections, {result.tokens_used}/{result.token_budget} tokens",
            done=True,
        )
        print(f"Primer: {out_path}", file=sys.stderr)
        print(safe_preview_text(result.content))
        return 0

    if args.json:
        emit_json(result.to_dict())
    else:
        print(result.content)
    return 0


def run_sections(args: argparse.Namespace) -> int:
    generator = PrimerGenerator.from_path(args.catalog)
    rows: List[Dict[str, Any]] = []
    for section in generator.sections:
        rows.append(
            {
                "id": section.id,
                "category": section.category,
                "tokens": "dynamic" if section.is_dynamic else section.tokens,
                "required": section.required,
                "required_if": section.required_if,
            }
        )
    emit_json(rows)
    return 0


def run_state(args: argparse.Namespace) -> int:
    inputs = load_inputs(args)
    state = ProjectState.from_cache(
        inputs["cache"], variables=inputs["variables"], attempts=inputs["attempts"]
    )
    emit_json(state.to_dict())
    return 0


def run_var(args: argparse.Namespace) -> int:
    repo = Path(args.repo).resolve()
    variables = load_optional_json(resolve_vars_path(repo, args.vars))
    emit_json(lookups.expand_variable(variables, args.name))
    return 0


def run_lookup(args: argparse.Namespace) -> int:
    cache = load_inputs(args)["cache"]
    if args.command == "architecture":
        result: Any = lookups.architecture(cache)
    elif args.command == "file":
        result = lookups.file_context(cache, args.path)
    elif args.command == "symbol":
        result = lookups.symbol_context(cache, args.name)
    elif args.command == "domain":
        result = lookups.domain_files(cache, args.name)
    elif args.command == "constraints":
        result = lookups.check_constraints(cache, args.path)
    elif args.command == "hotpaths":
        result = lookups.hotpaths(cache, limit=args.limit)
    else:
        result = lookups.operation_context(
            cache, args.operation, args.target, find_usages=args.find_usages
        )
    emit_json(result)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Token-budgeted context primers")
    parser.add_argument("--repo", default=".", help="Repo root (default: .)")
    parser.add_argument(
        "--cache", default=None, help="Cache path (default: <repo>/.acp/acp.cache.json)"
    )
    parser.add_argument(
        "--vars", default=None, help="Vars path (default: <repo>/.acp/acp.vars.json)"
    )
    parser.add_argument(
        "--attempts",
        default=None,
        help="Attempts path (default: <repo>/.acp/acp.attempts.json)",
    )
    parser.add_argument("--log-level", choices=LOG_LEVELS, default="warning")

    subparsers = parser.add_subparsers(dest="command")

    primer_parser = subparsers.add_parser("primer", help="Generate a primer")
    primer_parser.add_argument(
        "--budget", type=int, default=DEFAULT_TOKEN_BUDGET, help="Token budget"
    )
    primer_parser.add_argument(
        "--format",
        default=OutputFormat.MARKDOWN.value,
        help="markdown, compact or json (unknown values fall back to markdown)",
    )
    primer_parser.add_argument(
        "--preset",
        default=Preset.BALANCED.value,
        help="safe, efficient, accurate or balanced",
    )
    primer_parser.add_argument(
        "--capabilities",
        default=",".join(DEFAULT_CAPABILITIES),
        help="Comma-separated agent capabilities",
    )
    primer_parser.add_argument("--categories", default=None, help="Comma-separated categories")
    primer_parser.add_argument("--tags", default=None, help="Comma-separated tags")
    primer_parser.add_argument(
        "--force", default=None, help="Comma-separated section ids to always include"
    )
    primer_parser.add_argument("--catalog", default=None, help="Custom section catalog")
    primer_parser.add_argument(
        "--no-modifiers", action="store_true", help="Disable conditional value modifiers"
    )
    primer_parser.add_argument(
        "--precise-tokens",
        action="store_true",
        help="Measure rendered tokens with tiktoken",
    )
    primer_parser.add_argument("--json", action="store_true", help="Emit result metadata")
    primer_parser.add_argument(
        "--out", default=None, help="Write primer under workspace/ and print a preview"
    )

    sections_parser = subparsers.add_parser("sections", help="List catalog sections")
    sections_parser.add_argument("--catalog", default=None, help="Custom section catalog")

    subparsers.add_parser("state", help="Print the project state snapshot")
    subparsers.add_parser("architecture", help="Project overview")

    file_parser = subparsers.add_parser("file", help="File context")
    file_parser.add_argument("path")

    symbol_parser = subparsers.add_parser("symbol", help="Symbol with callers/callees")
    symbol_parser.add_argument("name")

    domain_parser = subparsers.add_parser("domain", help="Files in a domain")
    domain_parser.add_argument("name")

    constraints_parser = subparsers.add_parser("constraints", help="Constraints for a file")
    constraints_parser.add_argument("path")

    hotpaths_parser = subparsers.add_parser("hotpaths", help="Most-called symbols")
    hotpaths_parser.add_argument("--limit", type=int, default=lookups.HOTPATH_LIMIT)

    var_parser = subparsers.add_parser("var", help="Expand a variable reference")
    var_parser.add_argument("name")

    context_parser = subparsers.add_parser("context", help="Operation-specific context")
    context_parser.add_argument("operation", help="create, modify, debug or explore")
    context_parser.add_argument("target", nargs="?", default=None)
    context_parser.add_argument("--find-usages", action="store_true")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)
    if not args.command:
        parser.print_help()
        return 1

    try:
        if args.command == "primer":
            return run_primer(args)
        if args.command == "sections":
            return run_sections(args)
        if args.command == "state":
            return run_state(args)
        if args.command == "var":
            return run_var(args)
        if args.command in LOOKUP_COMMANDS:
            return run_lookup(args)
    except (CacheError, CatalogError, LookupFailure) as exc:
        return emit_error(str(exc))

    parser.print_help()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
