from __future__ import annotations

from typing import Optional, Tuple

from .budget import EQUALITY_EPSILON
from .state import ProjectState

# Two-character operators come first so ">=" is never read as ">".
OPERATORS: Tuple[str, ...] = (">=", "<=", ">", "<", "==", "!=")


def parse_condition(condition: str) -> Tuple[str, Optional[str], Optional[str]]:
    """Split ``"path op number"`` into its parts; op is None for a bare path."""
    text = condition.strip()
    for op in OPERATORS:
        idx = text.find(op)
        if idx >= 0:
            return text[:idx].strip(), op, text[idx + len(op) :].strip()
    return text, None, None


def compare(actual: float, op: str, expected: float) -> bool:
    if op == ">=":
        return actual >= expected
    if op == "<=":
        return actual <= expected
    if op == ">":
        return actual > expected
    if op == "<":
        return actual < expected
    if op == "==":
        return abs(actual - expected) < EQUALITY_EPSILON
    if op == "!=":
        return abs(actual - expected) >= EQUALITY_EPSILON
    return False


def evaluate_condition(condition: str, state: ProjectState) -> bool:
    path, op, literal = parse_condition(condition or "")
    actual = state.get_value(path) if path else None
    if actual is None:
        return False
    if op is None:
        return actual > 0
    try:
        expected = float(literal)
    except (TypeError, ValueError):
        return False
    return compare(actual, op, expected)
