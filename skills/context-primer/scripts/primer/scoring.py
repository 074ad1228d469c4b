from __future__ import annotations

from typing import Iterable, List

from .budget import (
    DEFAULT_DYNAMIC_TOKENS,
    DEFAULT_ITEM_TOKENS,
    DEFAULT_SOURCE_ITEMS,
    DYNAMIC_BASE_TOKENS,
)
from .conditions import evaluate_condition
from .sources import (
    SOURCE_ATTEMPTS,
    SOURCE_CONSTRAINTS,
    SOURCE_DOMAINS,
    SOURCE_ENTRY_POINTS,
    SOURCE_HACKS,
    SOURCE_LAYERS,
    SOURCE_VARIABLES,
)
from .state import ProjectState
from .types import DimensionWeights, PrimerSection, ScoredSection, SectionValue

_SOURCE_COUNTERS = {
    SOURCE_DOMAINS: lambda s: s.domains.count,
    SOURCE_LAYERS: lambda s: s.layers.count,
    SOURCE_CONSTRAINTS: lambda s: s.constraints.protected_count,
    SOURCE_VARIABLES: lambda s: s.variables.count,
    SOURCE_ATTEMPTS: lambda s: s.attempts.active_count,
    SOURCE_HACKS: lambda s: s.hacks.count,
    SOURCE_ENTRY_POINTS: lambda s: s.entry_points.count,
}


def adjusted_value(
    section: PrimerSection, state: ProjectState, modifiers_enabled: bool = True
) -> SectionValue:
    value = section.value
    if not modifiers_enabled:
        return value
    for modifier in section.value.modifiers:
        if evaluate_condition(modifier.condition, state):
            value = value.with_modifier(modifier)
    return value


def estimate_item_count(source: str, max_items, state: ProjectState) -> int:
    counter = _SOURCE_COUNTERS.get(source)
    estimated = counter(state) if counter else DEFAULT_SOURCE_ITEMS
    if max_items is not None:
        estimated = min(estimated, max_items)
    return estimated


def resolve_token_count(section: PrimerSection, state: ProjectState) -> int:
    if not section.is_dynamic:
        return section.tokens
    data = section.data
    if data is None:
        return DEFAULT_DYNAMIC_TOKENS
    item_count = estimate_item_count(data.source, data.max_items, state)
    item_tokens = data.item_tokens if data.item_tokens is not None else DEFAULT_ITEM_TOKENS
    return DYNAMIC_BASE_TOKENS + item_count * item_tokens


def score_section(
    section: PrimerSection,
    state: ProjectState,
    weights: DimensionWeights,
    modifiers_enabled: bool = True,
) -> ScoredSection:
    value = adjusted_value(section, state, modifiers_enabled)
    weighted = value.weighted_score(weights)
    tokens = resolve_token_count(section, state)
    conditionally_required = bool(section.required_if) and evaluate_condition(
        section.required_if, state
    )
    return ScoredSection(
        section=section,
        adjusted_value=value,
        weighted_score=weighted,
        value_per_token=weighted / tokens if tokens > 0 else 0.0,
        tokens=tokens,
        is_conditionally_required=conditionally_required,
    )


def score_sections(
    sections: Iterable[PrimerSection],
    state: ProjectState,
    weights: DimensionWeights,
    modifiers_enabled: bool = True,
) -> List[ScoredSection]:
    return [score_section(section, state, weights, modifiers_enabled) for section in sections]
