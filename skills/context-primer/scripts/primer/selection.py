"""Phase-based section selection under a token budget.

Phases run in a fixed order and never revisit a decision:

1. required sections and forced includes, in catalog order
2. conditionally required sections (``required_if`` true now)
3. safety-critical sections (adjusted safety >= 80), capped at 40% of the
   budget that remains when the phase starts
4. everything else, greedily by value per token

Dependencies are pulled in depth-first ahead of the section that needs
them. Conflicts hold in both directions: once a section is included, nothing
it names in ``conflicts_with`` and nothing naming it there can join later.
"""
from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence, Set

from .budget import SAFETY_BUDGET_RATIO, SAFETY_THRESHOLD
from .types import (
    GeneratePrimerRequest,
    ScoredSection,
    SelectedSection,
    SelectionReason,
    SelectionResult,
)


def is_capability_compatible(item: ScoredSection, capabilities: Set[str]) -> bool:
    section = item.section
    if section.capabilities_all:
        return all(cap in capabilities for cap in section.capabilities_all)
    if section.capabilities:
        return any(cap in capabilities for cap in section.capabilities)
    return True


def is_category_compatible(item: ScoredSection, categories: Optional[Sequence[str]]) -> bool:
    if categories is None:
        return True
    return item.section.category in categories


def is_tag_compatible(item: ScoredSection, tags: Optional[Sequence[str]]) -> bool:
    if tags is None:
        return True
    return any(tag in tags for tag in item.section.tags)


def eligible_sections(
    scored: Iterable[ScoredSection], request: GeneratePrimerRequest
) -> List[ScoredSection]:
    capabilities = set(request.capabilities)
    return [
        item
        for item in scored
        if is_capability_compatible(item, capabilities)
        and is_category_compatible(item, request.categories)
        and is_tag_compatible(item, request.tags)
    ]


class _SelectionRun:
    def __init__(self, eligible: List[ScoredSection], budget: int) -> None:
        self.eligible = eligible
        self.by_id: Dict[str, ScoredSection] = {}
        for item in eligible:
            self.by_id.setdefault(item.id, item)
        self.budget = budget
        self.selected: List[SelectedSection] = []
        self.tokens_used = 0
        self.included: Set[str] = set()
        self.excluded: Set[str] = set()

    def available(self, item: ScoredSection) -> bool:
        if item.id in self.included or item.id in self.excluded:
            return False
        return not any(other in self.included for other in item.section.conflicts_with)

    def fits(self, item: ScoredSection) -> bool:
        return self.tokens_used + item.tokens <= self.budget

    def remaining(self) -> List[ScoredSection]:
        return [item for item in self.eligible if self.available(item)]

    def _append(self, item: ScoredSection, reason: SelectionReason) -> None:
        self.selected.append(SelectedSection(scored=item, reason=reason))
        self.tokens_used += item.tokens
        self.included.add(item.id)
        self.excluded.update(item.section.conflicts_with)

    def include_dependencies(self, item: ScoredSection, visiting: Set[str]) -> bool:
        """Include ``item``'s dependency chain; False if any link is missing."""
        for dep_id in item.section.depends_on:
            if dep_id in self.included:
                continue
            dep = self.by_id.get(dep_id)
            if dep is None or not self.available(dep) or dep_id in visiting:
                return False
            visiting.add(dep_id)
            satisfied = self.include_dependencies(dep, visiting)
            visiting.discard(dep_id)
            if not satisfied or not self.available(dep) or not self.fits(dep):
                return False
            self._append(dep, SelectionReason.dependency_of(item.id))
        return True

    def try_include(self, item: ScoredSection, reason: SelectionReason) -> bool:
        if not self.available(item):
            return False
        if not self.include_dependencies(item, {item.id}):
            return False
        if not self.available(item) or not self.fits(item):
            return False
        self._append(item, reason)
        return True


def select_sections(
    scored: Sequence[ScoredSection], request: GeneratePrimerRequest
) -> SelectionResult:
    budget = max(0, int(request.token_budget))
    eligible = eligible_sections(scored, request)
    run = _SelectionRun(eligible, budget)
    forced = set(request.force_include)

    # Phase 1: required and forced.
    for item in [s for s in eligible if s.section.required or s.id in forced]:
        reason = SelectionReason.forced() if item.id in forced else SelectionReason.required()
        run.try_include(item, reason)

    # Phase 2: conditionally required.
    for item in [s for s in eligible if s.is_conditionally_required and s.id not in run.included]:
        condition = item.section.required_if or "condition met"
        run.try_include(item, SelectionReason.conditional(condition))

    # Phase 3: safety-critical, capped once at phase entry.
    safety_budget = int((budget - run.tokens_used) * SAFETY_BUDGET_RATIO)
    safety_tokens = 0
    safety_critical = sorted(
        (s for s in run.remaining() if s.adjusted_value.safety >= SAFETY_THRESHOLD),
        key=lambda s: (-s.adjusted_value.safety, -s.weighted_score),
    )
    for item in safety_critical:
        if safety_tokens >= safety_budget:
            break
        if not run.available(item) or not run.fits(item):
            continue
        before = run.tokens_used
        if run.try_include(item, SelectionReason.safety_critical()):
            safety_tokens += run.tokens_used - before

    # Phase 4: value per token.
    by_value = sorted(run.remaining(), key=lambda s: -s.value_per_token)
    for item in by_value:
        if run.tokens_used >= budget:
            break
        if not run.available(item) or not run.fits(item):
            continue
        run.try_include(item, SelectionReason.value_optimized())

    return SelectionResult(
        selected=run.selected,
        tokens_used=run.tokens_used,
        excluded_count=len(eligible) - len(run.selected),
    )
