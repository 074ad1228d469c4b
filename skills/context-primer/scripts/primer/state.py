"""Project state snapshot used for condition evaluation.

The snapshot is a pure function of the cache (plus the optional vars and
attempts documents). Conditions address it through dotted camelCase paths
such as ``constraints.frozenCount``; unknown paths resolve to ``None``.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from typing import Any, Dict, Optional, Tuple

import cache as cache_model

from .sources import entry_point_paths, layer_counts


@dataclass(frozen=True)
class ConstraintCounts:
    frozen_count: int = 0
    restricted_count: int = 0
    approval_count: int = 0
    tests_required_count: int = 0
    docs_required_count: int = 0
    protected_count: int = 0
    total_count: int = 0


@dataclass(frozen=True)
class NamedCounts:
    count: int = 0
    names: Tuple[str, ...] = ()


@dataclass(frozen=True)
class VariableCounts:
    count: int = 0


@dataclass(frozen=True)
class AttemptCounts:
    active_count: int = 0
    total_count: int = 0


@dataclass(frozen=True)
class HackCounts:
    count: int = 0
    expired_count: int = 0


@dataclass(frozen=True)
class EntryPointCounts:
    count: int = 0


@dataclass(frozen=True)
class ProjectStats:
    file_count: int = 0
    symbol_count: int = 0
    line_count: int = 0
    annotation_coverage: float = 0.0


_LEVEL_FIELDS = {
    cache_model.LOCK_FROZEN: "frozen_count",
    cache_model.LOCK_RESTRICTED: "restricted_count",
    cache_model.LOCK_APPROVAL: "approval_count",
    cache_model.LOCK_TESTS: "tests_required_count",
    cache_model.LOCK_DOCS: "docs_required_count",
}


@dataclass(frozen=True)
class ProjectState:
    constraints: ConstraintCounts = field(default_factory=ConstraintCounts)
    domains: NamedCounts = field(default_factory=NamedCounts)
    layers: NamedCounts = field(default_factory=NamedCounts)
    variables: VariableCounts = field(default_factory=VariableCounts)
    attempts: AttemptCounts = field(default_factory=AttemptCounts)
    hacks: HackCounts = field(default_factory=HackCounts)
    entry_points: EntryPointCounts = field(default_factory=EntryPointCounts)
    stats: ProjectStats = field(default_factory=ProjectStats)

    @classmethod
    def from_cache(
        cls,
        cache: Dict[str, Any],
        *,
        variables: Optional[Dict[str, Any]] = None,
        attempts: Optional[Dict[str, Any]] = None,
    ) -> "ProjectState":
        stats = cache_model.stats(cache)
        hacks = cache_model.hacks(cache)
        state = cls(
            constraints=extract_constraints(cache),
            domains=NamedCounts(
                count=len(cache_model.domains(cache)),
                names=tuple(sorted(cache_model.domains(cache))),
            ),
            layers=_named(layer_counts(cache)),
            hacks=HackCounts(
                count=len(hacks),
                expired_count=sum(1 for hack in hacks if hack.get("expired")),
            ),
            entry_points=EntryPointCounts(count=len(entry_point_paths(cache))),
            stats=ProjectStats(
                file_count=len(cache_model.files(cache)),
                symbol_count=len(cache_model.symbols(cache)),
                line_count=int(stats.get("lines") or 0),
                annotation_coverage=float(stats.get("annotation_coverage") or 0.0),
            ),
        )
        if variables:
            entries = variables.get("variables")
            state = state.with_variable_count(len(entries) if isinstance(entries, dict) else 0)
        if attempts:
            entries = attempts.get("attempts")
            entries = entries if isinstance(entries, list) else []
            active = sum(
                1
                for entry in entries
                if isinstance(entry, dict) and entry.get("status", "active") == "active"
            )
            state = state.with_attempts(active, len(entries))
        return state

    def with_variable_count(self, count: int) -> "ProjectState":
        return replace(self, variables=VariableCounts(count=count))

    def with_attempts(self, active: int, total: int) -> "ProjectState":
        return replace(self, attempts=AttemptCounts(active_count=active, total_count=total))

    def get_value(self, path: str) -> Optional[float]:
        getter = _PATHS.get(path.strip())
        if getter is None:
            return None
        return float(getter(self))

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["domains"]["names"] = list(self.domains.names)
        data["layers"]["names"] = list(self.layers.names)
        return data


def _named(counts: Dict[str, int]) -> NamedCounts:
    return NamedCounts(count=len(counts), names=tuple(sorted(counts)))


def extract_constraints(cache: Dict[str, Any]) -> ConstraintCounts:
    totals = {name: 0 for name in _LEVEL_FIELDS.values()}
    total = 0
    for record in cache_model.constraints_by_file(cache).values():
        total += 1
        lock = cache_model.mutation_lock(record)
        if lock is None:
            continue
        field_name = _LEVEL_FIELDS.get(lock[0])
        if field_name:
            totals[field_name] += 1
    return ConstraintCounts(
        protected_count=totals["frozen_count"] + totals["restricted_count"],
        total_count=total,
        **totals,
    )


_PATHS = {
    "constraints.frozenCount": lambda s: s.constraints.frozen_count,
    "constraints.restrictedCount": lambda s: s.constraints.restricted_count,
    "constraints.approvalCount": lambda s: s.constraints.approval_count,
    "constraints.testsRequiredCount": lambda s: s.constraints.tests_required_count,
    "constraints.docsRequiredCount": lambda s: s.constraints.docs_required_count,
    "constraints.protectedCount": lambda s: s.constraints.protected_count,
    "constraints.totalCount": lambda s: s.constraints.total_count,
    "domains.count": lambda s: s.domains.count,
    "layers.count": lambda s: s.layers.count,
    "variables.count": lambda s: s.variables.count,
    "attempts.activeCount": lambda s: s.attempts.active_count,
    "attempts.totalCount": lambda s: s.attempts.total_count,
    "hacks.count": lambda s: s.hacks.count,
    "hacks.expiredCount": lambda s: s.hacks.expired_count,
    "entryPoints.count": lambda s: s.entry_points.count,
    "stats.fileCount": lambda s: s.stats.file_count,
    "stats.symbolCount": lambda s: s.stats.symbol_count,
    "stats.lineCount": lambda s: s.stats.line_count,
    "stats.annotationCoverage": lambda s: s.stats.annotation_coverage,
}
