"""Data model for primer generation.

Catalog entries are frozen dataclasses holding tuples so a loaded catalog
cannot be changed by the engine. Per-request values (scored and selected
sections, results) are created fresh for every generation.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .budget import DEFAULT_FIXED_TOKENS, DEFAULT_TOKEN_BUDGET, VALUE_CEILING, VALUE_FLOOR

DIMENSIONS: Tuple[str, ...] = ("safety", "efficiency", "accuracy", "base")
DEFAULT_CAPABILITIES: Tuple[str, ...] = ("shell", "file-read", "file-write")


class OutputFormat(str, Enum):
    MARKDOWN = "markdown"
    COMPACT = "compact"
    JSON = "json"

    @classmethod
    def parse(cls, value: Any) -> "OutputFormat":
        if isinstance(value, OutputFormat):
            return value
        text = str(value or "").strip().lower()
        for member in cls:
            if member.value == text:
                return member
        return cls.MARKDOWN

    @property
    def separator(self) -> str:
        return _FORMAT_SEPARATORS[self]


_FORMAT_SEPARATORS = {
    OutputFormat.MARKDOWN: "\n\n",
    OutputFormat.COMPACT: " | ",
    OutputFormat.JSON: ",\n",
}


@dataclass(frozen=True)
class DimensionWeights:
    safety: float = 1.5
    efficiency: float = 1.0
    accuracy: float = 1.0
    base: float = 1.0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DimensionWeights":
        default = cls()
        return cls(
            **{name: float(data.get(name, getattr(default, name))) for name in DIMENSIONS}
        )

    def to_dict(self) -> Dict[str, float]:
        return {name: getattr(self, name) for name in DIMENSIONS}


class Preset(str, Enum):
    SAFE = "safe"
    EFFICIENT = "efficient"
    ACCURATE = "accurate"
    BALANCED = "balanced"

    @classmethod
    def parse(cls, value: Any) -> "Preset":
        if isinstance(value, Preset):
            return value
        text = str(value or "").strip().lower()
        for member in cls:
            if member.value == text:
                return member
        return cls.BALANCED

    def weights(self) -> DimensionWeights:
        return PRESET_WEIGHTS[self]


PRESET_WEIGHTS: Dict[Preset, DimensionWeights] = {
    Preset.SAFE: DimensionWeights(safety=2.5, efficiency=0.8, accuracy=1.0, base=0.8),
    Preset.EFFICIENT: DimensionWeights(safety=1.2, efficiency=2.0, accuracy=0.9, base=0.8),
    Preset.ACCURATE: DimensionWeights(safety=1.2, efficiency=0.9, accuracy=2.0, base=0.8),
    Preset.BALANCED: DimensionWeights(),
}


@dataclass(frozen=True)
class ValueModifier:
    condition: str
    add: Optional[int] = None
    multiply: Optional[float] = None
    set_value: Optional[int] = None
    dimension: str = "all"
    reason: Optional[str] = None

    def dimensions(self) -> Tuple[str, ...]:
        if self.dimension in DIMENSIONS:
            return (self.dimension,)
        return DIMENSIONS

    def apply_to(self, current: int) -> int:
        value = current
        if self.add is not None:
            value = max(VALUE_FLOOR, min(VALUE_CEILING, value + self.add))
        if self.multiply is not None:
            value = int(value * self.multiply)
        if self.set_value is not None:
            value = self.set_value
        return value


@dataclass(frozen=True)
class SectionValue:
    safety: int = 0
    efficiency: int = 0
    accuracy: int = 0
    base: int = 50
    modifiers: Tuple[ValueModifier, ...] = ()

    def weighted_score(self, weights: DimensionWeights) -> float:
        return (
            self.safety * weights.safety
            + self.efficiency * weights.efficiency
            + self.accuracy * weights.accuracy
            + self.base * weights.base
        )

    def with_modifier(self, modifier: ValueModifier) -> "SectionValue":
        changes = {
            name: modifier.apply_to(getattr(self, name)) for name in modifier.dimensions()
        }
        return replace(self, **changes)

    def dimension_dict(self) -> Dict[str, int]:
        return {name: getattr(self, name) for name in DIMENSIONS}


@dataclass(frozen=True)
class SectionData:
    source: str
    fields: Tuple[str, ...] = ()
    # A list-shaped filter lands in ``include`` (lock levels for constraint
    # sources); a mapping-shaped one lands in ``match`` as (field, accepted).
    include: Tuple[str, ...] = ()
    match: Tuple[Tuple[str, Any], ...] = ()
    sort_by: Optional[str] = None
    sort_order: str = "desc"
    max_items: Optional[int] = None
    item_tokens: Optional[int] = None
    empty_behavior: str = "exclude"


@dataclass(frozen=True)
class FormatTemplate:
    template: Optional[str] = None
    header: Optional[str] = None
    footer: Optional[str] = None
    item_template: Optional[str] = None
    separator: str = "\n"
    empty_template: Optional[str] = None


@dataclass(frozen=True)
class SectionFormats:
    markdown: Optional[FormatTemplate] = None
    compact: Optional[FormatTemplate] = None
    json: Optional[FormatTemplate] = None

    def get(self, output_format: OutputFormat) -> Optional[FormatTemplate]:
        return getattr(self, output_format.value)


@dataclass(frozen=True)
class PrimerSection:
    id: str
    category: str
    name: str = ""
    description: Optional[str] = None
    priority: int = 50
    # None marks a dynamic section whose cost is derived from its data.
    tokens: Optional[int] = DEFAULT_FIXED_TOKENS
    value: SectionValue = field(default_factory=SectionValue)
    required: bool = False
    required_if: Optional[str] = None
    capabilities: Tuple[str, ...] = ()
    capabilities_all: Tuple[str, ...] = ()
    depends_on: Tuple[str, ...] = ()
    conflicts_with: Tuple[str, ...] = ()
    data: Optional[SectionData] = None
    formats: SectionFormats = field(default_factory=SectionFormats)
    tags: Tuple[str, ...] = ()

    @property
    def is_dynamic(self) -> bool:
        return self.tokens is None


@dataclass(frozen=True)
class Category:
    id: str
    name: str
    description: Optional[str] = None
    priority: int = 50


@dataclass(frozen=True)
class Capability:
    id: str
    name: str
    description: Optional[str] = None
    tools: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PrimerMetadata:
    name: Optional[str] = None
    description: Optional[str] = None
    author: Optional[str] = None
    license: Optional[str] = None
    min_acp_version: Optional[str] = None


@dataclass(frozen=True)
class SelectionPhase:
    name: str
    sort: str = "value-per-token"
    budget_percent: Optional[float] = None


@dataclass(frozen=True)
class SelectionStrategy:
    """Declared strategy. Kept for introspection; selection is fixed-phase."""

    algorithm: str = "value-optimized"
    weights: DimensionWeights = field(default_factory=DimensionWeights)
    presets: Tuple[Tuple[str, DimensionWeights], ...] = ()
    phases: Tuple[SelectionPhase, ...] = ()
    minimum_budget: int = 80
    dynamic_modifiers_enabled: bool = True


@dataclass(frozen=True)
class PrimerCatalog:
    version: str
    sections: Tuple[PrimerSection, ...]
    schema: Optional[str] = None
    metadata: Optional[PrimerMetadata] = None
    capabilities: Tuple[Capability, ...] = ()
    categories: Tuple[Category, ...] = ()
    selection_strategy: Optional[SelectionStrategy] = None
    document: str = "{}"

    def section(self, section_id: str) -> Optional[PrimerSection]:
        for section in self.sections:
            if section.id == section_id:
                return section
        return None

    def to_json(self) -> str:
        return json.dumps(json.loads(self.document), ensure_ascii=True, indent=2)


@dataclass
class GeneratePrimerRequest:
    token_budget: int = DEFAULT_TOKEN_BUDGET
    format: OutputFormat = OutputFormat.MARKDOWN
    preset: Preset = Preset.BALANCED
    capabilities: List[str] = field(default_factory=lambda: list(DEFAULT_CAPABILITIES))
    categories: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    force_include: List[str] = field(default_factory=list)
    weights: Optional[DimensionWeights] = None
    modifiers_enabled: bool = True

    def resolved_weights(self) -> DimensionWeights:
        if self.weights is not None:
            return self.weights
        return self.preset.weights()


@dataclass(frozen=True)
class ScoredSection:
    section: PrimerSection
    adjusted_value: SectionValue
    weighted_score: float
    value_per_token: float
    tokens: int
    is_conditionally_required: bool

    @property
    def id(self) -> str:
        return self.section.id


@dataclass(frozen=True)
class SelectionReason:
    kind: str
    detail: Optional[str] = None

    REQUIRED = "required"
    FORCED = "forced"
    CONDITIONAL = "conditional"
    SAFETY_CRITICAL = "safety-critical"
    VALUE_OPTIMIZED = "value-optimized"
    DEPENDENCY = "dependency-of"

    @classmethod
    def required(cls) -> "SelectionReason":
        return cls(cls.REQUIRED)

    @classmethod
    def forced(cls) -> "SelectionReason":
        return cls(cls.FORCED)

    @classmethod
    def conditional(cls, condition: str) -> "SelectionReason":
        return cls(cls.CONDITIONAL, condition)

    @classmethod
    def safety_critical(cls) -> "SelectionReason":
        return cls(cls.SAFETY_CRITICAL)

    @classmethod
    def value_optimized(cls) -> "SelectionReason":
        return cls(cls.VALUE_OPTIMIZED)

    @classmethod
    def dependency_of(cls, section_id: str) -> "SelectionReason":
        return cls(cls.DEPENDENCY, section_id)

    @property
    def label(self) -> str:
        if self.detail:
            return f"{self.kind}: {self.detail}"
        return self.kind


@dataclass(frozen=True)
class SelectedSection:
    scored: ScoredSection
    reason: SelectionReason

    @property
    def id(self) -> str:
        return self.scored.section.id

    @property
    def section(self) -> PrimerSection:
        return self.scored.section

    @property
    def tokens(self) -> int:
        return self.scored.tokens

    @property
    def score(self) -> float:
        return self.scored.weighted_score


@dataclass
class SelectionResult:
    selected: List[SelectedSection]
    tokens_used: int
    excluded_count: int

    def ids(self) -> List[str]:
        return [item.id for item in self.selected]


@dataclass
class PrimerResult:
    content: str
    sections: List[SelectedSection]
    tokens_used: int
    token_budget: int
    excluded_count: int
    rendered_tokens: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "tokens_used": self.tokens_used,
            "token_budget": self.token_budget,
            "rendered_tokens": self.rendered_tokens,
            "sections_included": len(self.sections),
            "sections_excluded": self.excluded_count,
            "sections": [
                {
                    "id": item.id,
                    "category": item.section.category,
                    "tokens": item.tokens,
                    "score": round(item.score, 3),
                    "reason": item.reason.label,
                }
                for item in self.sections
            ],
        }
