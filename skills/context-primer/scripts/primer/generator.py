from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from .budget import estimate_tokens
from .catalog import load_catalog
from .rendering import PrimerRenderer
from .scoring import score_sections
from .selection import select_sections
from .state import ProjectState
from .types import (
    GeneratePrimerRequest,
    OutputFormat,
    Preset,
    PrimerCatalog,
    PrimerResult,
    PrimerSection,
)

logger = logging.getLogger(__name__)


class PrimerGenerator:
    """Score, select and render catalog sections for one cache snapshot.

    The generator only holds the immutable catalog, so a single instance can
    serve concurrent requests as long as each caller passes a cache that is
    not being rewritten underneath it.
    """

    def __init__(self, catalog: PrimerCatalog) -> None:
        self.catalog = catalog

    @classmethod
    def from_path(cls, path: Optional[Union[str, Path]] = None) -> "PrimerGenerator":
        return cls(load_catalog(path))

    @property
    def sections(self) -> Tuple[PrimerSection, ...]:
        return self.catalog.sections

    def defaults_json(self) -> str:
        return self.catalog.to_json()

    def generate(
        self,
        cache: Dict[str, Any],
        request: Optional[GeneratePrimerRequest] = None,
        *,
        variables: Optional[Dict[str, Any]] = None,
        attempts: Optional[Dict[str, Any]] = None,
    ) -> PrimerResult:
        request = request or GeneratePrimerRequest()
        state = ProjectState.from_cache(cache, variables=variables, attempts=attempts)
        scored = score_sections(
            self.catalog.sections,
            state,
            request.resolved_weights(),
            request.modifiers_enabled,
        )
        selection = select_sections(scored, request)
        content = PrimerRenderer(request.format).render(selection.selected, cache)
        logger.debug(
            "Selected %d sections (%d/%d tokens, %d excluded)",
            len(selection.selected),
            selection.tokens_used,
            request.token_budget,
            selection.excluded_count,
        )
        return PrimerResult(
            content=content,
            sections=selection.selected,
            tokens_used=selection.tokens_used,
            token_budget=request.token_budget,
            excluded_count=selection.excluded_count,
            rendered_tokens=estimate_tokens(content),
        )

    def generate_with_budget(self, cache: Dict[str, Any], budget: int) -> PrimerResult:
        return self.generate(cache, GeneratePrimerRequest(token_budget=budget))

    def generate_with_format(
        self, cache: Dict[str, Any], budget: int, output_format: Union[str, OutputFormat]
    ) -> PrimerResult:
        request = GeneratePrimerRequest(
            token_budget=budget, format=OutputFormat.parse(output_format)
        )
        return self.generate(cache, request)

    def generate_with_preset(
        self, cache: Dict[str, Any], budget: int, preset: Union[str, Preset]
    ) -> PrimerResult:
        request = GeneratePrimerRequest(token_budget=budget, preset=Preset.parse(preset))
        return self.generate(cache, request)


def build_request(
    *,
    token_budget: int,
    output_format: Any = OutputFormat.MARKDOWN,
    preset: Any = Preset.BALANCED,
    capabilities=None,
    categories=None,
    tags=None,
    force_include=None,
    modifiers_enabled: bool = True,
) -> GeneratePrimerRequest:
    """Build a request from loosely typed inputs, falling back to defaults."""
    request = GeneratePrimerRequest(
        token_budget=max(0, int(token_budget)),
        format=OutputFormat.parse(output_format),
        preset=Preset.parse(preset),
        categories=list(categories) if categories is not None else None,
        tags=list(tags) if tags is not None else None,
        force_include=list(force_include or []),
        modifiers_enabled=modifiers_enabled,
    )
    if capabilities is not None:
        request = replace(request, capabilities=list(capabilities))
    return request
