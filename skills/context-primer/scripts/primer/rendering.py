from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from jinja2 import Environment, TemplateError

from .sources import extract_items
from .types import FormatTemplate, OutputFormat, PrimerSection, SectionData, SelectedSection

logger = logging.getLogger(__name__)

EMPTY_EXCLUDE = "exclude"
EMPTY_PLACEHOLDER = "placeholder"
EMPTY_ERROR = "error"


class RenderError(Exception):
    pass


class MissingFormatError(RenderError):
    def __init__(self, section_id: str, output_format: OutputFormat) -> None:
        super().__init__(f"Missing {output_format.value} template for section: {section_id}")


class EmptyDataError(RenderError):
    def __init__(self, section_id: str) -> None:
        super().__init__(f"Empty data for section: {section_id}")


def _environment() -> Environment:
    return Environment(autoescape=False, keep_trailing_newline=True)


class PrimerRenderer:
    def __init__(self, output_format: OutputFormat) -> None:
        self.format = output_format
        self.env = _environment()

    def render(self, sections: Iterable[SelectedSection], cache: Dict[str, Any]) -> str:
        rendered: List[str] = []
        for item in sections:
            text = self._render_isolated(item.section, cache)
            if text:
                rendered.append(text)
        body = self.format.separator.join(rendered)
        if self.format is OutputFormat.JSON:
            return f"[\n{body}\n]"
        return body

    def _render_isolated(self, section: PrimerSection, cache: Dict[str, Any]) -> str:
        try:
            return self.render_section(section, cache)
        except MissingFormatError as exc:
            logger.debug("%s", exc)
        except RenderError as exc:
            logger.warning("Dropping section %s: %s", section.id, exc)
        return ""

    def render_section(self, section: PrimerSection, cache: Dict[str, Any]) -> str:
        template = section.formats.get(self.format)
        if template is None:
            raise MissingFormatError(section.id, self.format)
        if section.data is not None:
            return self._render_data_section(section, template, section.data, cache)
        return template.template or ""

    def _render_data_section(
        self,
        section: PrimerSection,
        template: FormatTemplate,
        data: SectionData,
        cache: Dict[str, Any],
    ) -> str:
        items = extract_items(cache, data)
        if not items:
            if data.empty_behavior == EMPTY_PLACEHOLDER:
                return template.empty_template or ""
            if data.empty_behavior == EMPTY_ERROR:
                raise EmptyDataError(section.id)
            return ""

        rendered_items: List[str] = []
        if template.item_template:
            for item in items:
                rendered_items.append(self.render_template(template.item_template, item))

        parts = [template.header or "", template.separator.join(rendered_items), template.footer or ""]
        return "".join(parts)

    def render_template(self, source: str, data: Dict[str, Any]) -> str:
        try:
            return self.env.from_string(source).render(data)
        except TemplateError as exc:
            raise RenderError(f"Template error: {exc}") from exc
        except (TypeError, ValueError, AttributeError, LookupError, ArithmeticError) as exc:
            # expressions are evaluated against item data at render time
            raise RenderError(f"Template evaluation failed: {exc}") from exc


def render_sections(
    sections: Iterable[SelectedSection],
    cache: Dict[str, Any],
    output_format: Optional[OutputFormat] = None,
) -> str:
    return PrimerRenderer(output_format or OutputFormat.MARKDOWN).render(sections, cache)
