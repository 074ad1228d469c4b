from .budget import configure_tokenizer, estimate_tokens
from .catalog import CatalogError, load_catalog, parse_catalog
from .conditions import evaluate_condition
from .generator import PrimerGenerator, build_request
from .rendering import PrimerRenderer, RenderError, render_sections
from .scoring import resolve_token_count, score_section, score_sections
from .selection import eligible_sections, select_sections
from .state import ProjectState
from .types import *  # re-export data model

__all__ = [name for name in globals().keys() if not name.startswith("_")]
