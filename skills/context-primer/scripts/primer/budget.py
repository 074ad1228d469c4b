from __future__ import annotations

import re

_TOKENIZER = None
_USE_PRECISE_TOKENS = False
_TOKEN_SPLIT_RE = re.compile(r"[A-Za-z0-9_]+|[^\s]")

DEFAULT_TOKEN_BUDGET = 4000

# Dynamic sections: header allowance plus per-item cost.
DYNAMIC_BASE_TOKENS = 15
DEFAULT_ITEM_TOKENS = 10
DEFAULT_SOURCE_ITEMS = 5
# Cost assumed for a dynamic section that declares no data binding.
DEFAULT_DYNAMIC_TOKENS = 30
DEFAULT_FIXED_TOKENS = 30

VALUE_FLOOR = 0
VALUE_CEILING = 200

SAFETY_THRESHOLD = 80
SAFETY_BUDGET_RATIO = 0.4

EQUALITY_EPSILON = 0.001


def configure_tokenizer(precise: bool) -> None:
    global _TOKENIZER, _USE_PRECISE_TOKENS
    _USE_PRECISE_TOKENS = bool(precise)
    if not _USE_PRECISE_TOKENS or _TOKENIZER is not None:
        return
    import tiktoken

    _TOKENIZER = tiktoken.get_encoding("cl100k_base")


def precise_tokens_enabled() -> bool:
    return _USE_PRECISE_TOKENS and _TOKENIZER is not None


def estimate_tokens(text: str) -> int:
    if not text:
        return 0
    if precise_tokens_enabled():
        return max(1, len(_TOKENIZER.encode(text)))
    tokens = _TOKEN_SPLIT_RE.findall(text)
    return max(1, len(tokens))
