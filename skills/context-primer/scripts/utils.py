from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"
LOG_LEVELS = ("debug", "info", "warning", "error")


def progress(message: str, done: bool = False) -> None:
    """Print a progress message to stderr (doesn't interfere with stdout output)."""
    if done:
        print(f"  [done] {message}", file=sys.stderr)
    else:
        print(f"  [....] {message}", file=sys.stderr)


def configure_logging(level: str = "warning") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format=LOG_FORMAT,
        stream=sys.stderr,
    )
