from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler


def configure_logging(level: str = "INFO", console: Console | None = None) -> None:
    """Route the package loggers through a rich handler at ``level``."""
    handler = RichHandler(console=console, show_path=False, rich_tracebacks=True)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))

    root = logging.getLogger("content_studio")
    root.handlers[:] = [handler]
    root.setLevel(level.upper())
    root.propagate = False
    # httpx logs every request line at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
