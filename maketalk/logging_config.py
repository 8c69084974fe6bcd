"""
Logging configuration for the maketalk CLI.

All modules log through logging.getLogger(__name__); this module only
decides where records go. Console output shares the Rich console used by
the CLI so log lines and progress bars do not tear each other apart.
"""

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

# Third-party loggers that are noisy at INFO
QUIET_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "asyncio")


def setup_logging(level: str = "INFO", console: Optional[Console] = None) -> None:
    """
    Configure root logging with a Rich handler.

    Args:
        level: Root log level name (DEBUG, INFO, ...)
        console: Console to render into (default: a new stderr console)
    """
    root_level = getattr(logging, level.upper(), logging.INFO)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(root_level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(root_level, logging.WARNING))
