"""Logging setup for the CLI.

Core modules log through `logging.getLogger(__name__)`; the CLI decides where
records go. Records are rendered by rich on the same console as the output.
"""

from __future__ import annotations

import logging

from rich.logging import RichHandler

from wgfops.cli.common.output import console


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=verbose, rich_tracebacks=True)],
        force=True,
    )
    # engine echo stays off even in verbose mode
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
