"""Utility functions for muxlayout."""

import logging
import math
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.prompt import Confirm


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves rounded up (never to even)."""
    return math.floor(value + 0.5)


def setup_logging(verbose: int = 0, debug: bool = False, console: Console | None = None) -> None:
    """Configure the root logger with a Rich handler.

    Args:
        verbose: Verbosity count; 1 or more enables INFO.
        debug: Enable DEBUG output.
        console: Console to log to. Defaults to stderr.
    """
    if debug:
        level = logging.DEBUG
    elif verbose > 0:
        level = logging.INFO
    else:
        level = logging.WARNING

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_time=debug,
        show_path=debug,
        markup=False,
        rich_tracebacks=debug,
    )
    logging.basicConfig(level=level, format="%(message)s", datefmt="[%X]", handlers=[handler], force=True)


def is_interactive() -> bool:
    """Check if stdin and stdout are attached to a terminal."""
    return sys.stdin.isatty() and sys.stdout.isatty()


def confirm_pane_closure(panes_to_close: list[str], console: Console | None = None) -> bool:
    """Ask the user before closing the other panes of the current window.

    Args:
        panes_to_close: Real pane IDs that would be closed.
        console: Console used for the prompt.

    Returns:
        True if the user confirmed. Always False when not attached to a terminal.
    """
    if not panes_to_close:
        return True
    if not is_interactive():
        return False

    pane_list = ", ".join(panes_to_close)
    return Confirm.ask(
        f"Close {len(panes_to_close)} other pane(s) in the current window ({pane_list})?",
        default=False,
        console=console,
    )


DEFAULT_PATH_MAX_LEN = 50


def compress_path(path: str, max_len: int = DEFAULT_PATH_MAX_LEN) -> str:
    """Compress a file path by replacing home with ~ and truncating from the start.

    Args:
        path: The path to compress.
        max_len: Maximum length before truncation.

    Returns:
        Compressed path with ~ for home directory.
    """
    if not path:
        return ""

    home = str(Path.home())
    if path.startswith(home):
        path = "~" + path[len(home) :]

    if len(path) <= max_len:
        return path

    return "..." + path[-(max_len - 3) :]
