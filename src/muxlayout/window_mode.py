"""Window mode resolution."""

from typing import Literal

from muxlayout.config import WindowMode
from muxlayout.errors import ErrorCode, MuxLayoutError

WindowModeSource = Literal["cli", "preset", "defaults", "default"]


def determine_cli_window_mode(current_window: bool, new_window: bool) -> WindowMode | None:
    """Turn the mutually exclusive CLI flags into a window mode.

    Raises:
        MuxLayoutError: WINDOW_MODE_CONFLICT when both flags are set.
    """
    if current_window and new_window:
        raise MuxLayoutError(
            ErrorCode.WINDOW_MODE_CONFLICT,
            "Cannot use --current-window and --new-window at the same time",
        )
    if current_window:
        return WindowMode.CURRENT_WINDOW
    if new_window:
        return WindowMode.NEW_WINDOW
    return None


def resolve_window_mode(
    cli: WindowMode | None = None,
    preset: WindowMode | None = None,
    defaults: WindowMode | None = None,
) -> tuple[WindowMode, WindowModeSource]:
    """Resolve the window mode by precedence: CLI, preset, config defaults, new-window.

    Returns:
        Tuple of (mode, where it came from).
    """
    if cli is not None:
        return cli, "cli"
    if preset is not None:
        return preset, "preset"
    if defaults is not None:
        return defaults, "defaults"
    return WindowMode.NEW_WINDOW, "default"
