"""Error types and user-facing error formatting for muxlayout."""

from enum import StrEnum
from typing import Literal

ErrorKind = Literal["compile", "plan", "emit", "execution"]


class ErrorCode(StrEnum):
    """Stable error codes surfaced to callers."""

    # Preset compilation
    PRESET_PARSE_ERROR = "PRESET_PARSE_ERROR"
    PRESET_INVALID_DOCUMENT = "PRESET_INVALID_DOCUMENT"
    PRESET_INVALID_FIELD = "PRESET_INVALID_FIELD"
    PRESET_LAYOUT_COMMAND_CONFLICT = "PRESET_LAYOUT_COMMAND_CONFLICT"
    LAYOUT_INVALID_NODE = "LAYOUT_INVALID_NODE"
    LAYOUT_INVALID_ORIENTATION = "LAYOUT_INVALID_ORIENTATION"
    LAYOUT_PANES_MISSING = "LAYOUT_PANES_MISSING"
    LAYOUT_RATIO_MISSING = "LAYOUT_RATIO_MISSING"
    LAYOUT_RATIO_MISMATCH = "LAYOUT_RATIO_MISMATCH"
    RATIO_INVALID_VALUE = "RATIO_INVALID_VALUE"
    TERMINAL_INVALID_FIELD = "TERMINAL_INVALID_FIELD"

    # Planning and emission
    FOCUS_CONFLICT = "FOCUS_CONFLICT"
    NO_TERMINAL_PANES = "NO_TERMINAL_PANES"
    EMIT_INVALID_PLAN = "EMIT_INVALID_PLAN"

    # Execution
    INVALID_PLAN = "INVALID_PLAN"
    INVALID_PANE = "INVALID_PANE"
    SPLIT_SIZE_RESOLUTION_FAILED = "SPLIT_SIZE_RESOLUTION_FAILED"
    TEMPLATE_TOKEN_ERROR = "TEMPLATE_TOKEN_ERROR"
    TERMINAL_COMMAND_FAILED = "TERMINAL_COMMAND_FAILED"
    USER_CANCELLED = "USER_CANCELLED"

    # Environment
    NOT_IN_TMUX_SESSION = "NOT_IN_TMUX_SESSION"
    TMUX_NOT_FOUND = "TMUX_NOT_FOUND"
    UNSUPPORTED_TMUX_VERSION = "UNSUPPORTED_TMUX_VERSION"
    WEZTERM_NOT_FOUND = "WEZTERM_NOT_FOUND"
    UNSUPPORTED_WEZTERM_VERSION = "UNSUPPORTED_WEZTERM_VERSION"
    BACKEND_NOT_FOUND = "BACKEND_NOT_FOUND"

    # Configuration and CLI
    CONFIG_NOT_FOUND = "CONFIG_NOT_FOUND"
    CONFIG_PARSE_ERROR = "CONFIG_PARSE_ERROR"
    CONFIG_PERMISSION_ERROR = "CONFIG_PERMISSION_ERROR"
    INVALID_CONFIG = "INVALID_CONFIG"
    PRESET_NOT_FOUND = "PRESET_NOT_FOUND"
    WINDOW_MODE_CONFLICT = "WINDOW_MODE_CONFLICT"


class MuxLayoutError(Exception):
    """Base error carrying a stable code and a details bag."""

    def __init__(self, code: str, message: str, details: dict[str, object] | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details: dict[str, object] = dict(details or {})


class CoreError(MuxLayoutError):
    """Error raised by the layout pipeline or the plan execution engine.

    Attributes:
        kind: Phase that produced the error (compile, plan, emit, execution).
        path: Document path, virtual pane ID or step ID the error refers to.
        source: Label of the preset document, used for attribution only.
    """

    def __init__(
        self,
        kind: ErrorKind,
        code: str,
        message: str,
        path: str | None = None,
        source: str | None = None,
        details: dict[str, object] | None = None,
    ) -> None:
        super().__init__(code, message, details)
        self.kind = kind
        self.path = path
        self.source = source

    def __repr__(self) -> str:
        return f"CoreError(kind={self.kind!r}, code={self.code!r}, path={self.path!r}, message={self.message!r})"


class ConfigError(MuxLayoutError):
    """Error raised while locating, reading or validating configuration."""


class EnvironmentCheckError(MuxLayoutError):
    """Multiplexer binary, version or session prerequisites are not met."""


_INSTALL_HINTS = {
    "tmux": [
        "  - macOS: brew install tmux",
        "  - Ubuntu/Debian: sudo apt-get install tmux",
        "  - Fedora: sudo dnf install tmux",
    ],
    "wezterm": [
        "  - macOS: brew install --cask wezterm",
        "  - Ubuntu/Debian: sudo apt-get install wezterm",
        "  - Fedora: sudo dnf install wezterm",
    ],
}


def _hint_lines(error: MuxLayoutError) -> list[str]:
    """Build the per-code hint lines appended to an error message."""
    details = error.details
    code = error.code

    if code == ErrorCode.CONFIG_NOT_FOUND:
        search_paths = details.get("search_paths")
        if not isinstance(search_paths, list):
            return []
        lines = ["Searched in the following locations:"]
        lines.extend(f"  - {location}" for location in search_paths)
        lines.append("Create a configuration file with: muxlayout config init")
        return lines

    if code == ErrorCode.NOT_IN_TMUX_SESSION:
        return ["This command must be run inside a tmux session.", "Start tmux first with: tmux"]

    if code in (ErrorCode.TMUX_NOT_FOUND, ErrorCode.WEZTERM_NOT_FOUND, ErrorCode.BACKEND_NOT_FOUND):
        backend = str(details.get("backend", "tmux"))
        lines = [f"{backend} is required but was not found."]
        if backend in _INSTALL_HINTS:
            lines.append(f"Install {backend} using your package manager:")
            lines.extend(_INSTALL_HINTS[backend])
        return lines

    if code in (ErrorCode.UNSUPPORTED_TMUX_VERSION, ErrorCode.UNSUPPORTED_WEZTERM_VERSION):
        lines = []
        if details.get("detected_version"):
            lines.append(f"Detected version: {details['detected_version']}")
        if details.get("required_version"):
            lines.append(f"Required version: {details['required_version']} or higher")
        return lines

    if code == ErrorCode.SPLIT_SIZE_RESOLUTION_FAILED:
        lines = ["Unable to resolve split size from pane dimensions."]
        for key, label in (
            ("pane_id", "Pane ID"),
            ("pane_cells", "Pane cells"),
            ("detected_version", "Detected version"),
            ("required_version", "Required version"),
        ):
            if details.get(key) is not None:
                lines.append(f"{label}: {details[key]}")
        return lines

    if code == ErrorCode.TEMPLATE_TOKEN_ERROR:
        available = details.get("available_panes")
        if isinstance(available, list):
            return [f"Available pane names: {', '.join(str(name) for name in available) or '(none)'}"]
        return []

    if code == ErrorCode.PRESET_NOT_FOUND:
        available = details.get("available_presets")
        if isinstance(available, list) and available:
            return [f"Available presets: {', '.join(str(name) for name in available)}"]
        return []

    return []


def format_error(error: BaseException) -> str:
    """Render an error for terminal output.

    Args:
        error: The error to format.

    Returns:
        Multi-line message with code-specific hints, path, command and stderr.
    """
    if not isinstance(error, MuxLayoutError):
        return f"{type(error).__name__}: {error}"

    lines = [error.message]
    if isinstance(error, CoreError) and error.path:
        lines.append(f"Path: {error.path}")
    lines.extend(_hint_lines(error))

    command = error.details.get("command")
    if isinstance(command, list | tuple):
        lines.append(f"Command: {' '.join(str(part) for part in command)}")
    elif isinstance(command, str) and command:
        lines.append(f"Command: {command}")

    stderr = error.details.get("stderr")
    if isinstance(stderr, str) and stderr.strip():
        lines.append(f"stderr: {stderr.strip()}")

    return "\n".join(lines)
