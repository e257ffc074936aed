"""tmux backend for muxlayout."""

import logging
import re
import subprocess
from collections.abc import Mapping

from muxlayout.backend import BackendContext
from muxlayout.compiler import Orientation
from muxlayout.config import WindowMode
from muxlayout.emitter import PlanEmission
from muxlayout.errors import CoreError, EnvironmentCheckError, ErrorCode
from muxlayout.plan_runner import (
    ApplyPlanResult,
    ConfirmPaneClosure,
    DryRunStep,
    build_dry_run_steps,
    execute_plan,
    format_command,
)
from muxlayout.split_size import CellsSplitSize, PaneSize, PercentSplitSize, SplitSize

logger = logging.getLogger(__name__)

# Timeout for all tmux subprocess calls (seconds)
_TMUX_TIMEOUT = 10

MIN_TMUX_VERSION = "2.6"
DYNAMIC_SIZE_PLACEHOLDER = "<dynamic>"

_VERSION_PATTERN = re.compile(r"(\d+)\.(\d+)")


def _run_tmux(cmd: list[str], **kwargs: object) -> subprocess.CompletedProcess[str]:
    """Run a tmux subprocess command with standard timeout.

    Args:
        cmd: Command to execute.
        **kwargs: Additional arguments for subprocess.run.

    Returns:
        CompletedProcess result.
    """
    return subprocess.run(cmd, check=True, timeout=_TMUX_TIMEOUT, **kwargs)  # type: ignore[arg-type]


def _validate_pane_id(pane_id: str, context: str = "") -> None:
    """Validate that a captured pane ID looks correct.

    Args:
        pane_id: The pane ID string (should start with %).
        context: Description for error messages.

    Raises:
        CoreError: If pane ID is empty or malformed.
    """
    if not pane_id or not pane_id.startswith("%"):
        label = f" ({context})" if context else ""
        raise CoreError(
            "execution",
            ErrorCode.TERMINAL_COMMAND_FAILED,
            f"Invalid pane ID{label}: {pane_id!r}",
            path=context or None,
            details={"backend": "tmux"},
        )


def _version_tuple(version: str) -> tuple[int, int] | None:
    match = _VERSION_PATTERN.search(version)
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


def _parse_pane_size(output: str) -> PaneSize | None:
    """Parse ``"<width> <height>"`` from display-message."""
    parts = output.split()
    if len(parts) != 2 or not all(part.isdigit() for part in parts):
        return None
    cols, rows = int(parts[0]), int(parts[1])
    if cols <= 0 or rows <= 0:
        return None
    return PaneSize(cols=cols, rows=rows)


class TmuxDriver:
    """Builds and runs tmux commands for the plan execution engine."""

    backend = "tmux"
    # Splits use -d, so the original pane keeps focus
    split_moves_focus = False
    # select-pane -T only sets the title
    title_selects_pane = False
    required_version = MIN_TMUX_VERSION

    def __init__(self, environ: Mapping[str, str]) -> None:
        self._environ = environ
        self.detected_version: str | None = None
        self._verified = False
        # A pane inside the window being laid out; scopes list-panes
        self._anchor_pane: str | None = None

    def run(self, cmd: list[str], message: str, path: str | None = None) -> str:
        """Run a tmux command and return its stdout.

        Raises:
            EnvironmentCheckError: If the tmux binary is missing.
            CoreError: TERMINAL_COMMAND_FAILED with the captured stderr.
        """
        logger.info("[tmux] %s", format_command(cmd))
        try:
            result = _run_tmux(cmd, capture_output=True, text=True)
        except FileNotFoundError as e:
            raise EnvironmentCheckError(
                ErrorCode.TMUX_NOT_FOUND, "tmux is not installed", {"backend": "tmux", "binary": "tmux"}
            ) from e
        except subprocess.CalledProcessError as e:
            raise CoreError(
                "execution",
                ErrorCode.TERMINAL_COMMAND_FAILED,
                message,
                path=path,
                details={"command": cmd, "stderr": e.stderr, "exit_code": e.returncode, "backend": "tmux"},
            ) from e
        except subprocess.TimeoutExpired as e:
            raise CoreError(
                "execution",
                ErrorCode.TERMINAL_COMMAND_FAILED,
                f"{message} (timed out after {_TMUX_TIMEOUT}s)",
                path=path,
                details={"command": cmd, "backend": "tmux"},
            ) from e
        return result.stdout

    def verify(self) -> None:
        """Check that we run inside tmux with a supported tmux binary; runs once per driver.

        Raises:
            EnvironmentCheckError: NOT_IN_TMUX_SESSION, TMUX_NOT_FOUND or
                UNSUPPORTED_TMUX_VERSION.
        """
        if self._verified:
            return
        if not self._environ.get("TMUX"):
            raise EnvironmentCheckError(
                ErrorCode.NOT_IN_TMUX_SESSION, "Must be run inside a tmux session", {"backend": "tmux"}
            )

        try:
            raw = self.run(["tmux", "-V"], "Failed to query tmux version").strip()
        except CoreError as e:
            raise EnvironmentCheckError(
                ErrorCode.TMUX_NOT_FOUND,
                "tmux -V failed",
                {"backend": "tmux", "stderr": e.details.get("stderr")},
            ) from e

        detected = raw.removeprefix("tmux").strip()
        self.detected_version = detected
        version = _version_tuple(detected)
        if version is None:
            logger.warning("Could not parse tmux version %r; continuing", raw)
            self._verified = True
            return
        required = _version_tuple(MIN_TMUX_VERSION)
        if required is not None and version < required:
            raise EnvironmentCheckError(
                ErrorCode.UNSUPPORTED_TMUX_VERSION,
                "Unsupported tmux version",
                {"backend": "tmux", "detected_version": detected, "required_version": MIN_TMUX_VERSION},
            )
        self._verified = True

    def _current_pane_id(self) -> str:
        pane_id = self._environ.get("TMUX_PANE", "")
        if not pane_id:
            pane_id = self.run(["tmux", "display-message", "-p", "#{pane_id}"], "Failed to get current pane").strip()
        _validate_pane_id(pane_id, "current pane")
        return pane_id

    def acquire_initial_pane(
        self,
        window_mode: WindowMode,
        window_name: str | None,
        cwd: str | None,
        confirm: ConfirmPaneClosure | None,
    ) -> str:
        """Reuse the current pane (closing its siblings) or open a new window.

        Raises:
            CoreError: USER_CANCELLED if closing panes was declined.
        """
        if window_mode == WindowMode.CURRENT_WINDOW:
            current = self._current_pane_id()
            self._anchor_pane = current
            panes_to_close = [pane_id for pane_id in self.list_pane_ids() if pane_id != current]
            if panes_to_close:
                if confirm is not None and not confirm(panes_to_close):
                    raise CoreError(
                        "execution",
                        ErrorCode.USER_CANCELLED,
                        "Aborted layout application for current window",
                        path=current,
                        details={"panes": panes_to_close},
                    )
                self.run(["tmux", "kill-pane", "-a", "-t", current], "Failed to close existing panes", current)
            return current

        new_window_cmd = ["tmux", "new-window", "-P", "-F", "#{pane_id}"]
        if window_name and window_name.strip():
            new_window_cmd.extend(["-n", window_name.strip()])
        if cwd:
            new_window_cmd.extend(["-c", cwd])
        pane_id = self.run(new_window_cmd, "Failed to create tmux window").strip()
        _validate_pane_id(pane_id, "new window")
        self._anchor_pane = pane_id
        return pane_id

    def list_pane_ids(self) -> list[str]:
        """List pane IDs of the window being laid out."""
        cmd = ["tmux", "list-panes", "-F", "#{pane_id}"]
        if self._anchor_pane:
            cmd[2:2] = ["-t", self._anchor_pane]
        output = self.run(cmd, "Failed to list tmux panes")
        return [line.strip() for line in output.splitlines() if line.strip()]

    def pane_size(self, pane_id: str) -> PaneSize | None:
        output = self.run(
            ["tmux", "display-message", "-p", "-t", pane_id, "#{pane_width} #{pane_height}"],
            f"Failed to read size of pane {pane_id}",
            pane_id,
        )
        return _parse_pane_size(output)

    def query_initial_pane_size(self) -> PaneSize | None:
        """Best-effort size of the current pane; None outside tmux or on any failure."""
        pane_id = self._environ.get("TMUX_PANE")
        if not self._environ.get("TMUX") or not pane_id:
            return None
        try:
            result = subprocess.run(
                ["tmux", "display-message", "-p", "-t", pane_id, "#{pane_width} #{pane_height}"],
                capture_output=True,
                text=True,
                check=False,
                timeout=_TMUX_TIMEOUT,
            )
        except (OSError, subprocess.SubprocessError):
            return None
        if result.returncode != 0:
            return None
        return _parse_pane_size(result.stdout)

    def build_split_command(self, target: str, orientation: Orientation, size: SplitSize | None) -> list[str]:
        # Use -d to keep focus on the pane being split
        direction = "-h" if orientation == Orientation.HORIZONTAL else "-v"
        cmd = ["tmux", "split-window", "-d", "-t", target, direction]
        if isinstance(size, PercentSplitSize):
            cmd.extend(["-p", str(size.created_percentage)])
        elif isinstance(size, CellsSplitSize):
            cmd.extend(["-l", str(size.created_cells)])
        else:
            cmd.extend(["-l", DYNAMIC_SIZE_PLACEHOLDER])
        return cmd

    def build_focus_command(self, target: str) -> list[str]:
        return ["tmux", "select-pane", "-t", target]

    def build_send_text_command(self, target: str, text: str) -> list[str]:
        return ["tmux", "send-keys", "-t", target, text, "Enter"]

    def build_title_command(self, target: str, title: str) -> list[str] | None:
        return ["tmux", "select-pane", "-t", target, "-T", title]


class TmuxBackend:
    """Terminal backend driving tmux."""

    def __init__(self, context: BackendContext) -> None:
        self.context = context
        self.driver = TmuxDriver(context.environ)

    def verify_environment(self) -> None:
        """Check tmux prerequisites; skipped in dry-run."""
        if self.context.dry_run:
            return
        self.driver.verify()

    def apply_plan(
        self, emission: PlanEmission, window_mode: WindowMode, window_name: str | None = None
    ) -> ApplyPlanResult:
        return execute_plan(
            emission,
            self.driver,
            window_mode,
            window_name=window_name,
            confirm=self.context.confirm,
            sleep=self.context.sleep,
        )

    def get_dry_run_steps(self, emission: PlanEmission) -> list[DryRunStep]:
        return build_dry_run_steps(emission, self.driver)
