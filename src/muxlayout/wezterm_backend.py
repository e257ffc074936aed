"""WezTerm backend for muxlayout."""

import logging
import re
import subprocess
from collections.abc import Mapping

from muxlayout.backend import BackendContext
from muxlayout.compiler import Orientation
from muxlayout.config import ExecutionSettings, WindowMode
from muxlayout.emitter import PlanEmission
from muxlayout.errors import CoreError, EnvironmentCheckError, ErrorCode
from muxlayout.plan_runner import (
    ApplyPlanResult,
    ConfirmPaneClosure,
    DryRunStep,
    SleepFunction,
    build_dry_run_steps,
    execute_plan,
    format_command,
)
from muxlayout.split_size import CellsSplitSize, PaneSize, PercentSplitSize, SplitSize
from muxlayout.wezterm_list import WeztermListResult, WeztermTab, WeztermWindow, parse_wezterm_list

logger = logging.getLogger(__name__)

# Timeout for all wezterm subprocess calls (seconds)
_WEZTERM_TIMEOUT = 10

# First release with `wezterm cli split-pane --cells` and `list --format json`
MIN_WEZTERM_VERSION = "20220624-141144-bd1b7c5d"
DYNAMIC_SIZE_PLACEHOLDER = "<dynamic>"

_VERSION_PATTERN = re.compile(r"(\d{8})-(\d{6})-([0-9a-fA-F]+)")


def _run_wezterm(cmd: list[str], **kwargs: object) -> subprocess.CompletedProcess[str]:
    """Run a wezterm subprocess command with standard timeout.

    Args:
        cmd: Command to execute.
        **kwargs: Additional arguments for subprocess.run.

    Returns:
        CompletedProcess result.
    """
    return subprocess.run(cmd, check=True, timeout=_WEZTERM_TIMEOUT, **kwargs)  # type: ignore[arg-type]


def parse_wezterm_version(output: str) -> str | None:
    """Extract the ``YYYYMMDD-HHMMSS-hash`` version from ``wezterm --version``."""
    match = _VERSION_PATTERN.search(output)
    return match.group(0) if match else None


def is_supported_wezterm_version(version: str) -> bool:
    """Compare a version against the minimum by date and time, ignoring the hash."""
    detected = _VERSION_PATTERN.search(version)
    required = _VERSION_PATTERN.search(MIN_WEZTERM_VERSION)
    if detected is None or required is None:
        return False
    return (detected.group(1), detected.group(2)) >= (required.group(1), required.group(2))


def parse_spawned_pane_id(output: str) -> str | None:
    """Get the pane ID printed by ``wezterm cli spawn``: first token of the last non-empty line."""
    lines = [line.strip() for line in output.splitlines() if line.strip()]
    if not lines:
        return None
    token = lines[-1].split()[0]
    return token if token.isdigit() else None


def _pick_window(listing: WeztermListResult, preferred_pane: str | None) -> WeztermWindow | None:
    if preferred_pane:
        found = listing.find_pane(preferred_pane)
        if found is not None:
            return found[0]
    active = next((window for window in listing.windows if window.is_active), None)
    return active or (listing.windows[0] if listing.windows else None)


def _pick_tab(window: WeztermWindow, preferred_pane: str | None) -> WeztermTab | None:
    if preferred_pane:
        for tab in window.tabs:
            if any(pane.pane_id == preferred_pane for pane in tab.panes):
                return tab
    active = next((tab for tab in window.tabs if tab.is_active), None)
    return active or (window.tabs[0] if window.tabs else None)


class WeztermDriver:
    """Builds and runs ``wezterm cli`` commands for the plan execution engine."""

    backend = "wezterm"
    # split-pane activates the new pane
    split_moves_focus = True
    title_selects_pane = False
    required_version = MIN_WEZTERM_VERSION

    def __init__(
        self,
        environ: Mapping[str, str],
        settings: ExecutionSettings | None = None,
        sleep: SleepFunction | None = None,
    ) -> None:
        self._environ = environ
        self._settings = settings or ExecutionSettings()
        self._sleep = sleep
        self.detected_version: str | None = None
        self._verified = False
        self._window_id: str | None = None

    def run(self, cmd: list[str], message: str, path: str | None = None) -> str:
        """Run a wezterm command and return its stdout.

        Raises:
            EnvironmentCheckError: If the wezterm binary is missing.
            CoreError: TERMINAL_COMMAND_FAILED with the captured stderr.
        """
        logger.info("[wezterm] %s", format_command(cmd))
        try:
            result = _run_wezterm(cmd, capture_output=True, text=True)
        except FileNotFoundError as e:
            raise EnvironmentCheckError(
                ErrorCode.WEZTERM_NOT_FOUND, "wezterm is not installed", {"backend": "wezterm", "binary": "wezterm"}
            ) from e
        except subprocess.CalledProcessError as e:
            raise CoreError(
                "execution",
                ErrorCode.TERMINAL_COMMAND_FAILED,
                message,
                path=path,
                details={"command": cmd, "stderr": e.stderr, "exit_code": e.returncode, "backend": "wezterm"},
            ) from e
        except subprocess.TimeoutExpired as e:
            raise CoreError(
                "execution",
                ErrorCode.TERMINAL_COMMAND_FAILED,
                f"{message} (timed out after {_WEZTERM_TIMEOUT}s)",
                path=path,
                details={"command": cmd, "backend": "wezterm"},
            ) from e
        return result.stdout

    def verify(self) -> None:
        """Check that wezterm is installed and recent enough; runs once per driver.

        Raises:
            EnvironmentCheckError: WEZTERM_NOT_FOUND or UNSUPPORTED_WEZTERM_VERSION.
        """
        if self._verified:
            return
        try:
            raw = self.run(["wezterm", "--version"], "Failed to query wezterm version")
        except CoreError as e:
            raise EnvironmentCheckError(
                ErrorCode.WEZTERM_NOT_FOUND,
                "wezterm --version failed",
                {"backend": "wezterm", "stderr": e.details.get("stderr")},
            ) from e

        detected = parse_wezterm_version(raw)
        self.detected_version = detected or raw.strip()
        if detected is None or not is_supported_wezterm_version(detected):
            raise EnvironmentCheckError(
                ErrorCode.UNSUPPORTED_WEZTERM_VERSION,
                "Unsupported wezterm version",
                {
                    "backend": "wezterm",
                    "detected_version": self.detected_version,
                    "required_version": MIN_WEZTERM_VERSION,
                },
            )
        self._verified = True

    def list_windows(self) -> WeztermListResult:
        """Query wezterm for all windows, tabs and panes.

        Raises:
            CoreError: TERMINAL_COMMAND_FAILED if the output cannot be parsed.
        """
        cmd = ["wezterm", "cli", "list", "--format", "json"]
        output = self.run(cmd, "Failed to list wezterm panes")
        listing = parse_wezterm_list(output)
        if listing is None:
            raise CoreError(
                "execution",
                ErrorCode.TERMINAL_COMMAND_FAILED,
                "Unable to parse wezterm list output",
                details={"command": cmd, "backend": "wezterm"},
            )
        return listing

    def _wait_for_pane(self, pane_id: str) -> WeztermWindow:
        """Poll until a spawned pane shows up in the listing."""
        attempts = self._settings.pane_registration_retries
        for attempt in range(attempts):
            found = self.list_windows().find_pane(pane_id)
            if found is not None:
                return found[0]
            logger.debug("pane %s not registered yet (attempt %d/%d)", pane_id, attempt + 1, attempts)
            if attempt + 1 < attempts and self._sleep is not None:
                self._sleep(self._settings.pane_registration_delay)
        raise CoreError(
            "execution",
            ErrorCode.TERMINAL_COMMAND_FAILED,
            f"Spawned pane {pane_id} did not appear in wezterm list",
            path=pane_id,
            details={"backend": "wezterm", "attempts": attempts},
        )

    def _preferred_pane(self) -> str | None:
        return self._environ.get("WEZTERM_PANE") or None

    def acquire_initial_pane(
        self,
        window_mode: WindowMode,
        window_name: str | None,
        cwd: str | None,
        confirm: ConfirmPaneClosure | None,
    ) -> str:
        """Reuse the current tab (closing its other panes) or spawn a new tab or window.

        window_name is not supported by wezterm and is ignored.

        Raises:
            CoreError: USER_CANCELLED if closing panes was declined.
        """
        listing = self.list_windows()
        preferred = self._preferred_pane()
        workspace = None
        if preferred:
            found = listing.find_pane(preferred)
            if found is not None:
                workspace = found[0].workspace
        scoped = listing.in_workspace(workspace)
        window = _pick_window(scoped, preferred)

        if window_mode == WindowMode.CURRENT_WINDOW:
            tab = _pick_tab(window, preferred) if window is not None else None
            if window is None or tab is None or not tab.panes:
                raise CoreError(
                    "execution",
                    ErrorCode.TERMINAL_COMMAND_FAILED,
                    "No active wezterm window found",
                    details={"backend": "wezterm"},
                )
            pane_ids = [pane.pane_id for pane in tab.panes]
            if preferred in pane_ids:
                current = preferred
            else:
                current = next((pane.pane_id for pane in tab.panes if pane.is_active), pane_ids[0])
            self._window_id = window.window_id

            panes_to_close = [pane_id for pane_id in pane_ids if pane_id != current]
            if panes_to_close:
                if confirm is not None and not confirm(panes_to_close):
                    raise CoreError(
                        "execution",
                        ErrorCode.USER_CANCELLED,
                        "Aborted layout application for current window",
                        path=current,
                        details={"panes": panes_to_close},
                    )
                for pane_id in panes_to_close:
                    self.run(["wezterm", "cli", "kill-pane", "--pane-id", pane_id], "Failed to close pane", pane_id)
            return current

        if window_name:
            logger.debug("wezterm does not support window names; ignoring %r", window_name)
        if window is not None:
            spawn_cmd = ["wezterm", "cli", "spawn", "--window-id", window.window_id]
            if cwd:
                spawn_cmd.extend(["--cwd", cwd])
        else:
            spawn_cmd = ["wezterm", "cli", "spawn", "--new-window"]
            if cwd:
                spawn_cmd.extend(["--cwd", cwd])
            if workspace:
                spawn_cmd.extend(["--workspace", workspace])

        output = self.run(spawn_cmd, "Failed to spawn wezterm tab")
        pane_id = parse_spawned_pane_id(output)
        if pane_id is None:
            raise CoreError(
                "execution",
                ErrorCode.TERMINAL_COMMAND_FAILED,
                "Unable to determine the pane created by wezterm cli spawn",
                details={"command": spawn_cmd, "stderr": output, "backend": "wezterm"},
            )
        self._window_id = self._wait_for_pane(pane_id).window_id
        return pane_id

    def list_pane_ids(self) -> list[str]:
        """List pane IDs of the window being laid out."""
        listing = self.list_windows()
        if self._window_id is not None:
            window = listing.find_window(self._window_id)
            return window.pane_ids() if window is not None else []
        return [pane_id for window in listing.windows for pane_id in window.pane_ids()]

    def pane_size(self, pane_id: str) -> PaneSize | None:
        found = self.list_windows().find_pane(pane_id)
        return found[2].size if found is not None else None

    def query_initial_pane_size(self) -> PaneSize | None:
        """Best-effort size of the current pane; None outside wezterm or on any failure."""
        preferred = self._preferred_pane()
        if not preferred:
            return None
        try:
            result = subprocess.run(
                ["wezterm", "cli", "list", "--format", "json"],
                capture_output=True,
                text=True,
                check=False,
                timeout=_WEZTERM_TIMEOUT,
            )
        except (OSError, subprocess.SubprocessError):
            return None
        if result.returncode != 0:
            return None
        listing = parse_wezterm_list(result.stdout)
        found = listing.find_pane(preferred) if listing is not None else None
        return found[2].size if found is not None else None

    def build_split_command(self, target: str, orientation: Orientation, size: SplitSize | None) -> list[str]:
        direction = "--right" if orientation == Orientation.HORIZONTAL else "--bottom"
        cmd = ["wezterm", "cli", "split-pane", direction]
        if isinstance(size, PercentSplitSize):
            cmd.extend(["--percent", str(size.created_percentage)])
        elif isinstance(size, CellsSplitSize):
            cmd.extend(["--cells", str(size.created_cells)])
        else:
            cmd.extend(["--cells", DYNAMIC_SIZE_PLACEHOLDER])
        cmd.extend(["--pane-id", target])
        return cmd

    def build_focus_command(self, target: str) -> list[str]:
        return ["wezterm", "cli", "activate-pane", "--pane-id", target]

    def build_send_text_command(self, target: str, text: str) -> list[str]:
        return ["wezterm", "cli", "send-text", "--pane-id", target, "--no-paste", "--", f"{text}\r"]

    def build_title_command(self, target: str, title: str) -> list[str] | None:
        return None


class WeztermBackend:
    """Terminal backend driving WezTerm through ``wezterm cli``."""

    def __init__(self, context: BackendContext) -> None:
        self.context = context
        self.driver = WeztermDriver(context.environ, settings=context.settings, sleep=context.sleep)

    def verify_environment(self) -> None:
        """Check wezterm prerequisites; skipped in dry-run."""
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
