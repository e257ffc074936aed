"""Tests for muxlayout.plan_runner module."""

import pytest

from muxlayout.compiler import Orientation
from muxlayout.config import WindowMode
from muxlayout.errors import CoreError, EnvironmentCheckError, ErrorCode
from muxlayout.pipeline import build_plan_emission
from muxlayout.plan_runner import (
    ConfirmPaneClosure,
    build_dry_run_steps,
    execute_plan,
    format_command,
)
from muxlayout.split_size import CellsSplitSize, PaneSize, PercentSplitSize, SplitSize

MAIN_AUX_PRESET = {
    "name": "Main/Aux",
    "layout": {
        "type": "horizontal",
        "ratio": [3, 2],
        "panes": [{"name": "main", "focus": True}, {"name": "aux"}],
    },
}


class FakeDriver:
    """Scripted driver that allocates pane IDs sequentially."""

    backend = "fake"
    detected_version = None
    required_version = "1.0"

    def __init__(
        self,
        split_moves_focus: bool = False,
        title_selects_pane: bool = False,
        existing_panes: list[str] | None = None,
        pane_size: PaneSize | None = PaneSize(cols=100, rows=40),
        creates_panes: bool = True,
    ) -> None:
        self.split_moves_focus = split_moves_focus
        self.title_selects_pane = title_selects_pane
        self.panes = ["%0", *(existing_panes or [])]
        self.size = pane_size
        self.creates_panes = creates_panes
        self.commands: list[list[str]] = []
        self.verify_calls = 0
        self.verify_error: Exception | None = None
        self._next_id = 100

    def _allocate(self) -> str:
        pane_id = f"%{self._next_id}"
        self._next_id += 1
        return pane_id

    def verify(self) -> None:
        self.verify_calls += 1
        if self.verify_error is not None:
            raise self.verify_error

    def acquire_initial_pane(
        self,
        window_mode: WindowMode,
        window_name: str | None,
        cwd: str | None,
        confirm: ConfirmPaneClosure | None,
    ) -> str:
        if window_mode == WindowMode.NEW_WINDOW:
            self.panes = [self._allocate()]
            return self.panes[0]
        others = self.panes[1:]
        if others and confirm is not None and not confirm(others):
            raise CoreError("execution", ErrorCode.USER_CANCELLED, "Aborted", details={"panes": others})
        self.panes = self.panes[:1]
        return self.panes[0]

    def list_pane_ids(self) -> list[str]:
        return list(self.panes)

    def pane_size(self, pane_id: str) -> PaneSize | None:
        return self.size

    def query_initial_pane_size(self) -> PaneSize | None:
        return self.size

    def build_split_command(self, target: str, orientation: Orientation, size: SplitSize | None) -> list[str]:
        if isinstance(size, PercentSplitSize):
            amount = f"{size.created_percentage}%"
        elif isinstance(size, CellsSplitSize):
            amount = f"{size.created_cells}c"
        else:
            amount = "<dynamic>"
        return ["split", target, orientation.value, amount]

    def build_focus_command(self, target: str) -> list[str]:
        return ["focus", target]

    def build_send_text_command(self, target: str, text: str) -> list[str]:
        return ["send", target, text]

    def build_title_command(self, target: str, title: str) -> list[str] | None:
        return ["title", target, title]

    def run(self, cmd: list[str], message: str, path: str | None = None) -> str:
        self.commands.append(cmd)
        if cmd[0] == "split" and self.creates_panes:
            self.panes.append(self._allocate())
        return ""


class TestExecutePlan:
    """Tests for execute_plan function."""

    def test_main_aux_end_to_end(self) -> None:
        """Should run one split and skip the focus step on the already-active pane."""
        emission = build_plan_emission(MAIN_AUX_PRESET, "test").emission
        driver = FakeDriver()
        result = execute_plan(emission, driver, WindowMode.CURRENT_WINDOW)
        assert result.executed_steps == 1
        assert result.focus_pane_id == "%0"
        assert driver.commands == [["split", "%0", "horizontal", "40%"]]

    def test_verifies_environment_first(self) -> None:
        """Should verify the environment before touching any pane."""
        emission = build_plan_emission(MAIN_AUX_PRESET, "test").emission
        driver = FakeDriver()
        driver.verify_error = EnvironmentCheckError(ErrorCode.NOT_IN_TMUX_SESSION, "Must be run inside a tmux session")
        with pytest.raises(EnvironmentCheckError):
            execute_plan(emission, driver, WindowMode.NEW_WINDOW)
        assert driver.verify_calls == 1
        assert driver.panes == ["%0"]
        assert driver.commands == []

    def test_split_moves_focus(self) -> None:
        """Should run the focus step when the split activated the new pane."""
        emission = build_plan_emission(MAIN_AUX_PRESET, "test").emission
        driver = FakeDriver(split_moves_focus=True)
        result = execute_plan(emission, driver, WindowMode.CURRENT_WINDOW)
        assert result.executed_steps == 2
        assert driver.commands[-1] == ["focus", "%0"]

    def test_new_window(self) -> None:
        """Should lay out inside a freshly acquired pane."""
        emission = build_plan_emission(MAIN_AUX_PRESET, "test").emission
        driver = FakeDriver()
        result = execute_plan(emission, driver, WindowMode.NEW_WINDOW)
        assert result.focus_pane_id == "%100"
        assert driver.commands == [["split", "%100", "horizontal", "40%"]]

    def test_nested_targets_resolve_through_ancestors(self) -> None:
        """Should split a nested group's first pane using its parent's real pane."""
        emission = build_plan_emission(
            {
                "layout": {
                    "type": "horizontal",
                    "ratio": [1, 1],
                    "panes": [
                        {"name": "left"},
                        {"type": "vertical", "ratio": [1, 1], "panes": [{"name": "top"}, {"name": "bottom"}]},
                    ],
                }
            },
            "test",
        ).emission
        driver = FakeDriver()
        execute_plan(emission, driver, WindowMode.CURRENT_WINDOW)
        assert driver.commands == [
            ["split", "%0", "horizontal", "50%"],
            ["split", "%100", "vertical", "50%"],
        ]

    def test_dynamic_cells_split(self) -> None:
        """Should size fixed-cell splits from live pane geometry."""
        emission = build_plan_emission(
            {"layout": {"type": "horizontal", "ratio": ["30c", 1], "panes": [{"name": "a"}, {"name": "b"}]}},
            "test",
        ).emission
        driver = FakeDriver(pane_size=PaneSize(cols=100, rows=40))
        execute_plan(emission, driver, WindowMode.CURRENT_WINDOW)
        assert driver.commands[0] == ["split", "%0", "horizontal", "70c"]

    def test_terminal_setup(self) -> None:
        """Should send cd, exports, title and command in order, sleeping before delayed commands."""
        emission = build_plan_emission(
            {
                "layout": {
                    "name": "srv",
                    "cwd": "/srv",
                    "env": {"PORT": "80"},
                    "title": "Server",
                    "command": "serve {{this_pane}}",
                    "delay": 250,
                }
            },
            "test",
        ).emission
        driver = FakeDriver()
        sleeps: list[float] = []
        execute_plan(emission, driver, WindowMode.CURRENT_WINDOW, sleep=sleeps.append)
        assert driver.commands == [
            ["send", "%0", 'cd "/srv"'],
            ["send", "%0", 'export PORT="80"'],
            ["title", "%0", "Server"],
            ["send", "%0", "serve %0"],
        ]
        assert sleeps == [0.25]

    def test_title_restores_focus(self) -> None:
        """Should reselect the focus pane after a title command selected another pane."""
        emission = build_plan_emission(
            {
                "layout": {
                    "type": "horizontal",
                    "ratio": [3, 2],
                    "panes": [{"name": "main", "focus": True}, {"name": "aux", "title": "Aux"}],
                }
            },
            "test",
        ).emission
        driver = FakeDriver(title_selects_pane=True)
        execute_plan(emission, driver, WindowMode.CURRENT_WINDOW)
        assert driver.commands[-2:] == [["title", "%100", "Aux"], ["focus", "%0"]]

    def test_declined_confirmation(self) -> None:
        """Should abort with USER_CANCELLED and run nothing."""
        emission = build_plan_emission(MAIN_AUX_PRESET, "test").emission
        driver = FakeDriver(existing_panes=["%9"])
        with pytest.raises(CoreError) as exc_info:
            execute_plan(emission, driver, WindowMode.CURRENT_WINDOW, confirm=lambda panes: False)
        assert exc_info.value.code == ErrorCode.USER_CANCELLED
        assert driver.commands == []

    def test_accepted_confirmation(self) -> None:
        """Should close other panes when confirmed."""
        emission = build_plan_emission(MAIN_AUX_PRESET, "test").emission
        driver = FakeDriver(existing_panes=["%9"])
        asked: list[list[str]] = []

        def confirm(panes: list[str]) -> bool:
            asked.append(panes)
            return True

        result = execute_plan(emission, driver, WindowMode.CURRENT_WINDOW, confirm=confirm)
        assert asked == [["%9"]]
        assert result.executed_steps == 1

    def test_split_without_new_pane(self) -> None:
        """Should fail when the created pane cannot be found."""
        emission = build_plan_emission(MAIN_AUX_PRESET, "test").emission
        driver = FakeDriver(creates_panes=False)
        with pytest.raises(CoreError) as exc_info:
            execute_plan(emission, driver, WindowMode.CURRENT_WINDOW)
        assert exc_info.value.code == ErrorCode.TERMINAL_COMMAND_FAILED
        assert exc_info.value.path == "root:split:1"

    def test_too_small_pane(self) -> None:
        """Should surface split size failures with the step path."""
        emission = build_plan_emission(
            {"layout": {"type": "horizontal", "ratio": ["90c", 1], "panes": [{"name": "a"}, {"name": "b"}]}},
            "test",
        ).emission
        driver = FakeDriver(pane_size=PaneSize(cols=80, rows=24))
        with pytest.raises(CoreError) as exc_info:
            execute_plan(emission, driver, WindowMode.CURRENT_WINDOW)
        assert exc_info.value.code == ErrorCode.SPLIT_SIZE_RESOLUTION_FAILED
        assert exc_info.value.path == "root:split:1"


class TestBuildDryRunSteps:
    """Tests for build_dry_run_steps function."""

    def test_main_aux(self) -> None:
        """Should render the split with virtual IDs and skip the redundant focus."""
        emission = build_plan_emission(MAIN_AUX_PRESET, "test").emission
        steps = build_dry_run_steps(emission, FakeDriver())
        assert [(step.backend, step.summary, step.command) for step in steps] == [
            ("fake", "split root.0 horizontal -> root.1", "split root.0 horizontal 40%"),
        ]

    def test_matches_live_execution(self) -> None:
        """Should plan the same emission and the same number of commands as a live run."""
        dry_emission = build_plan_emission(MAIN_AUX_PRESET, "dry").emission
        live_emission = build_plan_emission(MAIN_AUX_PRESET, "live").emission
        assert dry_emission.hash == live_emission.hash

        steps = build_dry_run_steps(dry_emission, FakeDriver())
        driver = FakeDriver()
        execute_plan(live_emission, driver, WindowMode.CURRENT_WINDOW)
        assert len(steps) == len(driver.commands)

    def test_dynamic_placeholder_without_geometry(self) -> None:
        """Should show a placeholder when no pane size is available."""
        emission = build_plan_emission(
            {"layout": {"type": "vertical", "ratio": ["10c", 1], "panes": [{"name": "a"}, {"name": "b"}]}},
            "test",
        ).emission
        steps = build_dry_run_steps(emission, FakeDriver(pane_size=None))
        assert steps[0].command == "split root.0 vertical <dynamic>"

    def test_dynamic_sizes_propagate(self) -> None:
        """Should resolve chained cell splits from the queried size."""
        emission = build_plan_emission(
            {
                "layout": {
                    "type": "vertical",
                    "ratio": ["10c", "5c", 1],
                    "panes": [{"name": "a"}, {"name": "b"}, {"name": "c"}],
                }
            },
            "test",
        ).emission
        steps = build_dry_run_steps(emission, FakeDriver(pane_size=PaneSize(cols=80, rows=40)))
        assert [step.command for step in steps] == [
            "split root.0 vertical 30c",
            "split root.1 vertical 25c",
        ]

    def test_percent_split_updates_geometry(self) -> None:
        """Should size a nested cells split from the pane left by a percent split."""
        emission = build_plan_emission(
            {
                "layout": {
                    "type": "horizontal",
                    "ratio": [1, 1],
                    "panes": [
                        {"type": "horizontal", "ratio": ["10c", 1], "panes": [{"name": "a"}, {"name": "b"}]},
                        {"name": "c"},
                    ],
                }
            },
            "test",
        ).emission
        steps = build_dry_run_steps(emission, FakeDriver(pane_size=PaneSize(cols=100, rows=40)))
        assert [step.command for step in steps] == [
            "split root.0.0 horizontal 50%",
            "split root.0.0 horizontal 40c",
        ]

    def test_terminal_actions(self) -> None:
        """Should list per-pane setup with virtual IDs."""
        emission = build_plan_emission({"layout": {"name": "a", "cwd": "/tmp", "command": "ls"}}, "test").emission
        steps = build_dry_run_steps(emission, FakeDriver())
        assert [step.summary for step in steps] == ["root: cd /tmp", "root: run a"]
        assert steps[1].command == "send root ls"


class TestFormatCommand:
    """Tests for format_command function."""

    def test_joins_arguments(self) -> None:
        """Should join arguments with spaces."""
        assert format_command(["tmux", "select-pane", "-t", "%1"]) == "tmux select-pane -t %1"

    def test_escapes_carriage_return(self) -> None:
        """Should show carriage returns visibly."""
        assert format_command(["send-text", "ls\r"]) == "send-text ls\\r"
