"""Plan execution engine: applies a plan emission through a multiplexer driver.

Live execution and dry-run rendering share the split-size, pane-map and
template-token logic. They differ only in where pane IDs and geometry come
from: the multiplexer for live runs, virtual IDs and a best-effort size query
for dry runs.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Protocol

from muxlayout.compiler import Orientation
from muxlayout.config import WindowMode
from muxlayout.emitter import DynamicCellsSizing, FocusStep, PlanEmission, SplitStep
from muxlayout.errors import CoreError, ErrorCode, MuxLayoutError
from muxlayout.pane_map import PaneMap
from muxlayout.split_size import (
    CellsSplitSize,
    PaneSize,
    PercentSplitSize,
    SplitSize,
    resolve_split_orientation,
    resolve_split_size,
    update_pane_sizes,
)
from muxlayout.terminal_commands import PreparedTerminal, prepare_terminal_commands
from muxlayout.utils import round_half_up

logger = logging.getLogger(__name__)

# Called with the real IDs of panes that would be closed; returns True to proceed
ConfirmPaneClosure = Callable[[list[str]], bool]
SleepFunction = Callable[[float], None]


class ExecutionState(StrEnum):
    """States of one plan execution."""

    IDLE = "idle"
    ENVIRONMENT_VERIFIED = "environment-verified"
    PANE_MAP_SEEDED = "pane-map-seeded"
    STEP_EXECUTED = "step-executed"
    TERMINALS_CONFIGURED = "terminals-configured"
    DONE = "done"
    ABORTED = "aborted"


class PaneDriver(Protocol):
    """Multiplexer-specific command building and process plumbing."""

    backend: str
    # True when a split leaves the new pane focused
    split_moves_focus: bool
    # True when setting a title also selects the pane
    title_selects_pane: bool
    detected_version: str | None
    required_version: str

    def verify(self) -> None: ...

    def acquire_initial_pane(
        self,
        window_mode: WindowMode,
        window_name: str | None,
        cwd: str | None,
        confirm: ConfirmPaneClosure | None,
    ) -> str: ...

    def list_pane_ids(self) -> list[str]: ...

    def pane_size(self, pane_id: str) -> PaneSize | None: ...

    def query_initial_pane_size(self) -> PaneSize | None: ...

    def build_split_command(self, target: str, orientation: Orientation, size: SplitSize | None) -> list[str]: ...

    def build_focus_command(self, target: str) -> list[str]: ...

    def build_send_text_command(self, target: str, text: str) -> list[str]: ...

    def build_title_command(self, target: str, title: str) -> list[str] | None: ...

    def run(self, cmd: list[str], message: str, path: str | None = None) -> str: ...


@dataclass(frozen=True)
class ApplyPlanResult:
    """Outcome of a live plan execution."""

    executed_steps: int
    focus_pane_id: str | None = None


@dataclass(frozen=True)
class DryRunStep:
    """One rendered command of a dry run."""

    backend: str
    summary: str
    command: str


@dataclass
class ExecutionContext:
    """Mutable state owned by a single plan execution."""

    active_pane_id: str
    pane_map: PaneMap = field(default_factory=PaneMap)
    executed_steps: int = 0
    state: ExecutionState = ExecutionState.IDLE

    def transition(self, state: ExecutionState) -> None:
        logger.debug("execution state %s -> %s", self.state.value, state.value)
        self.state = state


@dataclass(frozen=True)
class _PaneAction:
    pane_id: str
    summary: str
    command: list[str]
    delay_ms: int = 0
    selects_pane: bool = False


def format_command(cmd: list[str]) -> str:
    """Render an argument vector for display."""
    return " ".join(part.replace("\r", "\\r") for part in cmd)


def _initial_pane_id(emission: PlanEmission) -> str:
    initial = emission.summary.initial_pane_id
    if not initial:
        raise CoreError(
            "execution",
            ErrorCode.INVALID_PLAN,
            "Plan emission is missing initial pane metadata",
            path="plan.initial_pane_id",
        )
    return initial


def _terminal_actions(driver: PaneDriver, prepared: list[PreparedTerminal]) -> list[_PaneAction]:
    """Expand prepared terminals into the ordered commands sent to each pane."""
    actions: list[_PaneAction] = []
    for entry in prepared:
        pane_id = entry.pane_id
        virtual_id = entry.terminal.virtual_pane_id
        if entry.cwd_command:
            actions.append(
                _PaneAction(
                    pane_id=pane_id,
                    summary=f"{virtual_id}: cd {entry.terminal.cwd}",
                    command=driver.build_send_text_command(pane_id, entry.cwd_command),
                )
            )
        for key, env_command in entry.env_commands:
            actions.append(
                _PaneAction(
                    pane_id=pane_id,
                    summary=f"{virtual_id}: export {key}",
                    command=driver.build_send_text_command(pane_id, env_command),
                )
            )
        if entry.title:
            title_command = driver.build_title_command(pane_id, entry.title)
            if title_command is not None:
                actions.append(
                    _PaneAction(
                        pane_id=pane_id,
                        summary=f"{virtual_id}: title {entry.title}",
                        command=title_command,
                        selects_pane=driver.title_selects_pane,
                    )
                )
        if entry.command is not None:
            summary = f"{virtual_id}: run {entry.terminal.name}"
            if entry.command.delay_ms:
                summary += f" (after {entry.command.delay_ms}ms)"
            actions.append(
                _PaneAction(
                    pane_id=pane_id,
                    summary=summary,
                    command=driver.build_send_text_command(pane_id, entry.command.text),
                    delay_ms=entry.command.delay_ms,
                )
            )
    return actions


def _execute_split(ctx: ExecutionContext, driver: PaneDriver, step: SplitStep) -> None:
    """Split the target, then find the new pane by diffing pane snapshots."""
    target = ctx.pane_map.require(step.target_pane_id, step.id)
    before = driver.list_pane_ids()
    orientation = resolve_split_orientation(step)

    pane_cells = None
    if isinstance(step.split_sizing, DynamicCellsSizing):
        size = driver.pane_size(target)
        pane_cells = size.cells_along(orientation) if size is not None else None

    split_size = resolve_split_size(
        step,
        pane_cells=pane_cells,
        pane_id=target,
        detected_version=driver.detected_version,
        required_version=driver.required_version,
    )
    split_command = driver.build_split_command(target, orientation, split_size)
    driver.run(split_command, f"Failed to execute split step {step.id}", step.id)

    known = set(before)
    created = [pane_id for pane_id in driver.list_pane_ids() if pane_id not in known]
    if not created:
        raise CoreError(
            "execution",
            ErrorCode.TERMINAL_COMMAND_FAILED,
            f"Unable to determine the pane created by {step.id}",
            path=step.id,
            details={"target": target, "panes_before": before},
        )

    ctx.pane_map.register_with_ancestors(step.created_pane_id, created[0])
    logger.info("[%s] pane %s -> %s", driver.backend, step.created_pane_id, created[0])
    if driver.split_moves_focus:
        ctx.active_pane_id = created[0]
    ctx.executed_steps += 1


def _execute_focus(ctx: ExecutionContext, driver: PaneDriver, step: FocusStep) -> None:
    target = ctx.pane_map.require(step.target_pane_id, step.id)
    if target == ctx.active_pane_id:
        logger.debug("focus step %s skipped, %s is already active", step.id, target)
        return
    driver.run(driver.build_focus_command(target), f"Failed to execute focus step {step.id}", step.id)
    ctx.active_pane_id = target
    ctx.executed_steps += 1


def execute_plan(
    emission: PlanEmission,
    driver: PaneDriver,
    window_mode: WindowMode,
    window_name: str | None = None,
    confirm: ConfirmPaneClosure | None = None,
    sleep: SleepFunction = time.sleep,
) -> ApplyPlanResult:
    """Apply a plan emission against a live multiplexer.

    Steps run strictly in emission order. On failure nothing is rolled back;
    panes created so far stay open.

    Args:
        emission: The plan emission.
        driver: Driver for the target multiplexer. Its environment is
            verified first.
        window_mode: Reuse the current window or open a new one.
        window_name: Optional name for a new window.
        confirm: Asked before closing other panes of the current window.
        sleep: Suspension used for per-pane command delays.

    Returns:
        Number of executed steps and the real ID of the focused pane.

    Raises:
        EnvironmentCheckError: If the multiplexer prerequisites are not met.
        CoreError: On any unresolvable step, failed command or cancellation.
    """
    initial_virtual = _initial_pane_id(emission)
    initial_terminal = next((t for t in emission.terminals if t.virtual_pane_id == initial_virtual), None)
    initial_cwd = initial_terminal.cwd if initial_terminal is not None else None

    ctx = ExecutionContext(active_pane_id="")
    try:
        driver.verify()
        ctx.transition(ExecutionState.ENVIRONMENT_VERIFIED)

        initial_real = driver.acquire_initial_pane(window_mode, window_name, initial_cwd, confirm)
        ctx.active_pane_id = initial_real
        ctx.pane_map.register_with_ancestors(initial_virtual, initial_real)
        logger.info("[%s] pane %s -> %s", driver.backend, initial_virtual, initial_real)
        ctx.transition(ExecutionState.PANE_MAP_SEEDED)

        for step in emission.steps:
            if isinstance(step, SplitStep):
                _execute_split(ctx, driver, step)
            elif isinstance(step, FocusStep):
                _execute_focus(ctx, driver, step)
            else:
                raise CoreError(
                    "execution",
                    ErrorCode.INVALID_PLAN,
                    f"Unsupported step kind: {getattr(step, 'kind', step)!r}",
                    path=getattr(step, "id", None),
                )
            ctx.transition(ExecutionState.STEP_EXECUTED)

        focus_virtual = emission.summary.focus_pane_id
        prepared = prepare_terminal_commands(emission.terminals, focus_virtual, ctx.pane_map.require)
        for action in _terminal_actions(driver, prepared):
            if action.delay_ms > 0:
                sleep(action.delay_ms / 1000)
            driver.run(action.command, f"Failed to configure pane ({action.summary})", action.pane_id)
            if action.selects_pane:
                ctx.active_pane_id = action.pane_id
        ctx.transition(ExecutionState.TERMINALS_CONFIGURED)

        focus_real = ctx.pane_map.require(focus_virtual)
        if ctx.active_pane_id != focus_real:
            # Setting titles moved the selection; put focus back
            driver.run(driver.build_focus_command(focus_real), "Failed to restore focus", focus_virtual)
            ctx.active_pane_id = focus_real
        ctx.transition(ExecutionState.DONE)
    except MuxLayoutError as e:
        ctx.transition(ExecutionState.ABORTED)
        logger.debug("plan execution aborted: %s (%s)", e.code, e.message)
        raise

    return ApplyPlanResult(executed_steps=ctx.executed_steps, focus_pane_id=focus_real)


def build_dry_run_steps(emission: PlanEmission, driver: PaneDriver) -> list[DryRunStep]:
    """Render the commands a live run would perform, without running anything.

    Virtual pane IDs stand in for real ones. Dynamic split sizes come from a
    best-effort query of the current pane, or a ``<dynamic>`` placeholder when
    no geometry is available.

    Args:
        emission: The plan emission.
        driver: Driver used only for command building and the size query.

    Returns:
        One entry per performed step and per pane setup action.
    """
    initial = _initial_pane_id(emission)
    pane_map = PaneMap()
    pane_map.register_with_ancestors(initial, initial)
    active = initial

    pane_sizes: dict[str, PaneSize] = {}
    initial_size = driver.query_initial_pane_size()
    if initial_size is not None:
        pane_sizes[initial] = initial_size

    rendered: list[DryRunStep] = []
    for step in emission.steps:
        if isinstance(step, SplitStep):
            target = pane_map.require(step.target_pane_id, step.id)
            orientation = resolve_split_orientation(step)
            split_size: SplitSize | None = None
            if isinstance(step.split_sizing, DynamicCellsSizing):
                size = pane_sizes.get(target)
                if size is not None:
                    try:
                        split_size = resolve_split_size(
                            step,
                            pane_cells=size.cells_along(orientation),
                            pane_id=target,
                            detected_version=driver.detected_version,
                            required_version=driver.required_version,
                        )
                    except CoreError as e:
                        if e.code != ErrorCode.SPLIT_SIZE_RESOLUTION_FAILED:
                            raise
                        logger.debug("dry run: %s falls back to a placeholder size", step.id)
                if isinstance(split_size, CellsSplitSize):
                    update_pane_sizes(
                        pane_sizes,
                        target,
                        step.created_pane_id,
                        orientation,
                        split_size.target_cells,
                        split_size.created_cells,
                    )
            else:
                split_size = resolve_split_size(step, pane_id=target)
                size = pane_sizes.get(target)
                if isinstance(split_size, PercentSplitSize) and size is not None:
                    # Keep geometry current for dynamic splits further down the tree
                    cells = size.cells_along(orientation)
                    created_cells = round_half_up(cells * split_size.created_percentage / 100)
                    update_pane_sizes(
                        pane_sizes,
                        target,
                        step.created_pane_id,
                        orientation,
                        cells - created_cells,
                        created_cells,
                    )

            command = driver.build_split_command(target, orientation, split_size)
            rendered.append(DryRunStep(driver.backend, step.summary, format_command(command)))
            pane_map.register_with_ancestors(step.created_pane_id, step.created_pane_id)
            if driver.split_moves_focus:
                active = step.created_pane_id
        elif isinstance(step, FocusStep):
            target = pane_map.require(step.target_pane_id, step.id)
            if target == active:
                continue
            focus_command = driver.build_focus_command(target)
            rendered.append(DryRunStep(driver.backend, step.summary, format_command(focus_command)))
            active = target

    focus_virtual = emission.summary.focus_pane_id
    prepared = prepare_terminal_commands(emission.terminals, focus_virtual, pane_map.require)
    for action in _terminal_actions(driver, prepared):
        rendered.append(DryRunStep(driver.backend, action.summary, format_command(action.command)))
        if action.selects_pane:
            active = action.pane_id

    focus_target = pane_map.require(focus_virtual)
    if active != focus_target:
        restore_command = format_command(driver.build_focus_command(focus_target))
        rendered.append(DryRunStep(driver.backend, f"restore focus {focus_virtual}", restore_command))
    return rendered
