"""Layout planner: assigns hierarchical virtual pane IDs to a compiled preset."""

from dataclasses import dataclass, replace

from muxlayout.compiler import CompiledPreset, LayoutNode, Orientation, TerminalPane, Weight, WeightSpec
from muxlayout.errors import CoreError, ErrorCode
from muxlayout.ratio import normalize_ratio

ROOT_PANE_ID = "root"


@dataclass(frozen=True)
class PlanTerminal:
    """A terminal pane with its virtual ID."""

    id: str
    name: str
    command: str | None = None
    cwd: str | None = None
    env: tuple[tuple[str, str], ...] = ()
    focus: bool = False
    delay: int | None = None
    title: str | None = None
    ephemeral: bool = False
    close_on_error: bool = False


@dataclass(frozen=True)
class PlanSplit:
    """A split node with its virtual ID and normalized percentages."""

    id: str
    orientation: Orientation
    ratio: tuple[WeightSpec, ...]
    percentages: tuple[int, ...]
    panes: tuple["PlanNode", ...]


PlanNode = PlanTerminal | PlanSplit


@dataclass(frozen=True)
class LayoutPlan:
    """The planned layout tree with exactly one focus pane."""

    root: PlanNode
    focus_pane_id: str


def _terminal_node(pane_id: str, terminal: TerminalPane) -> PlanTerminal:
    return PlanTerminal(
        id=pane_id,
        name=terminal.name,
        command=terminal.command,
        cwd=terminal.cwd,
        env=terminal.env,
        focus=terminal.focus,
        delay=terminal.delay,
        title=terminal.title,
        ephemeral=terminal.ephemeral,
        close_on_error=terminal.close_on_error,
    )


def _build(node: LayoutNode, pane_id: str, focus_ids: list[str], terminal_ids: list[str]) -> PlanNode:
    """Walk the layout depth-first, collecting terminal and focus IDs in document order."""
    if isinstance(node, TerminalPane):
        terminal_ids.append(pane_id)
        if node.focus:
            focus_ids.append(pane_id)
        return _terminal_node(pane_id, node)

    panes = tuple(_build(child, f"{pane_id}.{i}", focus_ids, terminal_ids) for i, child in enumerate(node.panes))
    # Fixed-cell entries count as weight 0 for the static percentages
    weights = [spec.weight if isinstance(spec, Weight) else 0 for spec in node.ratio]
    return PlanSplit(
        id=pane_id,
        orientation=node.orientation,
        ratio=node.ratio,
        percentages=tuple(normalize_ratio(weights)),
        panes=panes,
    )


def _apply_focus(node: PlanNode, focus_pane_id: str) -> PlanNode:
    if isinstance(node, PlanTerminal):
        return replace(node, focus=node.id == focus_pane_id)
    return replace(node, panes=tuple(_apply_focus(child, focus_pane_id) for child in node.panes))


def create_layout_plan(preset: CompiledPreset) -> LayoutPlan:
    """Assign virtual pane IDs and pick the focus pane.

    A preset without a layout becomes a single focused terminal named after
    the preset and running its command. Without an explicit focus, the first
    terminal in document order is focused.

    Args:
        preset: The compiled preset.

    Returns:
        The layout plan.

    Raises:
        CoreError: FOCUS_CONFLICT or NO_TERMINAL_PANES (kind "plan").
    """
    if preset.layout is None:
        root = PlanTerminal(id=ROOT_PANE_ID, name=preset.name, command=preset.command, focus=True)
        return LayoutPlan(root=root, focus_pane_id=ROOT_PANE_ID)

    focus_ids: list[str] = []
    terminal_ids: list[str] = []
    built = _build(preset.layout, ROOT_PANE_ID, focus_ids, terminal_ids)

    if len(focus_ids) > 1:
        raise CoreError(
            "plan",
            ErrorCode.FOCUS_CONFLICT,
            "More than one pane is marked as focus",
            path="preset.layout",
            source=preset.source,
            details={"focus_pane_ids": focus_ids},
        )
    if not terminal_ids:
        raise CoreError(
            "plan",
            ErrorCode.NO_TERMINAL_PANES,
            "Layout contains no terminal panes",
            path="preset.layout",
            source=preset.source,
        )

    focus_pane_id = focus_ids[0] if focus_ids else terminal_ids[0]
    return LayoutPlan(root=_apply_focus(built, focus_pane_id), focus_pane_id=focus_pane_id)


def iter_terminals(node: PlanNode) -> list[PlanTerminal]:
    """List terminal panes in document order."""
    if isinstance(node, PlanTerminal):
        return [node]
    terminals: list[PlanTerminal] = []
    for child in node.panes:
        terminals.extend(iter_terminals(child))
    return terminals
