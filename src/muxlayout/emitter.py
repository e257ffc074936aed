"""Plan emitter: flattens a layout plan into ordered binary split and focus steps."""

import hashlib
import json
from dataclasses import dataclass
from typing import Literal

from muxlayout.compiler import FixedCells, Orientation, Weight, WeightSpec
from muxlayout.errors import CoreError, ErrorCode
from muxlayout.planner import LayoutPlan, PlanNode, PlanSplit, PlanTerminal, iter_terminals
from muxlayout.utils import round_half_up


@dataclass(frozen=True)
class PercentSizing:
    """Static sizing: the split target keeps this share of the pane."""

    percentage: float
    mode: Literal["percent"] = "percent"


@dataclass(frozen=True)
class DynamicCellsSizing:
    """Sizing resolved at execution time from live pane geometry.

    The remaining_* fields describe the siblings not yet split off, so enough
    space can be reserved for them.
    """

    target: WeightSpec
    remaining_fixed_cells: int
    remaining_weight: float
    remaining_weight_pane_count: int
    mode: Literal["dynamic-cells"] = "dynamic-cells"


SplitSizing = PercentSizing | DynamicCellsSizing


@dataclass(frozen=True)
class SplitStep:
    """Split target_pane_id, creating created_pane_id after it."""

    id: str
    target_pane_id: str
    created_pane_id: str
    orientation: Orientation
    split_sizing: SplitSizing
    summary: str
    kind: Literal["split"] = "split"


@dataclass(frozen=True)
class FocusStep:
    """Select target_pane_id."""

    id: str
    target_pane_id: str
    summary: str
    kind: Literal["focus"] = "focus"


CommandStep = SplitStep | FocusStep


@dataclass(frozen=True)
class EmittedTerminal:
    """Per-pane setup applied after all split and focus steps."""

    virtual_pane_id: str
    name: str
    focus: bool
    command: str | None = None
    cwd: str | None = None
    env: tuple[tuple[str, str], ...] = ()
    delay: int | None = None
    title: str | None = None
    ephemeral: bool = False
    close_on_error: bool = False


@dataclass(frozen=True)
class EmissionSummary:
    """Counts and the anchor panes of an emission."""

    steps_count: int
    focus_pane_id: str
    initial_pane_id: str


@dataclass(frozen=True)
class PlanEmission:
    """Ordered steps, terminal setup and a content hash."""

    steps: tuple[CommandStep, ...]
    terminals: tuple[EmittedTerminal, ...]
    summary: EmissionSummary
    hash: str


def _weight_spec_to_dict(spec: WeightSpec) -> dict[str, object]:
    if isinstance(spec, FixedCells):
        return {"kind": "fixed-cells", "cells": spec.cells}
    return {"kind": "weight", "weight": spec.weight}


def _sizing_to_dict(sizing: SplitSizing) -> dict[str, object]:
    if isinstance(sizing, PercentSizing):
        return {"mode": sizing.mode, "percentage": sizing.percentage}
    return {
        "mode": sizing.mode,
        "target": _weight_spec_to_dict(sizing.target),
        "remaining_fixed_cells": sizing.remaining_fixed_cells,
        "remaining_weight": sizing.remaining_weight,
        "remaining_weight_pane_count": sizing.remaining_weight_pane_count,
    }


def step_to_dict(step: CommandStep) -> dict[str, object]:
    """Serialize a step with a fixed field layout."""
    if isinstance(step, FocusStep):
        return {"id": step.id, "kind": step.kind, "target_pane_id": step.target_pane_id, "summary": step.summary}
    return {
        "id": step.id,
        "kind": step.kind,
        "target_pane_id": step.target_pane_id,
        "created_pane_id": step.created_pane_id,
        "orientation": step.orientation.value,
        "split_sizing": _sizing_to_dict(step.split_sizing),
        "summary": step.summary,
    }


def terminal_to_dict(terminal: EmittedTerminal) -> dict[str, object]:
    """Serialize a terminal with a fixed field layout."""
    return {
        "virtual_pane_id": terminal.virtual_pane_id,
        "name": terminal.name,
        "focus": terminal.focus,
        "command": terminal.command,
        "cwd": terminal.cwd,
        "env": [[key, value] for key, value in terminal.env],
        "delay": terminal.delay,
        "title": terminal.title,
        "ephemeral": terminal.ephemeral,
        "close_on_error": terminal.close_on_error,
    }


def compute_emission_hash(
    steps: tuple[CommandStep, ...], terminals: tuple[EmittedTerminal, ...], summary: EmissionSummary
) -> str:
    """SHA-256 over a canonical JSON form of the emission content."""
    payload = {
        "steps": [step_to_dict(step) for step in steps],
        "terminals": [terminal_to_dict(terminal) for terminal in terminals],
        "summary": {
            "steps_count": summary.steps_count,
            "focus_pane_id": summary.focus_pane_id,
            "initial_pane_id": summary.initial_pane_id,
        },
    }
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _split_sizing(node: PlanSplit, index: int) -> SplitSizing:
    """Sizing for the step that splits panes[index - 1] off from panes[index:]."""
    specs = node.ratio
    if any(isinstance(spec, FixedCells) for spec in specs):
        remaining = specs[index:]
        return DynamicCellsSizing(
            target=specs[index - 1],
            remaining_fixed_cells=sum(spec.cells for spec in remaining if isinstance(spec, FixedCells)),
            remaining_weight=sum(spec.weight for spec in remaining if isinstance(spec, Weight)),
            remaining_weight_pane_count=sum(1 for spec in remaining if isinstance(spec, Weight)),
        )

    group = node.percentages[index - 1 :]
    group_total = sum(group)
    if group_total <= 0:
        return PercentSizing(percentage=round_half_up(100 / len(group)))
    return PercentSizing(percentage=round_half_up(100 * group[0] / group_total))


def _collect_split_steps(node: PlanNode, steps: list[CommandStep]) -> None:
    """Emit every split of a node before descending into its children."""
    if isinstance(node, PlanTerminal):
        return

    if not node.panes or len(node.ratio) != len(node.panes) or len(node.percentages) != len(node.panes):
        raise CoreError(
            "emit",
            ErrorCode.EMIT_INVALID_PLAN,
            f"Split {node.id} cannot be decomposed into binary splits",
            path=node.id,
            details={"panes": len(node.panes), "ratio": len(node.ratio)},
        )

    for index in range(1, len(node.panes)):
        target_pane_id = node.panes[index - 1].id
        created_pane_id = node.panes[index].id
        steps.append(
            SplitStep(
                id=f"{node.id}:split:{index}",
                target_pane_id=target_pane_id,
                created_pane_id=created_pane_id,
                orientation=node.orientation,
                split_sizing=_split_sizing(node, index),
                summary=f"split {target_pane_id} {node.orientation.value} -> {created_pane_id}",
            )
        )

    for child in node.panes:
        _collect_split_steps(child, steps)


def _initial_pane_id(node: PlanNode) -> str:
    while isinstance(node, PlanSplit):
        node = node.panes[0]
    return node.id


def emit_plan(plan: LayoutPlan) -> PlanEmission:
    """Flatten a layout plan into an ordered emission.

    An N-way split becomes N-1 binary splits: step k splits panes[k-1] off
    from the group panes[k-1:], creating panes[k]. All splits of a node come
    before those of its children, and one focus step closes the list.

    Args:
        plan: The layout plan.

    Returns:
        The plan emission with its content hash.

    Raises:
        CoreError: EMIT_INVALID_PLAN (kind "emit") for an undecomposable split.
    """
    steps: list[CommandStep] = []
    _collect_split_steps(plan.root, steps)
    steps.append(
        FocusStep(
            id=f"{plan.focus_pane_id}:focus",
            target_pane_id=plan.focus_pane_id,
            summary=f"select pane {plan.focus_pane_id}",
        )
    )

    terminals = tuple(
        EmittedTerminal(
            virtual_pane_id=terminal.id,
            name=terminal.name,
            focus=terminal.focus,
            command=terminal.command,
            cwd=terminal.cwd,
            env=terminal.env,
            delay=terminal.delay,
            title=terminal.title,
            ephemeral=terminal.ephemeral,
            close_on_error=terminal.close_on_error,
        )
        for terminal in iter_terminals(plan.root)
    )
    summary = EmissionSummary(
        steps_count=len(steps),
        focus_pane_id=plan.focus_pane_id,
        initial_pane_id=_initial_pane_id(plan.root),
    )
    frozen_steps = tuple(steps)
    return PlanEmission(
        steps=frozen_steps,
        terminals=terminals,
        summary=summary,
        hash=compute_emission_hash(frozen_steps, terminals, summary),
    )
