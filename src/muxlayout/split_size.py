"""Split-size resolution from sizing intent and live pane geometry."""

import math
from dataclasses import dataclass

from muxlayout.compiler import FixedCells, Orientation
from muxlayout.emitter import CommandStep, DynamicCellsSizing, PercentSizing, SplitStep
from muxlayout.errors import CoreError, ErrorCode
from muxlayout.utils import round_half_up

MIN_PERCENTAGE = 1
MAX_PERCENTAGE = 99


@dataclass(frozen=True)
class PercentSplitSize:
    """Percent split: the target keeps target_percentage of the pane."""

    target_percentage: int
    created_percentage: int


@dataclass(frozen=True)
class CellsSplitSize:
    """Absolute split in cells along the split axis."""

    target_cells: int
    created_cells: int


SplitSize = PercentSplitSize | CellsSplitSize


@dataclass(frozen=True)
class PaneSize:
    """Pane dimensions in cells."""

    cols: int
    rows: int

    def cells_along(self, orientation: Orientation) -> int:
        """Cells along the split axis: columns for horizontal, rows for vertical."""
        return self.cols if orientation == Orientation.HORIZONTAL else self.rows


def _require_split_step(step: CommandStep) -> SplitStep:
    if not isinstance(step, SplitStep):
        raise CoreError(
            "execution",
            ErrorCode.INVALID_PLAN,
            "Non-split step cannot resolve split metadata",
            path=step.id,
            details={"kind": step.kind},
        )
    return step


def resolve_split_orientation(step: CommandStep) -> Orientation:
    """Get the orientation of a split step.

    Raises:
        CoreError: INVALID_PLAN if the step is not a split or lacks an orientation.
    """
    split_step = _require_split_step(step)
    try:
        return Orientation(split_step.orientation)
    except ValueError:
        raise CoreError(
            "execution",
            ErrorCode.INVALID_PLAN,
            "Split step missing orientation metadata",
            path=split_step.id,
            details={"orientation": split_step.orientation},
        ) from None


def _resolve_percent(step: SplitStep, sizing: PercentSizing) -> PercentSplitSize:
    percentage = sizing.percentage
    if not isinstance(percentage, int | float) or isinstance(percentage, bool) or not math.isfinite(percentage):
        raise CoreError(
            "execution",
            ErrorCode.INVALID_PLAN,
            "Split step missing percentage metadata",
            path=step.id,
            details={"percentage": percentage},
        )
    target = min(MAX_PERCENTAGE, max(MIN_PERCENTAGE, round_half_up(percentage)))
    return PercentSplitSize(target_percentage=target, created_percentage=100 - target)


def _resolve_cells(
    step: SplitStep,
    sizing: DynamicCellsSizing,
    pane_cells: int | None,
    details: dict[str, object],
) -> CellsSplitSize:
    def failure(message: str, **extra: object) -> CoreError:
        return CoreError(
            "execution",
            ErrorCode.SPLIT_SIZE_RESOLUTION_FAILED,
            message,
            path=step.id,
            details={**details, "pane_cells": pane_cells, **extra},
        )

    if pane_cells is None or pane_cells <= 0:
        raise failure("Pane size is unavailable for a dynamic-cells split")

    target = sizing.target
    min_target = target.cells if isinstance(target, FixedCells) else 1
    # Reserve at least one cell per weighted sibling still to be split off
    min_created = sizing.remaining_fixed_cells + sizing.remaining_weight_pane_count

    if pane_cells < min_target + min_created:
        raise failure(
            f"Pane has {pane_cells} cells but at least {min_target + min_created} are required",
            min_target_cells=min_target,
            min_created_cells=min_created,
        )

    if isinstance(target, FixedCells):
        target_cells = target.cells
    else:
        available = pane_cells - sizing.remaining_fixed_cells
        share = target.weight / (target.weight + sizing.remaining_weight)
        target_cells = round_half_up(available * share)
        target_cells = min(pane_cells - min_created, max(min_target, target_cells))

    created_cells = pane_cells - target_cells
    if target_cells < min_target or created_cells < min_created or target_cells <= 0 or created_cells <= 0:
        raise failure(
            "Split cannot satisfy the minimum pane sizes",
            target_cells=target_cells,
            created_cells=created_cells,
        )

    return CellsSplitSize(target_cells=target_cells, created_cells=created_cells)


def resolve_split_size(
    step: CommandStep,
    pane_cells: int | None = None,
    pane_id: str | None = None,
    detected_version: str | None = None,
    required_version: str | None = None,
) -> SplitSize:
    """Compute the numeric split argument for a split step.

    Args:
        step: The split step.
        pane_cells: Live cells of the pane being split, along the split axis.
            Only needed for dynamic-cells sizing.
        pane_id: Real pane ID, reported on failure.
        detected_version: Multiplexer version, reported on failure.
        required_version: Minimum multiplexer version, reported on failure.

    Returns:
        A percent split (clamped to 1..99) or a cells split.

    Raises:
        CoreError: INVALID_PLAN for malformed sizing, SPLIT_SIZE_RESOLUTION_FAILED
            when the pane is too small for the requested minimums.
    """
    split_step = _require_split_step(step)
    sizing = split_step.split_sizing
    if isinstance(sizing, PercentSizing):
        return _resolve_percent(split_step, sizing)
    if isinstance(sizing, DynamicCellsSizing):
        details: dict[str, object] = {"pane_id": pane_id}
        if detected_version is not None:
            details["detected_version"] = detected_version
        if required_version is not None:
            details["required_version"] = required_version
        return _resolve_cells(split_step, sizing, pane_cells, details)
    raise CoreError(
        "execution",
        ErrorCode.INVALID_PLAN,
        "Split step has unknown sizing",
        path=split_step.id,
        details={"sizing": repr(sizing)},
    )


def update_pane_sizes(
    pane_sizes: dict[str, PaneSize],
    target_pane_id: str,
    created_pane_id: str,
    orientation: Orientation,
    target_cells: int,
    created_cells: int,
) -> None:
    """Record the geometry of both halves after a cells split.

    Lets chained dynamic splits resolve without re-querying the multiplexer.
    Does nothing when the target's size is unknown.
    """
    base = pane_sizes.get(target_pane_id)
    if base is None:
        return
    if orientation == Orientation.HORIZONTAL:
        pane_sizes[target_pane_id] = PaneSize(cols=target_cells, rows=base.rows)
        pane_sizes[created_pane_id] = PaneSize(cols=created_cells, rows=base.rows)
    else:
        pane_sizes[target_pane_id] = PaneSize(cols=base.cols, rows=target_cells)
        pane_sizes[created_pane_id] = PaneSize(cols=base.cols, rows=created_cells)
