"""Compile, plan and emit a preset in one call."""

from dataclasses import dataclass

from muxlayout.compiler import CompiledPreset, compile_preset_from_value
from muxlayout.emitter import PlanEmission, emit_plan
from muxlayout.planner import LayoutPlan, create_layout_plan


@dataclass(frozen=True)
class PipelineResult:
    """Every intermediate product of the layout pipeline."""

    preset: CompiledPreset
    plan: LayoutPlan
    emission: PlanEmission


def build_plan_emission(value: object, source: str) -> PipelineResult:
    """Run a raw preset through the compiler, planner and emitter.

    Args:
        value: Raw preset mapping.
        source: Label used for error attribution.

    Returns:
        The compiled preset, its plan and the emission.
    """
    preset = compile_preset_from_value(value, source)
    plan = create_layout_plan(preset)
    return PipelineResult(preset=preset, plan=plan, emission=emit_plan(plan))
