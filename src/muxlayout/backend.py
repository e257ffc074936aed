"""Terminal backend abstraction, backend selection and construction."""

import os
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Protocol

from muxlayout.config import BackendKind, ExecutionSettings, WindowMode
from muxlayout.emitter import PlanEmission
from muxlayout.errors import ErrorCode, MuxLayoutError
from muxlayout.plan_runner import ApplyPlanResult, ConfirmPaneClosure, DryRunStep, SleepFunction


class TerminalBackend(Protocol):
    """The three operations every multiplexer backend provides."""

    def verify_environment(self) -> None:
        """Fail fast when binary, version or session prerequisites are unmet."""
        ...

    def apply_plan(
        self, emission: PlanEmission, window_mode: WindowMode, window_name: str | None = None
    ) -> ApplyPlanResult:
        """Execute the emission against the live multiplexer."""
        ...

    def get_dry_run_steps(self, emission: PlanEmission) -> list[DryRunStep]:
        """Render the emission as commands without running anything."""
        ...


@dataclass
class BackendContext:
    """Collaborators shared by every backend."""

    dry_run: bool = False
    confirm: ConfirmPaneClosure | None = None
    settings: ExecutionSettings = field(default_factory=ExecutionSettings)
    sleep: SleepFunction = time.sleep
    environ: Mapping[str, str] = field(default_factory=lambda: os.environ)


def resolve_backend_kind(
    cli_backend: BackendKind | str | None = None,
    preset_backend: BackendKind | str | None = None,
    default_backend: BackendKind | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> BackendKind:
    """Pick the backend: CLI, then preset, then config default, then environment.

    Inside tmux ($TMUX) tmux wins, inside WezTerm ($WEZTERM_PANE) wezterm
    wins, and tmux is the fallback.

    Raises:
        MuxLayoutError: BACKEND_NOT_FOUND for an unknown backend name.
    """
    for candidate in (cli_backend, preset_backend, default_backend):
        if candidate is None or candidate == "":
            continue
        try:
            return BackendKind(candidate)
        except ValueError:
            raise MuxLayoutError(
                ErrorCode.BACKEND_NOT_FOUND,
                f"Unknown backend: {candidate}",
                {"backend": str(candidate), "available": [kind.value for kind in BackendKind]},
            ) from None

    env = os.environ if environ is None else environ
    if env.get("TMUX"):
        return BackendKind.TMUX
    if env.get("WEZTERM_PANE"):
        return BackendKind.WEZTERM
    return BackendKind.TMUX


def create_terminal_backend(kind: BackendKind, context: BackendContext) -> TerminalBackend:
    """Construct the backend for a multiplexer kind.

    Args:
        kind: Which multiplexer to drive.
        context: Shared collaborators.

    Returns:
        The backend instance.
    """
    from muxlayout.tmux_backend import TmuxBackend
    from muxlayout.wezterm_backend import WeztermBackend

    backends: dict[BackendKind, type[TmuxBackend] | type[WeztermBackend]] = {
        BackendKind.TMUX: TmuxBackend,
        BackendKind.WEZTERM: WeztermBackend,
    }
    return backends[kind](context)
