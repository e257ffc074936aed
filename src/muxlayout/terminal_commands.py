"""Per-pane setup commands (cwd, env, title, command) shared by live and dry runs."""

from collections.abc import Callable
from dataclasses import dataclass, field

from muxlayout.emitter import EmittedTerminal
from muxlayout.errors import CoreError, ErrorCode
from muxlayout.template_tokens import TemplateTokenError, build_name_to_pane_id_map, replace_template_tokens

FOCUS_PANE_TOKEN = "{{focus_pane}}"


@dataclass(frozen=True)
class PaneCommand:
    """The command text for one pane and how long to wait before sending it."""

    text: str
    delay_ms: int = 0


@dataclass(frozen=True)
class PreparedTerminal:
    """Everything that will be sent to one pane."""

    terminal: EmittedTerminal
    pane_id: str
    cwd_command: str | None = None
    env_commands: list[tuple[str, str]] = field(default_factory=list)
    title: str | None = None
    command: PaneCommand | None = None


def _escape_double_quotes(value: str) -> str:
    return value.replace('"', '\\"')


def _with_ephemeral_suffix(command: str, terminal: EmittedTerminal) -> str:
    """Append an auto-close suffix to ephemeral pane commands."""
    if not terminal.ephemeral:
        return command
    if terminal.close_on_error:
        return f"{command}; exit"
    return f"{command}; [ $? -eq 0 ] && exit"


def prepare_terminal_commands(
    terminals: tuple[EmittedTerminal, ...] | list[EmittedTerminal],
    focus_pane_virtual_id: str,
    resolve_pane_id: Callable[[str], str],
) -> list[PreparedTerminal]:
    """Build the setup commands for every pane in document order.

    Args:
        terminals: Emitted terminals.
        focus_pane_virtual_id: Virtual ID of the focus pane.
        resolve_pane_id: Maps a virtual pane ID to the ID used in commands.
            Raises if the pane is unknown.

    Returns:
        One prepared entry per terminal.

    Raises:
        CoreError: TEMPLATE_TOKEN_ERROR (kind "execution") for unknown pane names.
    """
    resolved = {terminal.virtual_pane_id: resolve_pane_id(terminal.virtual_pane_id) for terminal in terminals}
    focus_pane_id = resolve_pane_id(focus_pane_virtual_id)
    name_to_pane_id = build_name_to_pane_id_map(terminals, resolved.get)

    prepared: list[PreparedTerminal] = []
    for terminal in terminals:
        pane_id = resolved[terminal.virtual_pane_id]

        cwd_command = f'cd "{_escape_double_quotes(terminal.cwd)}"' if terminal.cwd else None
        env_commands = [(key, f'export {key}="{_escape_double_quotes(value)}"') for key, value in terminal.env]

        command = None
        if terminal.command:
            try:
                text = replace_template_tokens(
                    terminal.command,
                    current_pane_id=pane_id,
                    focus_pane_id=focus_pane_id if FOCUS_PANE_TOKEN in terminal.command else "",
                    name_to_pane_id=name_to_pane_id,
                )
            except TemplateTokenError as e:
                raise CoreError(
                    "execution",
                    ErrorCode.TEMPLATE_TOKEN_ERROR,
                    f"Template token resolution failed for pane {terminal.virtual_pane_id}: {e}",
                    path=terminal.virtual_pane_id,
                    details={
                        "command": terminal.command,
                        "token_type": e.token_type,
                        "available_panes": e.available_panes,
                    },
                ) from e
            command = PaneCommand(
                text=_with_ephemeral_suffix(text, terminal),
                delay_ms=terminal.delay if terminal.delay and terminal.delay > 0 else 0,
            )

        prepared.append(
            PreparedTerminal(
                terminal=terminal,
                pane_id=pane_id,
                cwd_command=cwd_command,
                env_commands=env_commands,
                title=terminal.title or None,
                command=command,
            )
        )
    return prepared
