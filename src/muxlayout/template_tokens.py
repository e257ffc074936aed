"""Template token substitution for pane commands.

Supported tokens:

- ``{{this_pane}}``: the pane receiving the command
- ``{{focus_pane}}``: the pane that ends up focused
- ``{{pane_id:<name>}}``: the pane with the given terminal name
"""

import re
from collections.abc import Callable, Iterable, Mapping

from muxlayout.emitter import EmittedTerminal

_TOKEN_PATTERN = re.compile(r"\{\{(this_pane|focus_pane|pane_id:([^}]+))\}\}")


class TemplateTokenError(ValueError):
    """A template token could not be resolved."""

    def __init__(self, message: str, token_type: str, available_panes: list[str] | None = None) -> None:
        super().__init__(message)
        self.token_type = token_type
        self.available_panes = available_panes or []


def replace_template_tokens(
    command: str,
    current_pane_id: str,
    focus_pane_id: str,
    name_to_pane_id: Mapping[str, str],
) -> str:
    """Replace template tokens in a single pass.

    Substituted text is never scanned again, so a pane ID that happens to
    look like a token is left alone.

    Args:
        command: Command text containing tokens.
        current_pane_id: Real ID for ``{{this_pane}}``.
        focus_pane_id: Real ID for ``{{focus_pane}}``.
        name_to_pane_id: Terminal name to real pane ID.

    Returns:
        The command with all tokens replaced.

    Raises:
        TemplateTokenError: If a ``pane_id`` token names an unknown pane.
    """

    def substitute(match: re.Match[str]) -> str:
        token = match.group(1)
        if token == "this_pane":
            return current_pane_id
        if token == "focus_pane":
            return focus_pane_id

        name = match.group(2).strip()
        pane_id = name_to_pane_id.get(name)
        if pane_id is None:
            available = list(name_to_pane_id)
            raise TemplateTokenError(
                f'Pane name "{name}" not found. Available panes: {", ".join(available)}',
                "pane_id",
                available,
            )
        return pane_id

    return _TOKEN_PATTERN.sub(substitute, command)


def build_name_to_pane_id_map(
    terminals: Iterable[EmittedTerminal], resolve: Callable[[str], str | None]
) -> dict[str, str]:
    """Map terminal names to real pane IDs.

    When names repeat, the last terminal in document order wins. Terminals
    whose pane cannot be resolved are left out.
    """
    mapping: dict[str, str] = {}
    for terminal in terminals:
        real_id = resolve(terminal.virtual_pane_id)
        if real_id is not None:
            mapping[terminal.name] = real_id
    return mapping
