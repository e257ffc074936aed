"""CLI entry point for muxlayout."""

import logging
from functools import partial
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape

from muxlayout import __version__
from muxlayout.backend import BackendContext, create_terminal_backend, resolve_backend_kind
from muxlayout.compiler import UNNAMED_PRESET
from muxlayout.config import (
    SAMPLE_CONFIG,
    BackendKind,
    display_config_warnings,
    get_preset,
    get_user_config_path,
    load_config,
    save_config,
)
from muxlayout.errors import ErrorCode, MuxLayoutError, format_error
from muxlayout.pipeline import build_plan_emission
from muxlayout.utils import compress_path, confirm_pane_closure, setup_logging
from muxlayout.window_mode import determine_cli_window_mode, resolve_window_mode

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="muxlayout",
    help="Apply declarative pane layouts to tmux or WezTerm.",
    no_args_is_help=False,
)

console = Console()
err_console = Console(stderr=True)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"muxlayout {__version__}")
        raise typer.Exit()


def _print_error(error: MuxLayoutError) -> None:
    """Print a formatted error to stderr."""
    if error.code == ErrorCode.USER_CANCELLED:
        err_console.print(f"[yellow]Cancelled:[/] {escape(error.message)}")
        return
    err_console.print(f"[red]Error:[/] {escape(format_error(error))}")


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    preset: Annotated[
        str | None,
        typer.Option("--preset", "-p", help="Preset key to apply (default: 'default' or the first preset)."),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", "-n", help="Preview commands without executing."),
    ] = False,
    current_window: Annotated[
        bool,
        typer.Option("--current-window", help="Apply the layout to the current window, closing other panes."),
    ] = False,
    new_window: Annotated[
        bool,
        typer.Option("--new-window", help="Apply the layout in a new window (tmux) or tab (wezterm)."),
    ] = False,
    backend: Annotated[
        BackendKind | None,
        typer.Option("--backend", "-b", help="Terminal backend to use."),
    ] = None,
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-C", help="Config file path."),
    ] = None,
    verbose: Annotated[
        int,
        typer.Option("--verbose", "-v", count=True, help="Increase verbosity."),
    ] = 0,
    debug: Annotated[
        bool,
        typer.Option("--debug", "-D", help="Enable debug output."),
    ] = False,
    strict: Annotated[
        bool,
        typer.Option("--strict", help="Exit with error on config validation warnings."),
    ] = False,
    version: Annotated[
        bool | None,
        typer.Option("--version", callback=version_callback, is_eager=True, help="Show version."),
    ] = None,
) -> None:
    """Apply a layout preset to the current terminal multiplexer."""
    setup_logging(verbose=verbose, debug=debug, console=err_console)

    # If a subcommand was invoked, don't run main logic
    if ctx.invoked_subcommand is not None:
        return

    try:
        cli_window_mode = determine_cli_window_mode(current_window, new_window)

        # Load configuration (use cwd for project-level config discovery)
        config, config_warnings = load_config(config_path, project_dir=Path.cwd(), strict=strict)
        if config_warnings:
            display_config_warnings(config_warnings, err_console)
            if strict:
                raise typer.Exit(1)

        preset_key, raw_preset = get_preset(config, preset)
        result = build_plan_emission(raw_preset, source=f"presets.{preset_key}")
        compiled = result.preset

        backend_kind = resolve_backend_kind(backend, compiled.backend, config.defaults.backend)
        window_mode, window_mode_source = resolve_window_mode(
            cli_window_mode, compiled.window_mode, config.defaults.window_mode
        )

        if debug or verbose > 0:
            console.print(f"[dim]Preset: {preset_key} ({escape(compiled.name)})[/]")
            console.print(f"[dim]Backend: {backend_kind.value}[/]")
            console.print(f"[dim]Window mode: {window_mode.value} (from {window_mode_source})[/]")
            console.print(f"[dim]Plan hash: {result.emission.hash}[/]")

        context = BackendContext(
            dry_run=dry_run,
            confirm=None if dry_run else partial(confirm_pane_closure, console=console),
            settings=config.execution,
        )
        logger.debug("Applying preset %s with backend %s", preset_key, backend_kind.value)
        terminal_backend = create_terminal_backend(backend_kind, context)
        terminal_backend.verify_environment()

        if dry_run:
            steps = terminal_backend.get_dry_run_steps(result.emission)
            console.print(f"[yellow]Commands that would be executed ({window_mode.value}):[/]")
            for index, step in enumerate(steps, start=1):
                console.print(f"  {index}. [cyan]\\[{step.backend}][/] {escape(step.summary)}")
                console.print(f"     [dim]{escape(step.command)}[/]")
            return

        window_name = None if compiled.name == UNNAMED_PRESET else compiled.name
        applied = terminal_backend.apply_plan(result.emission, window_mode, window_name=window_name)
        console.print(
            f"[green]✓[/] Applied preset [bold]{escape(compiled.name)}[/] "
            f"({applied.executed_steps} steps, focus {applied.focus_pane_id})"
        )
    except MuxLayoutError as e:
        _print_error(e)
        raise typer.Exit(1) from None
    except KeyboardInterrupt:
        err_console.print("[yellow]Interrupted.[/]")
        raise typer.Exit(130) from None


@app.command("list")
def list_presets(
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-C", help="Config file path."),
    ] = None,
) -> None:
    """List available presets."""
    from rich.table import Table

    try:
        config, warnings = load_config(config_path, project_dir=Path.cwd())
    except MuxLayoutError as e:
        _print_error(e)
        raise typer.Exit(1) from None

    if warnings:
        display_config_warnings(warnings, err_console)

    if not config.presets:
        console.print("[yellow]No presets defined.[/]")
        return

    table = Table(title="Available Presets")
    table.add_column("Key", style="cyan")
    table.add_column("Name")
    table.add_column("Description", style="dim")

    for key, raw in config.presets.items():
        name = raw.get("name")
        description = raw.get("description")
        table.add_row(
            key,
            name if isinstance(name, str) else "",
            description if isinstance(description, str) else "",
        )

    console.print(table)


config_app = typer.Typer(
    name="config",
    help="Configuration management commands.",
)
app.add_typer(config_app, name="config")


@config_app.command("validate")
def config_validate(
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-C", help="Config file path."),
    ] = None,
    project: Annotated[
        Path | None,
        typer.Option("--project", "-P", help="Project directory."),
    ] = None,
) -> None:
    """Validate config files and compile every preset."""
    project_dir = project or Path.cwd()
    try:
        config, warnings = load_config(config_path, project_dir=project_dir, strict=True)
    except MuxLayoutError as e:
        _print_error(e)
        raise typer.Exit(1) from None

    if warnings:
        display_config_warnings(warnings, err_console)
        raise typer.Exit(1)

    failed = 0
    for key, raw in config.presets.items():
        try:
            build_plan_emission(raw, source=f"presets.{key}")
        except MuxLayoutError as e:
            failed += 1
            err_console.print(f"[red]✗[/] {key}: {escape(format_error(e))}")
        else:
            console.print(f"[green]✓[/] {key}")

    if failed:
        raise typer.Exit(1)
    console.print("[green]✓[/] All config files are valid.")


@config_app.command("show")
def config_show(
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-C", help="Config file path."),
    ] = None,
    project: Annotated[
        Path | None,
        typer.Option("--project", "-P", help="Project directory."),
    ] = None,
) -> None:
    """Show effective merged configuration."""
    import yaml

    project_dir = project or Path.cwd()
    try:
        config, warnings = load_config(config_path, project_dir=project_dir)
    except MuxLayoutError as e:
        _print_error(e)
        raise typer.Exit(1) from None

    if warnings:
        display_config_warnings(warnings, err_console)

    data = config.model_dump(mode="json", by_alias=True, exclude_none=True)
    console.print(escape(yaml.dump(data, default_flow_style=False, sort_keys=False)))


@config_app.command("init")
def config_init(
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-C", help="Config file path."),
    ] = None,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Overwrite an existing config file."),
    ] = False,
) -> None:
    """Create a sample configuration file."""
    config_file = config_path or get_user_config_path()

    if config_file.exists() and not force:
        err_console.print(f"[yellow]Config file already exists:[/] {compress_path(str(config_file))}")
        raise typer.Exit(1)

    written = save_config(SAMPLE_CONFIG, config_file)
    console.print(f"[green]✓[/] Created config file: {compress_path(str(written))}")


if __name__ == "__main__":
    app()
