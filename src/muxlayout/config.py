"""Configuration management for muxlayout."""

import logging
import os
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import cast

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from muxlayout.errors import ConfigError, ErrorCode
from muxlayout.xdg_paths import get_config_file_path

logger = logging.getLogger(__name__)

PROJECT_CONFIG_NAME = ".muxlayout.yaml"
PROJECT_LOCAL_CONFIG_NAME = ".muxlayout.yaml.local"
DEFAULT_PRESET_KEY = "default"


class WindowMode(StrEnum):
    """Where a layout is applied."""

    CURRENT_WINDOW = "current-window"  # reuse the current window, closing other panes
    NEW_WINDOW = "new-window"  # open a new window (tmux) or tab (wezterm)


class BackendKind(StrEnum):
    """Supported terminal multiplexers."""

    TMUX = "tmux"
    WEZTERM = "wezterm"


class DefaultsConfig(BaseModel):
    """Global defaults applied when a preset does not say otherwise."""

    model_config = ConfigDict(populate_by_name=True)

    window_mode: WindowMode | None = Field(default=None, alias="windowMode")
    backend: BackendKind | None = None


class ExecutionSettings(BaseModel):
    """Tunables for live plan execution."""

    model_config = ConfigDict(populate_by_name=True)

    # wezterm registers spawned panes asynchronously; poll this many times
    pane_registration_retries: int = Field(default=5, ge=1, alias="paneRegistrationRetries")
    # seconds between registration polls
    pane_registration_delay: float = Field(default=0.1, ge=0, alias="paneRegistrationDelay")


@dataclass
class ConfigWarning:
    """A config validation warning."""

    file: str
    field_name: str
    message: str
    value: object = field(default=None, repr=False)


class Config(BaseModel):
    """Configuration settings for muxlayout.

    Presets are kept as raw mappings; they are validated by the preset
    compiler so that errors can point at the offending layout node.
    """

    model_config = ConfigDict(populate_by_name=True)

    defaults: DefaultsConfig = DefaultsConfig()
    execution: ExecutionSettings = ExecutionSettings()
    presets: dict[str, dict[str, object]] = {}

    # When true in a project config, ignore all parent configs (user config)
    ignore_parent_configs: bool = False


def _deep_merge(base: dict[str, object], override: dict[str, object]) -> dict[str, object]:
    """Recursively merge override dict into base dict.

    For nested dicts, merges recursively. For all other types, override wins.

    Args:
        base: The base dictionary.
        override: The dictionary with overriding values.

    Returns:
        A new merged dictionary.
    """
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)  # type: ignore[arg-type]
        else:
            result[key] = value
    return result


def _window_mode_of(section: object) -> object:
    if not isinstance(section, dict):
        return None
    return section.get("windowMode", section.get("window_mode"))


def _merge_layers(
    base: dict[str, object], override: dict[str, object], override_file: str
) -> tuple[dict[str, object], list[ConfigWarning]]:
    """Merge one config layer over another.

    Presets are replaced whole per key; everything else deep-merges. A layer
    that changes the window mode of a preset or of the defaults produces a
    warning.

    Args:
        base: Already merged lower layers.
        override: The layer being applied.
        override_file: Path of the override layer, for warnings.

    Returns:
        Tuple of (merged dict, list of warnings).
    """
    warnings: list[ConfigWarning] = []

    base_defaults_mode = _window_mode_of(base.get("defaults"))
    override_defaults_mode = _window_mode_of(override.get("defaults"))
    if base_defaults_mode is not None and override_defaults_mode is not None:
        if base_defaults_mode != override_defaults_mode:
            warnings.append(
                ConfigWarning(
                    file=override_file,
                    field_name="defaults.windowMode",
                    message=f"windowMode {base_defaults_mode!r} overridden by {override_defaults_mode!r}",
                    value=override_defaults_mode,
                )
            )

    base_presets = base.get("presets")
    override_presets = override.get("presets")
    base_rest = {k: v for k, v in base.items() if k != "presets"}
    override_rest = {k: v for k, v in override.items() if k != "presets"}
    merged = _deep_merge(base_rest, override_rest)

    if isinstance(base_presets, dict) and isinstance(override_presets, dict):
        presets = dict(base_presets)
        for key, preset in override_presets.items():
            previous_mode = _window_mode_of(presets.get(key))
            new_mode = _window_mode_of(preset)
            if previous_mode is not None and new_mode is not None and previous_mode != new_mode:
                warnings.append(
                    ConfigWarning(
                        file=override_file,
                        field_name=f"presets.{key}.windowMode",
                        message=f"windowMode {previous_mode!r} overridden by {new_mode!r}",
                        value=new_mode,
                    )
                )
            presets[key] = preset
        merged["presets"] = presets
    elif override_presets is not None:
        merged["presets"] = override_presets
    elif base_presets is not None:
        merged["presets"] = base_presets

    return merged, warnings


def _load_yaml_file(path: Path) -> dict[str, object]:
    """Load a YAML config file.

    Args:
        path: Path to the YAML file.

    Returns:
        Parsed mapping. Empty dict when the file is empty.

    Raises:
        ConfigError: If the file cannot be read or is not valid YAML.
    """
    try:
        with path.open(encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except PermissionError as e:
        raise ConfigError(
            ErrorCode.CONFIG_PERMISSION_ERROR,
            f"Cannot read config file: {path}",
            {"path": str(path), "reason": str(e)},
        ) from e
    except yaml.YAMLError as e:
        raise ConfigError(
            ErrorCode.CONFIG_PARSE_ERROR,
            f"YAML parse error in {path}: {e}",
            {"path": str(path)},
        ) from e
    except OSError as e:
        raise ConfigError(
            ErrorCode.CONFIG_PERMISSION_ERROR,
            f"File read error: {path}",
            {"path": str(path), "reason": str(e)},
        ) from e

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(
            ErrorCode.CONFIG_PARSE_ERROR,
            f"Config file must contain a mapping: {path}",
            {"path": str(path)},
        )
    return cast(dict[str, object], raw)


def get_user_config_path() -> Path:
    """Get the user config path, honouring $MUXLAYOUT_CONFIG_PATH."""
    override_dir = os.environ.get("MUXLAYOUT_CONFIG_PATH")
    if override_dir:
        return Path(override_dir) / "config.yaml"
    return get_config_file_path()


def find_project_config_dir(start_dir: Path) -> Path | None:
    """Find the nearest directory holding a project config, walking upward.

    Args:
        start_dir: Directory to start searching from.

    Returns:
        The directory containing .muxlayout.yaml (or its .local variant), or None.
    """
    current = start_dir.resolve()
    for directory in (current, *current.parents):
        if (directory / PROJECT_CONFIG_NAME).is_file() or (directory / PROJECT_LOCAL_CONFIG_NAME).is_file():
            return directory
    return None


def load_config(
    config_path: Path | None = None,
    project_dir: Path | None = None,
    strict: bool = False,
) -> tuple[Config, list[ConfigWarning]]:
    """Load configuration with layered merging.

    Loading order (last value wins):
    1. User config (~/.config/muxlayout/config.yaml) - base
    2. Project config (nearest .muxlayout.yaml at or above project_dir)
    3. Project local config (.muxlayout.yaml.local next to it) - personal overrides

    An explicit config_path replaces the search entirely. If a project config
    sets ``ignore_parent_configs: true``, the user config is skipped.

    Args:
        config_path: Optional explicit config file.
        project_dir: Optional directory to start the project config search from.
        strict: If True, raise on validation errors instead of recovering.

    Returns:
        Tuple of (loaded Config, list of ConfigWarnings).

    Raises:
        ConfigError: If no config file exists, or a file cannot be read or parsed.
    """
    warnings: list[ConfigWarning] = []

    if config_path is not None:
        if not config_path.is_file():
            raise ConfigError(
                ErrorCode.CONFIG_NOT_FOUND,
                f"Config file not found: {config_path}",
                {"search_paths": [str(config_path)]},
            )
        layers = [(config_path, _load_yaml_file(config_path))]
    else:
        user_config_path = get_user_config_path()
        search_paths = [str(user_config_path)]
        layers = []
        if user_config_path.is_file():
            layers.append((user_config_path, _load_yaml_file(user_config_path)))

        project_layers: list[tuple[Path, dict[str, object]]] = []
        if project_dir is not None:
            search_paths.append(str(project_dir.resolve() / PROJECT_CONFIG_NAME))
            found_dir = find_project_config_dir(project_dir)
            if found_dir is not None:
                for name in (PROJECT_CONFIG_NAME, PROJECT_LOCAL_CONFIG_NAME):
                    path = found_dir / name
                    if path.is_file():
                        project_layers.append((path, _load_yaml_file(path)))

        if any(data.get("ignore_parent_configs", False) for _path, data in project_layers):
            layers = project_layers
        else:
            layers.extend(project_layers)

        if not layers:
            raise ConfigError(
                ErrorCode.CONFIG_NOT_FOUND,
                "No configuration file found",
                {"search_paths": search_paths},
            )

    merged: dict[str, object] = {}
    for path, data in layers:
        logger.debug("Loading config layer %s", path)
        merged, layer_warnings = _merge_layers(merged, data, str(path))
        warnings.extend(layer_warnings)

    try:
        return Config.model_validate(merged), warnings
    except ValidationError as e:
        for error in e.errors():
            field_path = ".".join(str(loc) for loc in error["loc"])
            warnings.append(
                ConfigWarning(
                    file="merged config",
                    field_name=field_path,
                    message=error["msg"],
                    value=error.get("input"),
                )
            )

        if strict:
            raise ConfigError(
                ErrorCode.INVALID_CONFIG,
                "Configuration is invalid",
                {"errors": [f"{w.field_name}: {w.message}" for w in warnings]},
            ) from e

        # Attempt partial recovery: remove bad fields and retry
        for error in e.errors():
            loc = error["loc"]
            if not loc:
                continue
            top_key = str(loc[0])
            presets = merged.get("presets")
            if top_key == "presets" and len(loc) > 1 and isinstance(presets, dict):
                presets.pop(str(loc[1]), None)
            else:
                merged.pop(top_key, None)
        try:
            return Config.model_validate(merged), warnings
        except ValidationError:
            return Config(), warnings


def get_preset(config: Config, key: str | None = None) -> tuple[str, dict[str, object]]:
    """Look up a raw preset by key.

    Args:
        config: The loaded configuration.
        key: Preset key. None selects "default", or else the first preset.

    Returns:
        Tuple of (preset key, raw preset mapping).

    Raises:
        ConfigError: If the preset does not exist.
    """
    available = list(config.presets)
    if key is None:
        if DEFAULT_PRESET_KEY in config.presets:
            key = DEFAULT_PRESET_KEY
        elif available:
            key = available[0]
        else:
            raise ConfigError(ErrorCode.PRESET_NOT_FOUND, "No presets defined", {"available_presets": []})

    if key not in config.presets:
        raise ConfigError(
            ErrorCode.PRESET_NOT_FOUND,
            f'Preset "{key}" not found',
            {"preset": key, "available_presets": available},
        )
    return key, config.presets[key]


def display_config_warnings(warnings: list[ConfigWarning], console: Console) -> None:
    """Display config warnings using Rich formatting.

    Args:
        warnings: List of warnings to display.
        console: Rich console to output to.
    """
    if not warnings:
        return

    text = Text()
    for i, warning in enumerate(warnings):
        if i > 0:
            text.append("\n")
        text.append(f"  {warning.file}", style="dim")
        text.append(": ", style="dim")
        text.append(warning.field_name, style="bold")
        text.append(f": {warning.message}", style="yellow")
        if warning.value is not None:
            text.append(f" (got: {warning.value!r})", style="dim")

    console.print(Panel(text, title="[yellow]Config Warnings[/]", border_style="yellow"))


SAMPLE_CONFIG: dict[str, object] = {
    "defaults": {"windowMode": WindowMode.NEW_WINDOW.value},
    "presets": {
        "default": {
            "name": "Development",
            "description": "Editor on the left, shell and logs stacked on the right",
            "layout": {
                "type": "horizontal",
                "ratio": [3, 2],
                "panes": [
                    {"name": "editor", "command": "${EDITOR:-vim}", "focus": True},
                    {
                        "type": "vertical",
                        "ratio": [1, 1],
                        "panes": [
                            {"name": "shell"},
                            {"name": "logs", "command": "echo 'editor pane is {{pane_id:editor}}'"},
                        ],
                    },
                ],
            },
        },
    },
}


def save_config(data: dict[str, object], config_path: Path | None = None) -> Path:
    """Write a config mapping to a YAML file.

    Args:
        data: The configuration mapping to save.
        config_path: Optional path to config file. Uses the user config path if None.

    Returns:
        The path written to.
    """
    path = config_path or get_user_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    with path.open("w", encoding="utf-8") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)
    return path
