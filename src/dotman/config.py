"""Repository location and settings for dotman."""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import typer

from .exceptions import ConfigDirLookupError, NoHomeDirError

# Constants
DIR_ENV_VAR = "DOTMAN_DIR"
DATA_HOME_ENV_VAR = "XDG_DATA_HOME"
HOME_ENV_VAR = "HOME"
APP_DIR_NAME = "dotman"
DEFAULT_SUBPATH = Path(".config") / APP_DIR_NAME
FILES_DIR_NAME = "files"
INDEX_FILENAME = "index.txt"
LOCK_FILENAME = "index.lock"
CONFIG_FILENAME = "config.json"

# Default configuration
DEFAULT_CONFIG: Dict[str, Any] = {
    "default_branch": "main",
    "remote_name": "origin",
    "commit_message": "Update dotfiles",
}


# ============================================================================
# PATH MANAGEMENT
# ============================================================================


def get_home_dir(environ: Optional[Mapping[str, str]] = None) -> Path:
    """Get the home directory from the environment."""
    if environ is None:
        environ = os.environ
    home = environ.get(HOME_ENV_VAR, "")
    if not home:
        raise NoHomeDirError("HOME is not set; cannot locate your home directory")
    return Path(home)


def resolve_config_dir(environ: Optional[Mapping[str, str]] = None) -> Path:
    """
    Work out where the dotman repository lives.

    $DOTMAN_DIR wins and is used verbatim, then $XDG_DATA_HOME/dotman, then
    ~/.config/dotman. Only the environment is consulted.
    """
    if environ is None:
        environ = os.environ

    override = environ.get(DIR_ENV_VAR)
    if override:
        return Path(override)

    data_home = environ.get(DATA_HOME_ENV_VAR)
    if data_home:
        return Path(data_home) / APP_DIR_NAME

    return get_home_dir(environ) / DEFAULT_SUBPATH


@dataclass
class Context:
    """Resolved locations shared by every dotman operation."""

    home: Path
    config_dir: Path
    settings: Dict[str, Any] = field(default_factory=dict)

    @property
    def files_root(self) -> Path:
        return self.config_dir / FILES_DIR_NAME

    @property
    def index_file(self) -> Path:
        return self.config_dir / INDEX_FILENAME

    @property
    def config_file(self) -> Path:
        return self.config_dir / CONFIG_FILENAME

    def setting(self, key: str) -> Any:
        return self.settings.get(key, DEFAULT_CONFIG.get(key))


def load_context(environ: Optional[Mapping[str, str]] = None) -> Context:
    """Build a Context from the environment.

    The home directory is canonicalized so that containment checks compare
    like with like when $HOME itself sits behind a symlink. A relative
    config directory is anchored at the current directory so that stored
    repository paths are always absolute.
    """
    home = Path(os.path.realpath(get_home_dir(environ)))
    config_dir = Path(os.path.abspath(resolve_config_dir(environ)))

    if config_dir.exists() and not config_dir.is_dir():
        raise ConfigDirLookupError(
            f"{config_dir} exists but is not a directory; "
            f"set {DIR_ENV_VAR} to use another location"
        )

    return Context(home=home, config_dir=config_dir, settings=load_config(config_dir))


# ============================================================================
# CONFIGURATION MANAGEMENT
# ============================================================================


def load_config(config_dir: Path) -> Dict[str, Any]:
    """Load configuration from config file, or return default if not exists."""
    config_file = config_dir / CONFIG_FILENAME
    if not config_file.exists():
        return DEFAULT_CONFIG.copy()

    try:
        with open(config_file, "r", encoding="utf-8") as f:
            config = json.load(f)
        if not isinstance(config, dict):
            raise ValueError("top-level value must be an object")

        # Merge with defaults to ensure all keys exist
        merged_config = DEFAULT_CONFIG.copy()
        merged_config.update(config)
        return merged_config
    except (json.JSONDecodeError, ValueError, OSError) as e:
        typer.secho(
            f"Warning: Error reading config file: {e}. Using defaults.",
            fg=typer.colors.YELLOW,
            err=True,
        )
        return DEFAULT_CONFIG.copy()


def save_config(config_dir: Path, config: Dict[str, Any]) -> None:
    """Save configuration to config file."""
    config_dir.mkdir(parents=True, exist_ok=True)
    with open(config_dir / CONFIG_FILENAME, "w", encoding="utf-8") as f:
        json.dump(config, f, indent=2)


def get_setting(ctx: Context, key: str, quiet: bool = False) -> Any:
    """Get a configuration value by key."""
    config = load_config(ctx.config_dir)
    if key not in config:
        if not quiet:
            typer.secho(
                f"Error: Configuration key '{key}' not found.",
                fg=typer.colors.RED,
                err=True,
            )
        return None
    return config[key]


def set_setting(ctx: Context, key: str, value: str, quiet: bool = False) -> bool:
    """Set a configuration value. Only known keys may be set."""
    if key not in DEFAULT_CONFIG:
        if not quiet:
            typer.secho(
                f"Error: Unknown configuration key '{key}'. "
                f"Valid keys: {', '.join(DEFAULT_CONFIG)}",
                fg=typer.colors.RED,
                err=True,
            )
        return False

    config = load_config(ctx.config_dir)
    config[key] = value
    save_config(ctx.config_dir, config)
    ctx.settings = config
    if not quiet:
        typer.secho(f"✓ Set {key} = {value}", fg=typer.colors.GREEN)
    return True


def reset_config(ctx: Context, quiet: bool = False) -> bool:
    """Reset configuration to defaults."""
    save_config(ctx.config_dir, DEFAULT_CONFIG.copy())
    ctx.settings = DEFAULT_CONFIG.copy()
    if not quiet:
        typer.secho("✓ Configuration reset to defaults", fg=typer.colors.GREEN)
    return True
