"""CLI commands for dotman - a Git-backed dotfiles tracker."""

from contextlib import nullcontext
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version
from typing import NoReturn

import typer
from rich.console import Console
from rich.status import Status
from typing_extensions import Annotated

from . import __version__
from .config import (
    DEFAULT_CONFIG,
    Context,
    get_setting,
    load_context,
    reset_config,
    set_setting,
)
from .core import (
    LinkStatus,
    add_dotfile,
    dotfile_status,
    init_repo,
    list_dotfiles,
    remove_dotfile,
    validate_index,
)
from .exceptions import DotmanError
from .sync import GitGateway, VcsGateway, pull_repo, push_repo, sync_repo

# Global app and console instances
app = typer.Typer(help="dotman - a Git-backed dotfiles tracker")
console = Console()

STATUS_COLORS = {
    LinkStatus.OK: typer.colors.GREEN,
    LinkStatus.BAD_LINK: typer.colors.RED,
    LinkStatus.NOT_LINKED: typer.colors.RED,
    LinkStatus.BROKEN_LINK: typer.colors.RED,
    LinkStatus.MISSING: typer.colors.YELLOW,
    LinkStatus.ORIGINAL_MISSING: typer.colors.YELLOW,
}


# ============================================================================
# UTILITY FUNCTIONS
# ============================================================================


def get_gateway() -> VcsGateway:
    """Return the version-control gateway used by sync commands."""
    return GitGateway()


def _fail(error: Exception) -> NoReturn:
    typer.secho(f"Error: {error}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


def _context() -> Context:
    try:
        return load_context()
    except DotmanError as e:
        _fail(e)


def _print_record(original: str, status: LinkStatus, repo: str) -> None:
    typer.echo(f"  {original} ", nl=False)
    typer.secho(status.tag, fg=STATUS_COLORS[status], nl=False)
    typer.echo(f" {repo}")


# ============================================================================
# MAIN COMMANDS
# ============================================================================


@app.command()
def init(
    remote: Annotated[
        str,
        typer.Argument(help="Optional remote URL to add as origin (SSH or HTTPS)."),
    ] = "",
    quiet: Annotated[
        bool, typer.Option("--quiet", "-q", help="Suppress output")
    ] = False,
) -> None:
    """Initialize a new dotman repository."""
    ctx = _context()
    try:
        success = init_repo(ctx, remote=remote, gateway=get_gateway(), quiet=quiet)
    except (DotmanError, OSError) as e:
        _fail(e)
    if not success:
        raise typer.Exit(code=1)

    if not quiet:
        typer.secho("Next steps:", fg=typer.colors.CYAN)
        typer.echo("  Track a dotfile: dotman add <path>")
        if remote:
            typer.echo("  Push to remote: dotman push")
        else:
            typer.echo(
                f"  Add remote later: git -C {ctx.config_dir} remote add origin <url>"
            )


@app.command()
def add(
    path: Annotated[str, typer.Argument(help="Path of the dotfile to track")],
    quiet: Annotated[
        bool, typer.Option("--quiet", "-q", help="Suppress output")
    ] = False,
) -> None:
    """Track a file that lives under your home directory."""
    ctx = _context()
    try:
        add_dotfile(ctx, path, quiet=quiet)
    except (DotmanError, OSError) as e:
        _fail(e)


@app.command()
def remove(
    path: Annotated[str, typer.Argument(help="Path of the tracked dotfile")],
    quiet: Annotated[
        bool, typer.Option("--quiet", "-q", help="Suppress output")
    ] = False,
) -> None:
    """
    Stop tracking a dotfile. The original is only deleted when it is a
    symlink back into the repository.
    """
    ctx = _context()
    try:
        remove_dotfile(ctx, path, quiet=quiet)
    except (DotmanError, OSError) as e:
        _fail(e)


@app.command("list")
def list_files() -> None:
    """
    List all files currently tracked by dotman, with their link status.
    """
    ctx = _context()
    try:
        entries = list_dotfiles(ctx)
    except DotmanError as e:
        _fail(e)

    if not entries:
        typer.secho("No files tracked by dotman.", fg=typer.colors.YELLOW)
        return

    typer.secho("Tracked files:", fg=typer.colors.WHITE, bold=True)
    for record, status in entries:
        _print_record(record.original_abs, status, record.repo_abs)


@app.command()
def status(
    path: Annotated[str, typer.Argument(help="Path of the tracked dotfile")],
) -> None:
    """Show the link status of a single tracked dotfile."""
    ctx = _context()
    try:
        record, link_status = dotfile_status(ctx, path)
    except DotmanError as e:
        _fail(e)

    _print_record(record.original_abs, link_status, record.repo_abs)
    if not link_status.is_healthy:
        raise typer.Exit(code=1)


@app.command()
def validate() -> None:
    """
    Strictly check index.txt and the link of every tracked file.

    Unlike the other commands, malformed or duplicated index lines are
    reported as errors instead of being skipped. Exits with status 1 when
    any problem is found.
    """
    ctx = _context()
    try:
        report = validate_index(ctx)
    except DotmanError as e:
        _fail(e)

    total_issues = sum(len(paths) for key, paths in report.items() if key != "ok")
    labels = {
        "bad_link": "bad links",
        "not_linked": "not linked",
        "broken_link": "broken links",
        "missing": "missing from repository",
        "original_missing": "original missing",
    }

    if total_issues == 0:
        typer.secho(
            f"✓ All {len(report['ok'])} tracked files are valid!",
            fg=typer.colors.GREEN,
            bold=True,
        )
        return

    typer.secho(f"Found {total_issues} issues:", fg=typer.colors.YELLOW, bold=True)
    for key, label in labels.items():
        paths = report[key]  # type: ignore
        if paths:
            typer.secho(f"  • {len(paths)} {label}", fg=typer.colors.YELLOW)
            for p in paths:
                typer.echo(f"      {p}")
    raise typer.Exit(code=1)


# ============================================================================
# SYNCHRONIZATION COMMANDS
# ============================================================================


@app.command()
def push(
    message: Annotated[
        str, typer.Option("--message", "-m", help="Commit message")
    ] = "",
    quiet: Annotated[
        bool, typer.Option("--quiet", "-q", help="Suppress output")
    ] = False,
) -> None:
    """
    Commit every change in the repository and push it to the remote.
    """
    ctx = _context()
    try:
        push_repo(ctx, get_gateway(), message=message, quiet=quiet)
    except DotmanError as e:
        _fail(e)


@app.command()
def pull(
    quiet: Annotated[
        bool, typer.Option("--quiet", "-q", help="Suppress output")
    ] = False,
) -> None:
    """
    Pull the latest changes from the remote. The local index is replaced by
    the one from the synchronized tree.
    """
    ctx = _context()
    try:
        pull_repo(ctx, get_gateway(), quiet=quiet)
    except (DotmanError, OSError) as e:
        _fail(e)


@app.command()
def sync(
    message: Annotated[
        str, typer.Option("--message", "-m", help="Commit message")
    ] = "",
    quiet: Annotated[
        bool, typer.Option("--quiet", "-q", help="Suppress output")
    ] = False,
) -> None:
    """Pull from the remote, then push local changes."""
    ctx = _context()
    try:
        with (
            Status("Synchronizing...", console=console) if not quiet else nullcontext()
        ):
            sync_repo(ctx, get_gateway(), message=message, quiet=True)
    except DotmanError as e:
        _fail(e)
    if not quiet:
        typer.secho("Sync completed successfully", fg=typer.colors.GREEN)


@app.command()
def version() -> None:
    """Show dotman version."""
    try:
        version_str = get_version("dotman")
    except PackageNotFoundError:
        version_str = __version__

    typer.secho(f"dotman version {version_str}", fg=typer.colors.GREEN)


# ============================================================================
# CONFIGURATION MANAGEMENT COMMANDS
# ============================================================================

config_app = typer.Typer(help="Manage dotman settings")
app.add_typer(config_app, name="config")


@config_app.command("show")
def config_show(
    key: Annotated[
        str, typer.Argument(help="Setting to show (default: all settings)")
    ] = "",
) -> None:
    """Show current settings."""
    ctx = _context()
    if key:
        value = get_setting(ctx, key)
        if value is None:
            raise typer.Exit(code=1)
        typer.echo(f"{key}: {value}")
        return

    typer.secho(f"Settings ({ctx.config_file}):", fg=typer.colors.WHITE, bold=True)
    for name in DEFAULT_CONFIG:
        typer.echo(f"  {name}: {ctx.setting(name)}")


@config_app.command("set")
def config_set(
    key: Annotated[str, typer.Argument(help="Setting name")],
    value: Annotated[str, typer.Argument(help="New value")],
) -> None:
    """Change a setting."""
    ctx = _context()
    try:
        if not set_setting(ctx, key, value):
            raise typer.Exit(code=1)
    except OSError as e:
        _fail(e)


@config_app.command("reset")
def config_reset(
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Skip confirmation")
    ] = False,
) -> None:
    """Reset all settings to their defaults."""
    if not force and not typer.confirm("Reset all settings to defaults?"):
        typer.secho("Reset cancelled.", fg=typer.colors.YELLOW)
        return
    ctx = _context()
    try:
        reset_config(ctx)
    except OSError as e:
        _fail(e)


if __name__ == "__main__":
    app()
