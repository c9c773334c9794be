"""Core functionality for dotman - a Git-backed dotfiles tracker."""

import os
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union, cast

import typer

from .config import DEFAULT_CONFIG, INDEX_FILENAME, LOCK_FILENAME, Context, save_config
from .exceptions import (
    AlreadyTrackedError,
    NotTrackedError,
    ValidationReportDict,
)
from .index import FileRecord, Index, index_lock, load_index, save_index
from .paths import mirror_path, resolve_and_validate, resolve_tracked
from .sync import GitGateway, VcsGateway

PathLike = Union[str, Path]

GITIGNORE_FILENAME = ".gitignore"
GITIGNORE_CONTENT = f"{LOCK_FILENAME}\n.{INDEX_FILENAME}.*.tmp\n"


class LinkStatus(Enum):
    """Reconciled state of one tracked file, read from disk on demand."""

    OK = "[OK]"
    BAD_LINK = "[Bad link]"
    NOT_LINKED = "[Not linked]"
    BROKEN_LINK = "[Broken link]"
    MISSING = "[Missing]"
    ORIGINAL_MISSING = "[Original missing]"

    @property
    def tag(self) -> str:
        return self.value

    @property
    def is_healthy(self) -> bool:
        return self is LinkStatus.OK


class OriginalStatus(Enum):
    """State of the original path, checked before removal."""

    LINKED_TO_REPO = "linked"
    NOT_A_LINK_TO_REPO = "not a link to repo"


STATUS_REPORT_KEYS = {
    LinkStatus.OK: "ok",
    LinkStatus.BAD_LINK: "bad_link",
    LinkStatus.NOT_LINKED: "not_linked",
    LinkStatus.BROKEN_LINK: "broken_link",
    LinkStatus.MISSING: "missing",
    LinkStatus.ORIGINAL_MISSING: "original_missing",
}


# ============================================================================
# RECONCILIATION
# ============================================================================


def classify(record: FileRecord) -> LinkStatus:
    """Inspect the repo side of a record and report what it finds."""
    if not os.path.lexists(record.repo_abs):
        return LinkStatus.MISSING
    if not os.path.islink(record.repo_abs):
        return LinkStatus.NOT_LINKED

    try:
        target = os.readlink(record.repo_abs)
    except OSError:
        return LinkStatus.BROKEN_LINK

    if target != record.original_abs:
        return LinkStatus.BAD_LINK
    if not os.path.lexists(record.original_abs):
        return LinkStatus.ORIGINAL_MISSING
    return LinkStatus.OK


def classify_original(record: FileRecord) -> OriginalStatus:
    """Check whether the original path is a symlink pointing at repo_abs."""
    if not os.path.islink(record.original_abs):
        return OriginalStatus.NOT_A_LINK_TO_REPO
    try:
        target = os.readlink(record.original_abs)
    except OSError:
        return OriginalStatus.NOT_A_LINK_TO_REPO
    if target != record.repo_abs:
        return OriginalStatus.NOT_A_LINK_TO_REPO
    return OriginalStatus.LINKED_TO_REPO


def _prune_empty_dirs(start: Path, stop: Path) -> None:
    """Remove empty directories from start up to, but not including, stop."""
    current = start
    while current != stop and stop in current.parents:
        try:
            current.rmdir()
        except OSError:
            return
        current = current.parent


# ============================================================================
# REPOSITORY INITIALIZATION
# ============================================================================


def init_repo(
    ctx: Context,
    remote: str = "",
    gateway: Optional[VcsGateway] = None,
    quiet: bool = False,
) -> bool:
    """Create the repository directory, its index, and a git repository."""
    gateway = gateway or GitGateway()
    if ctx.index_file.exists() and gateway.is_initialized(ctx.config_dir):
        if not quiet:
            typer.secho(
                f"dotman already initialized at {ctx.config_dir}",
                fg=typer.colors.YELLOW,
            )
        return False

    if not quiet:
        typer.secho("Initializing dotman repository...", fg=typer.colors.BLUE)

    ctx.files_root.mkdir(parents=True, exist_ok=True)
    with index_lock(ctx.config_dir):
        if not ctx.index_file.exists():
            save_index(ctx.config_dir, Index())
    if not ctx.config_file.exists():
        save_config(ctx.config_dir, DEFAULT_CONFIG.copy())
        ctx.settings = DEFAULT_CONFIG.copy()
    gitignore = ctx.config_dir / GITIGNORE_FILENAME
    if not gitignore.exists():
        gitignore.write_text(GITIGNORE_CONTENT, encoding="utf-8")

    gateway.init(ctx.config_dir)
    gateway.set_default_branch(ctx.config_dir, ctx.setting("default_branch"))

    if remote:
        gateway.add_remote(ctx.config_dir, ctx.setting("remote_name"), remote)
        if not quiet:
            typer.secho(
                "WARNING: Ensure your remote repository is private for sensitive data",
                fg=typer.colors.YELLOW,
                bold=True,
            )

    if not quiet:
        typer.secho(
            f"dotman repository initialized at {ctx.config_dir}",
            fg=typer.colors.GREEN,
        )
    return True


# ============================================================================
# DOTFILE MANAGEMENT
# ============================================================================


def add_dotfile(ctx: Context, path: PathLike, quiet: bool = False) -> FileRecord:
    """
    Track a file under the home directory.

    A symlink is created under files/ at the same home-relative location,
    pointing back at the original. The original itself is left in place.
    """
    original_abs = resolve_and_validate(path, ctx.home)

    with index_lock(ctx.config_dir):
        index = load_index(ctx.config_dir)
        if original_abs in index:
            raise AlreadyTrackedError(f"{original_abs} is already tracked")

        repo_abs = mirror_path(original_abs, ctx.home, ctx.files_root)
        Path(repo_abs).parent.mkdir(parents=True, exist_ok=True)
        os.symlink(original_abs, repo_abs)

        record = FileRecord(original_abs=original_abs, repo_abs=repo_abs)
        index.append(record)
        try:
            save_index(ctx.config_dir, index)
        except Exception:
            os.unlink(repo_abs)
            raise

    if not quiet:
        typer.secho(f"Added {original_abs}", fg=typer.colors.GREEN)
    return record


def remove_dotfile(ctx: Context, path: PathLike, quiet: bool = False) -> FileRecord:
    """
    Stop tracking a file.

    The original is only deleted when it is a symlink back into the
    repository; a regular file at the original location is never touched.
    """
    with index_lock(ctx.config_dir):
        index = load_index(ctx.config_dir)
        record = resolve_tracked(path, ctx.home, index)
        if record is None:
            raise NotTrackedError(f"{path} is not tracked")

        original_status = classify_original(record)

        # Repo side first: if it cannot be removed the original is untouched.
        try:
            os.unlink(record.repo_abs)
        except FileNotFoundError:
            pass

        if original_status is OriginalStatus.LINKED_TO_REPO:
            os.unlink(record.original_abs)

        index.remove(record.original_abs)
        save_index(ctx.config_dir, index)

    _prune_empty_dirs(Path(record.repo_abs).parent, ctx.files_root)
    if not quiet:
        typer.secho(f"Removed {record.original_abs}", fg=typer.colors.GREEN)
    return record


def list_dotfiles(ctx: Context) -> List[Tuple[FileRecord, LinkStatus]]:
    """Classify every tracked file without changing anything on disk."""
    index = load_index(ctx.config_dir)
    return [(record, classify(record)) for record in index]


def dotfile_status(ctx: Context, path: PathLike) -> Tuple[FileRecord, LinkStatus]:
    """Classify a single tracked file."""
    index = load_index(ctx.config_dir)
    record = resolve_tracked(path, ctx.home, index)
    if record is None:
        raise NotTrackedError(f"{path} is not tracked")
    return record, classify(record)


def validate_index(ctx: Context) -> ValidationReportDict:
    """
    Strictly parse the index and group every record by status.

    Unlike the other operations, a malformed or duplicated line raises
    IndexParseError instead of being skipped.
    """
    index = load_index(ctx.config_dir, strict=True)
    report: Dict[str, List[str]] = {key: [] for key in STATUS_REPORT_KEYS.values()}
    for record in index:
        report[STATUS_REPORT_KEYS[classify(record)]].append(record.original_abs)
    return cast(ValidationReportDict, report)
