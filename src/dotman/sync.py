"""Synchronizing the dotman repository through git.

Every git command runs through a VcsGateway with the repository directory as
its working directory. A non-zero exit becomes a SyncError; git's output is
never parsed for meaning.
"""

from abc import ABC, abstractmethod
from contextlib import nullcontext
from pathlib import Path
from typing import Union

import typer
from git import Git, GitCommandError, InvalidGitRepositoryError, NoSuchPathError, Repo
from rich.console import Console
from rich.status import Status

from .config import INDEX_FILENAME, Context
from .exceptions import SyncError

PathLike = Union[str, Path]

GIT_USER_NAME = "dotman"
GIT_USER_EMAIL = "dotman@localhost"

# Global console instance
console = Console()


class VcsGateway(ABC):
    """One method per version-control command dotman relies on."""

    @abstractmethod
    def init(self, work_dir: PathLike) -> None: ...

    @abstractmethod
    def set_default_branch(self, work_dir: PathLike, branch: str) -> None: ...

    @abstractmethod
    def add_remote(self, work_dir: PathLike, name: str, url: str) -> None: ...

    @abstractmethod
    def stage_all(self, work_dir: PathLike) -> None: ...

    @abstractmethod
    def commit(self, work_dir: PathLike, message: str) -> None: ...

    @abstractmethod
    def push(self, work_dir: PathLike, remote: str, branch: str) -> None: ...

    @abstractmethod
    def pull(self, work_dir: PathLike) -> None: ...

    @abstractmethod
    def is_initialized(self, work_dir: PathLike) -> bool: ...

    @abstractmethod
    def has_changes(self, work_dir: PathLike) -> bool: ...

    @abstractmethod
    def is_tracked(self, work_dir: PathLike, name: str) -> bool: ...

    @abstractmethod
    def checkout_file(self, work_dir: PathLike, name: str) -> None: ...


class GitGateway(VcsGateway):
    """VcsGateway backed by the git executable via GitPython."""

    def _git(self, work_dir: PathLike) -> Git:
        return Git(str(work_dir))

    def _run(self, work_dir: PathLike, *args: str) -> str:
        try:
            return self._git(work_dir).execute(["git", *args])
        except GitCommandError as e:
            raise SyncError(f"git {args[0]} failed (exit status {e.status})") from e

    def init(self, work_dir: PathLike) -> None:
        self._run(work_dir, "init")
        # Commits need an identity; keep the user's one when configured.
        try:
            self._git(work_dir).config("--get", "user.email")
        except GitCommandError:
            self._run(work_dir, "config", "user.name", GIT_USER_NAME)
            self._run(work_dir, "config", "user.email", GIT_USER_EMAIL)

    def set_default_branch(self, work_dir: PathLike, branch: str) -> None:
        self._run(work_dir, "symbolic-ref", "HEAD", f"refs/heads/{branch}")

    def add_remote(self, work_dir: PathLike, name: str, url: str) -> None:
        self._run(work_dir, "remote", "add", name, url)

    def stage_all(self, work_dir: PathLike) -> None:
        self._run(work_dir, "add", "-A")

    def commit(self, work_dir: PathLike, message: str) -> None:
        self._run(work_dir, "commit", "-m", message)

    def push(self, work_dir: PathLike, remote: str, branch: str) -> None:
        try:
            self._run(work_dir, "push", "--set-upstream", remote, branch)
        except SyncError:
            self._run(work_dir, "push")

    def pull(self, work_dir: PathLike) -> None:
        self._run(work_dir, "pull")

    def is_initialized(self, work_dir: PathLike) -> bool:
        try:
            Repo(str(work_dir))
        except (InvalidGitRepositoryError, NoSuchPathError):
            return False
        return True

    def has_changes(self, work_dir: PathLike) -> bool:
        return self._open(work_dir).is_dirty(untracked_files=True)

    def is_tracked(self, work_dir: PathLike, name: str) -> bool:
        return bool(self._run(work_dir, "ls-files", "--", name).strip())

    def checkout_file(self, work_dir: PathLike, name: str) -> None:
        self._run(work_dir, "checkout", "--", name)

    def _open(self, work_dir: PathLike) -> Repo:
        try:
            return Repo(str(work_dir))
        except (InvalidGitRepositoryError, NoSuchPathError) as e:
            raise SyncError(f"{work_dir} is not a git repository") from e


# ============================================================================
# SYNCHRONIZATION
# ============================================================================


def ensure_repo(ctx: Context, gateway: VcsGateway) -> None:
    """Ensure that the dotman directory is a git repository."""
    if not gateway.is_initialized(ctx.config_dir):
        raise SyncError(
            f"{ctx.config_dir} is not a git repository. Run 'dotman init' first."
        )


def _spinner(message: str, quiet: bool):
    return nullcontext() if quiet else Status(message, console=console)


def push_repo(
    ctx: Context, gateway: VcsGateway, message: str = "", quiet: bool = False
) -> bool:
    """Stage everything, commit if anything changed, and push."""
    ensure_repo(ctx, gateway)
    work_dir = ctx.config_dir
    message = message or ctx.setting("commit_message")

    gateway.stage_all(work_dir)
    if gateway.has_changes(work_dir):
        gateway.commit(work_dir, message)
        if not quiet:
            typer.secho(f"Committed changes: {message}", fg=typer.colors.GREEN)
    elif not quiet:
        typer.secho("No changes to commit", fg=typer.colors.YELLOW)

    with _spinner("Pushing to remote...", quiet):
        gateway.push(work_dir, ctx.setting("remote_name"), ctx.setting("default_branch"))
    if not quiet:
        typer.secho("Pushed local commits to remote", fg=typer.colors.GREEN)
    return True


def pull_repo(ctx: Context, gateway: VcsGateway, quiet: bool = False) -> bool:
    """
    Pull from the remote so the index matches the synchronized tree.

    The local index.txt is discarded first, which is why a dirty tree is
    refused. After the pull the index is taken from what git checked out;
    if the pull fails the local copy is put back.
    """
    ensure_repo(ctx, gateway)
    work_dir = ctx.config_dir

    if gateway.has_changes(work_dir):
        raise SyncError(
            "Local changes would be lost by pulling. Run 'dotman push' first."
        )

    try:
        saved_index = ctx.index_file.read_bytes()
    except FileNotFoundError:
        saved_index = None
    else:
        ctx.index_file.unlink()

    try:
        with _spinner("Pulling from remote...", quiet):
            gateway.pull(work_dir)
    except SyncError:
        if saved_index is not None and not ctx.index_file.exists():
            ctx.index_file.write_bytes(saved_index)
        raise

    if not ctx.index_file.exists() and gateway.is_tracked(work_dir, INDEX_FILENAME):
        gateway.checkout_file(work_dir, INDEX_FILENAME)

    if not quiet:
        typer.secho("Pulled latest changes from remote", fg=typer.colors.GREEN)
    return True


def sync_repo(
    ctx: Context, gateway: VcsGateway, message: str = "", quiet: bool = False
) -> bool:
    """Pull, then push."""
    pull_repo(ctx, gateway, quiet=quiet)
    return push_repo(ctx, gateway, message=message, quiet=quiet)
