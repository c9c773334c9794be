"""
dotman - a minimal, Git-backed dotfiles tracker.

dotman keeps a plain-text index of the configuration files you care about,
mirrors them under one repository directory, and syncs that directory with
Git.
"""

__version__ = "0.2.0"
__license__ = "GPL-3.0-or-later"

from .config import Context, load_context, resolve_config_dir
from .core import (
    LinkStatus,
    add_dotfile,
    dotfile_status,
    init_repo,
    list_dotfiles,
    remove_dotfile,
    validate_index,
)
from .index import FileRecord, Index, load_index, save_index
from .sync import GitGateway, VcsGateway, pull_repo, push_repo, sync_repo

__all__ = [
    "Context",
    "load_context",
    "resolve_config_dir",
    "FileRecord",
    "Index",
    "load_index",
    "save_index",
    "LinkStatus",
    "init_repo",
    "add_dotfile",
    "remove_dotfile",
    "list_dotfiles",
    "dotfile_status",
    "validate_index",
    # Synchronization
    "VcsGateway",
    "GitGateway",
    "push_repo",
    "pull_repo",
    "sync_repo",
]
