"""Turning user-supplied paths into safe, absolute index keys."""

import os
from pathlib import Path
from typing import Optional, Union

from .exceptions import InvalidRelError, NotInHomeError, PathNotFoundError
from .index import FileRecord, Index

PathLike = Union[str, Path]


def lexical_absolute(user_path: PathLike, home: PathLike) -> str:
    """Normalize a path without touching the filesystem.

    ``~`` expands to home, relative paths are taken relative to home, and
    ``.``/``..`` components are collapsed.
    """
    path = str(user_path)
    home = str(home)
    if path == "~" or path.startswith("~/"):
        path = home + path[1:]

    path = os.path.normpath(path)
    if not os.path.isabs(path):
        path = os.path.normpath(os.path.join(home, path))
    # POSIX allows a leading '//' to survive normpath
    if path.startswith("//"):
        path = "/" + path.lstrip("/")
    return path


def is_within(path: str, home: str) -> bool:
    """True when path is strictly below home, never home itself."""
    home = home.rstrip(os.sep) or os.sep
    prefix = home if home == os.sep else home + os.sep
    return path.startswith(prefix) and path != home


def resolve_and_validate(user_path: PathLike, home: PathLike) -> str:
    """
    Canonicalize a path to add and make sure it lives under home.

    Symlinks are resolved before the containment check so a link inside home
    cannot smuggle in a file from outside it.
    """
    home = str(home)
    lexical = lexical_absolute(user_path, home)
    try:
        canonical = os.path.realpath(lexical, strict=True)
    except FileNotFoundError as e:
        raise PathNotFoundError(f"{lexical} does not exist") from e
    except OSError as e:
        raise PathNotFoundError(f"Could not resolve {lexical}: {e}") from e

    if not is_within(canonical, home):
        raise NotInHomeError(f"{canonical} is not inside your home directory {home}")
    return canonical


def mirror_path(original_abs: str, home: PathLike, files_root: PathLike) -> str:
    """Map a path under home to the same relative path under files_root."""
    rel = os.path.relpath(original_abs, str(home))
    if rel in ("", os.curdir) or rel == os.pardir or rel.startswith(os.pardir + os.sep):
        raise InvalidRelError(f"Cannot mirror {original_abs} under {files_root}")

    repo_abs = os.path.join(str(files_root), rel)
    if not os.path.dirname(repo_abs):
        raise InvalidRelError(f"{repo_abs} has no parent directory")
    return repo_abs


def resolve_tracked(
    user_path: PathLike, home: PathLike, index: Index
) -> Optional[FileRecord]:
    """Find the index record a user-supplied path refers to.

    The lexical form is tried first so entries match exactly as written. The
    canonical form is the fallback for paths reached through a symlinked
    directory. Nothing here requires the original to still exist.
    """
    lexical = lexical_absolute(user_path, home)
    record = index.find(lexical)
    if record is not None:
        return record

    canonical = os.path.realpath(lexical)
    if canonical != lexical:
        return index.find(canonical)
    return None
