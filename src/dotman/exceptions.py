"""Exception classes for dotman - a Git-backed dotfiles tracker."""

from typing import List, Optional, TypedDict


class ValidationReportDict(TypedDict):
    """Type definition for index validation results."""

    ok: List[str]
    bad_link: List[str]
    not_linked: List[str]
    broken_link: List[str]
    missing: List[str]
    original_missing: List[str]


class DotmanError(Exception):
    """Base exception for all dotman-related errors."""

    pass


class ConfigDirLookupError(DotmanError):
    """Raised when the repository directory cannot be located."""

    pass


class NoHomeDirError(ConfigDirLookupError):
    """Raised when the HOME environment variable is unset or empty."""

    pass


class PathError(DotmanError):
    """Errors related to resolving user-supplied paths."""

    pass


class NotInHomeError(PathError):
    """Raised when a path to add resolves outside the home directory."""

    pass


class InvalidRelError(PathError):
    """Raised when a path cannot be mirrored under the files/ tree."""

    pass


class PathNotFoundError(PathError):
    """Raised when a path to add does not exist on disk."""

    pass


class TrackingError(DotmanError):
    """Errors related to the set of tracked files."""

    pass


class AlreadyTrackedError(TrackingError):
    """Raised when adding a file that already has an index record."""

    pass


class NotTrackedError(TrackingError):
    """Raised when removing or querying a file with no index record."""

    pass


class DotmanIndexError(DotmanError):
    """Errors related to reading or writing index.txt."""

    pass


class IndexReadError(DotmanIndexError):
    """Raised when index.txt exists but cannot be read."""

    pass


class IndexWriteError(DotmanIndexError):
    """Raised when index.txt cannot be written."""

    pass


class IndexParseError(DotmanIndexError):
    """Raised by strict parsing when a line of index.txt is malformed."""

    def __init__(self, message: str, line_number: Optional[int] = None):
        super().__init__(message)
        self.line_number = line_number


class SyncError(DotmanError):
    """Raised when a git command exits with a non-zero status."""

    pass
