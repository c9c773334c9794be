"""The tracking index: one line per dotfile, tab-separated.

index.txt holds ``original_abs<TAB>repo_abs`` per line. Blank lines and lines
starting with ``#`` are ignored on read, so the file can be edited by hand.
"""

import fcntl
import os
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Union

from .config import INDEX_FILENAME, LOCK_FILENAME
from .exceptions import (
    AlreadyTrackedError,
    IndexParseError,
    IndexReadError,
    IndexWriteError,
    NotTrackedError,
)

FIELD_SEPARATOR = "\t"
COMMENT_PREFIX = "#"


@dataclass(frozen=True)
class FileRecord:
    """One tracked dotfile."""

    original_abs: str
    repo_abs: str

    def to_line(self) -> str:
        return f"{self.original_abs}{FIELD_SEPARATOR}{self.repo_abs}\n"


class Index:
    """Ordered collection of FileRecord, at most one per original path."""

    def __init__(self, records: Optional[Iterable[FileRecord]] = None):
        self._records: List[FileRecord] = []
        for record in records or ():
            self.append(record)

    def __iter__(self) -> Iterator[FileRecord]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __bool__(self) -> bool:
        return bool(self._records)

    def __contains__(self, original_abs: object) -> bool:
        return self.find(str(original_abs)) is not None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Index):
            return NotImplemented
        return self._records == other._records

    def __repr__(self) -> str:
        return f"Index({self._records!r})"

    @property
    def records(self) -> List[FileRecord]:
        return list(self._records)

    def find(self, original_abs: str) -> Optional[FileRecord]:
        for record in self._records:
            if record.original_abs == original_abs:
                return record
        return None

    def append(self, record: FileRecord) -> None:
        if self.find(record.original_abs) is not None:
            raise AlreadyTrackedError(f"{record.original_abs} is already tracked")
        self._records.append(record)

    def remove(self, original_abs: str) -> FileRecord:
        for position, record in enumerate(self._records):
            if record.original_abs == original_abs:
                del self._records[position]
                return record
        raise NotTrackedError(f"{original_abs} is not tracked")


# ============================================================================
# PARSING AND PERSISTENCE
# ============================================================================


def parse_index(lines: Iterable[str], strict: bool = False) -> Index:
    """
    Build an Index from the lines of index.txt.

    In lenient mode (what the engine uses) lines with fewer than two fields
    are skipped, and a repeated original keeps its first record. In strict
    mode both raise IndexParseError.
    """
    index = Index()
    for line_number, raw in enumerate(lines, start=1):
        line = raw.rstrip("\r\n")
        if not line or line.startswith(COMMENT_PREFIX):
            continue

        fields = line.split(FIELD_SEPARATOR)
        if len(fields) < 2 or not fields[0] or not fields[1]:
            if strict:
                raise IndexParseError(
                    f"line {line_number}: expected 'original<TAB>repo', got {line!r}",
                    line_number=line_number,
                )
            continue

        record = FileRecord(original_abs=fields[0], repo_abs=fields[1])
        if record.original_abs in index:
            if strict:
                raise IndexParseError(
                    f"line {line_number}: {record.original_abs} is listed twice",
                    line_number=line_number,
                )
            continue
        index.append(record)
    return index


def load_index(config_dir: Union[str, Path], strict: bool = False) -> Index:
    """Read index.txt from config_dir. A missing file is an empty index."""
    index_file = Path(config_dir) / INDEX_FILENAME
    try:
        with open(index_file, "r", encoding="utf-8") as f:
            return parse_index(f, strict=strict)
    except FileNotFoundError:
        return Index()
    except (OSError, UnicodeDecodeError) as e:
        raise IndexReadError(f"Could not read {index_file}: {e}") from e


def save_index(config_dir: Union[str, Path], index: Index) -> None:
    """Rewrite index.txt in full.

    Records go to a temporary file in the same directory which then replaces
    index.txt, so an interrupted save leaves the previous index intact.
    """
    config_dir = Path(config_dir)
    index_file = config_dir / INDEX_FILENAME
    tmp_name = None
    try:
        config_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{INDEX_FILENAME}.", suffix=".tmp", dir=str(config_dir)
        )
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            for record in index:
                f.write(record.to_line())
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, index_file)
        tmp_name = None
    except OSError as e:
        raise IndexWriteError(f"Could not write {index_file}: {e}") from e
    finally:
        if tmp_name is not None:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass


@contextmanager
def index_lock(config_dir: Union[str, Path]) -> Iterator[None]:
    """Hold an exclusive lock on the index for a load-mutate-save sequence."""
    config_dir = Path(config_dir)
    lock_file = config_dir / LOCK_FILENAME
    try:
        config_dir.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(lock_file), os.O_RDWR | os.O_CREAT, 0o644)
    except OSError as e:
        raise IndexWriteError(f"Could not open lock file {lock_file}: {e}") from e

    try:
        fcntl.flock(fd, fcntl.LOCK_EX)
        yield
    finally:
        fcntl.flock(fd, fcntl.LOCK_UN)
        os.close(fd)
