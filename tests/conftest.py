"""Shared pytest fixtures and configuration."""

import os
import tempfile
from pathlib import Path
from typing import Dict, Generator

import pytest

from dotman.config import Context, load_context
from tests.helpers.mocks import FakeGateway


@pytest.fixture
def temp_home(monkeypatch: pytest.MonkeyPatch) -> Generator[Path, None, None]:
    """Create a temporary home directory and point HOME at it."""
    with tempfile.TemporaryDirectory() as tmpdir:
        home = Path(os.path.realpath(tmpdir))
        monkeypatch.setenv("HOME", str(home))
        monkeypatch.delenv("DOTMAN_DIR", raising=False)
        monkeypatch.delenv("XDG_DATA_HOME", raising=False)
        yield home


@pytest.fixture
def ctx(temp_home: Path) -> Context:
    """A Context rooted at the temporary home directory."""
    return load_context()


@pytest.fixture
def fake_gateway() -> FakeGateway:
    """A gateway that records git commands instead of running them."""
    return FakeGateway()


def create_test_files(base_dir: Path, files: Dict[str, str]) -> None:
    """Create test files with given content."""
    for file_path, content in files.items():
        full_path = base_dir / file_path
        full_path.parent.mkdir(parents=True, exist_ok=True)
        full_path.write_text(content)
