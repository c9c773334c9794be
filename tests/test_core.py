"""Tests for dotman core functionality: tracking and reconciliation."""

import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest

from dotman import core
from dotman.config import DEFAULT_CONFIG
from dotman.core import LinkStatus, OriginalStatus
from dotman.exceptions import (
    AlreadyTrackedError,
    IndexParseError,
    IndexWriteError,
    NotInHomeError,
    NotTrackedError,
    PathNotFoundError,
)
from dotman.index import FileRecord, Index, load_index, save_index
from tests.conftest import create_test_files
from tests.helpers.assertions import assert_index_lines, assert_symlink_points_to


class TestClassify:
    """Test classification of the repo side of a record."""

    @pytest.fixture(autouse=True)
    def setup(self, temp_home: Path):
        """Set up an original file and its repo-side path."""
        self.original = temp_home / ".bashrc"
        self.original.write_text("alias ll='ls -l'\n")
        self.repo_side = temp_home / "repo" / "files" / ".bashrc"
        self.repo_side.parent.mkdir(parents=True)
        self.record = FileRecord(str(self.original), str(self.repo_side))

    def test_ok(self):
        """A link back to the original is OK."""
        self.repo_side.symlink_to(self.original)
        assert core.classify(self.record) is LinkStatus.OK

    def test_bad_link(self, tmp_path: Path):
        """A link to anything else is a bad link."""
        self.repo_side.symlink_to(tmp_path / "elsewhere")
        assert core.classify(self.record) is LinkStatus.BAD_LINK

    def test_not_linked(self):
        """A regular file is not linked."""
        self.repo_side.write_text("copy")
        assert core.classify(self.record) is LinkStatus.NOT_LINKED

    def test_broken_link(self):
        """A link whose target cannot be read is broken."""
        self.repo_side.symlink_to(self.original)
        with patch("dotman.core.os.readlink", side_effect=OSError("EIO")):
            assert core.classify(self.record) is LinkStatus.BROKEN_LINK

    def test_missing(self):
        """Nothing at the repo side is reported as missing."""
        assert core.classify(self.record) is LinkStatus.MISSING

    def test_original_missing(self):
        """A correct link to a deleted original is flagged."""
        self.repo_side.symlink_to(self.original)
        self.original.unlink()
        assert core.classify(self.record) is LinkStatus.ORIGINAL_MISSING

    def test_tags(self):
        """Status tags match what list prints."""
        assert LinkStatus.OK.tag == "[OK]"
        assert LinkStatus.BAD_LINK.tag == "[Bad link]"
        assert LinkStatus.NOT_LINKED.tag == "[Not linked]"
        assert LinkStatus.BROKEN_LINK.tag == "[Broken link]"
        assert LinkStatus.OK.is_healthy
        assert not LinkStatus.MISSING.is_healthy

    def test_original_linked_to_repo(self):
        """An original that links into the repository is recognized."""
        self.original.unlink()
        self.original.symlink_to(self.repo_side)
        assert core.classify_original(self.record) is OriginalStatus.LINKED_TO_REPO

    def test_original_regular_file(self):
        """A regular original is not a link to the repo."""
        assert (
            core.classify_original(self.record) is OriginalStatus.NOT_A_LINK_TO_REPO
        )

    def test_original_links_elsewhere(self, tmp_path: Path):
        """A link to some other place is not a link to the repo."""
        self.original.unlink()
        self.original.symlink_to(tmp_path / "other")
        assert (
            core.classify_original(self.record) is OriginalStatus.NOT_A_LINK_TO_REPO
        )


class TestInitRepo:
    """Test repository initialization."""

    def test_init_creates_layout(self, ctx, fake_gateway):
        """init creates files/, an empty index, settings and a git repo."""
        assert core.init_repo(ctx, gateway=fake_gateway, quiet=True) is True

        assert ctx.files_root.is_dir()
        assert ctx.index_file.read_text() == ""
        assert json.loads(ctx.config_file.read_text()) == DEFAULT_CONFIG
        assert "index.lock" in (ctx.config_dir / ".gitignore").read_text()
        assert fake_gateway.commands == ["init", "set_default_branch"]
        assert fake_gateway.calls[1] == ("set_default_branch", ctx.config_dir, "main")

    def test_init_with_remote(self, ctx, fake_gateway):
        """A remote URL is added under the configured remote name."""
        url = "git@github.com:user/dotfiles.git"

        core.init_repo(ctx, remote=url, gateway=fake_gateway, quiet=True)

        assert fake_gateway.calls[-1] == ("add_remote", ctx.config_dir, "origin", url)

    def test_init_twice(self, ctx, fake_gateway):
        """A second init is refused and leaves things alone."""
        core.init_repo(ctx, gateway=fake_gateway, quiet=True)
        fake_gateway.calls.clear()

        assert core.init_repo(ctx, gateway=fake_gateway, quiet=True) is False
        assert fake_gateway.calls == []

    def test_init_keeps_existing_index(self, ctx, fake_gateway):
        """Initializing git over an existing index keeps its records."""
        record = FileRecord(str(ctx.home / ".bashrc"), str(ctx.files_root / ".bashrc"))
        save_index(ctx.config_dir, Index([record]))

        core.init_repo(ctx, gateway=fake_gateway, quiet=True)

        assert list(load_index(ctx.config_dir)) == [record]

    def test_init_prints_progress(self, ctx, fake_gateway, capsys):
        """Without quiet, init reports what it did."""
        core.init_repo(ctx, remote="https://example.com/d.git", gateway=fake_gateway)

        out = capsys.readouterr().out
        assert "initialized" in out
        assert "private" in out


class TestAddDotfile:
    """Test tracking new files."""

    def test_add_creates_link_and_record(self, ctx):
        """add mirrors the file under files/ and records it."""
        create_test_files(ctx.home, {"a/b.conf": "key=value\n"})
        original = ctx.home / "a" / "b.conf"

        record = core.add_dotfile(ctx, "a/b.conf", quiet=True)

        assert record.original_abs == str(original)
        assert record.repo_abs == str(ctx.files_root / "a" / "b.conf")
        assert_symlink_points_to(record.repo_abs, original)
        assert_index_lines(ctx.config_dir, [f"{original}\t{record.repo_abs}"])

    def test_add_leaves_original_in_place(self, ctx):
        """The original file is not moved or replaced."""
        create_test_files(ctx.home, {".bashrc": "export PATH\n"})

        core.add_dotfile(ctx, ".bashrc", quiet=True)

        original = ctx.home / ".bashrc"
        assert not original.is_symlink()
        assert original.read_text() == "export PATH\n"

    def test_add_absolute_and_tilde_paths(self, ctx):
        """Absolute and ~ paths are accepted."""
        create_test_files(ctx.home, {".vimrc": "", ".zshrc": ""})

        core.add_dotfile(ctx, str(ctx.home / ".vimrc"), quiet=True)
        core.add_dotfile(ctx, "~/.zshrc", quiet=True)

        originals = [r.original_abs for r in load_index(ctx.config_dir)]
        assert originals == [str(ctx.home / ".vimrc"), str(ctx.home / ".zshrc")]

    def test_add_appends_in_order(self, ctx):
        """New records go to the end of the index."""
        create_test_files(ctx.home, {".a": "", ".b": "", ".c": ""})
        for name in (".b", ".a", ".c"):
            core.add_dotfile(ctx, name, quiet=True)

        names = [Path(r.original_abs).name for r in load_index(ctx.config_dir)]
        assert names == [".b", ".a", ".c"]

    def test_add_twice_raises_and_changes_nothing(self, ctx):
        """A second add fails with AlreadyTrackedError and leaves state alone."""
        create_test_files(ctx.home, {".bashrc": ""})
        core.add_dotfile(ctx, ".bashrc", quiet=True)
        before = ctx.index_file.read_text()

        with pytest.raises(AlreadyTrackedError):
            core.add_dotfile(ctx, "./.bashrc", quiet=True)

        assert ctx.index_file.read_text() == before
        assert sorted(os.listdir(ctx.files_root)) == [".bashrc"]

    def test_add_same_file_through_symlink_is_duplicate(self, ctx):
        """Uniqueness is checked on the canonical path."""
        create_test_files(ctx.home, {"dotfiles/vimrc": ""})
        (ctx.home / ".vimrc").symlink_to(ctx.home / "dotfiles" / "vimrc")
        core.add_dotfile(ctx, "dotfiles/vimrc", quiet=True)

        with pytest.raises(AlreadyTrackedError):
            core.add_dotfile(ctx, ".vimrc", quiet=True)

    def test_add_outside_home(self, ctx, tmp_path: Path):
        """Files outside home are refused and nothing is written."""
        outside = tmp_path / "hosts"
        outside.write_text("")

        with pytest.raises(NotInHomeError):
            core.add_dotfile(ctx, str(outside), quiet=True)

        assert not ctx.index_file.exists()

    def test_add_missing_file(self, ctx):
        """Missing files cannot be tracked."""
        with pytest.raises(PathNotFoundError):
            core.add_dotfile(ctx, ".nope", quiet=True)

    def test_add_without_init(self, ctx):
        """add works before init; the index and files/ are created on demand."""
        create_test_files(ctx.home, {".profile": ""})

        core.add_dotfile(ctx, ".profile", quiet=True)

        assert (ctx.files_root / ".profile").is_symlink()

    def test_add_rolls_back_link_when_save_fails(self, ctx):
        """If the index cannot be saved, the new link is removed again."""
        create_test_files(ctx.home, {".bashrc": ""})

        with patch("dotman.core.save_index", side_effect=IndexWriteError("nope")):
            with pytest.raises(IndexWriteError):
                core.add_dotfile(ctx, ".bashrc", quiet=True)

        assert not os.path.lexists(ctx.files_root / ".bashrc")

    def test_add_prints_message(self, ctx, capsys):
        """Without quiet, add reports the tracked path."""
        create_test_files(ctx.home, {".bashrc": ""})

        core.add_dotfile(ctx, ".bashrc")

        assert "Added" in capsys.readouterr().out


class TestRemoveDotfile:
    """Test untracking files."""

    def test_remove_deletes_repo_link_and_record(self, ctx):
        """remove deletes the repo side and the index line."""
        create_test_files(ctx.home, {".bashrc": "content", ".vimrc": ""})
        core.add_dotfile(ctx, ".bashrc", quiet=True)
        kept = core.add_dotfile(ctx, ".vimrc", quiet=True)

        removed = core.remove_dotfile(ctx, ".bashrc", quiet=True)

        assert not os.path.lexists(removed.repo_abs)
        assert list(load_index(ctx.config_dir)) == [kept]

    def test_remove_leaves_regular_original_alone(self, ctx):
        """An original that is not a link to the repo is never touched."""
        create_test_files(ctx.home, {".bashrc": "keep me"})
        core.add_dotfile(ctx, ".bashrc", quiet=True)

        core.remove_dotfile(ctx, ".bashrc", quiet=True)

        assert (ctx.home / ".bashrc").read_text() == "keep me"

    def test_remove_deletes_original_link_into_repo(self, ctx):
        """An original that links back into the repository is removed."""
        repo_side = ctx.files_root / ".gitconfig"
        original = ctx.home / ".gitconfig"
        repo_side.parent.mkdir(parents=True)
        repo_side.write_text("[user]\n")
        original.symlink_to(repo_side)
        save_index(ctx.config_dir, Index([FileRecord(str(original), str(repo_side))]))

        core.remove_dotfile(ctx, ".gitconfig", quiet=True)

        assert not os.path.lexists(original)
        assert not os.path.lexists(repo_side)
        assert len(load_index(ctx.config_dir)) == 0

    def test_remove_tolerates_missing_repo_side(self, ctx):
        """A repo side that is already gone is fine."""
        create_test_files(ctx.home, {".bashrc": ""})
        record = core.add_dotfile(ctx, ".bashrc", quiet=True)
        os.unlink(record.repo_abs)

        core.remove_dotfile(ctx, ".bashrc", quiet=True)

        assert len(load_index(ctx.config_dir)) == 0

    def test_remove_propagates_other_errors(self, ctx):
        """Errors other than 'not found' while cleaning up are raised."""
        create_test_files(ctx.home, {".bashrc": ""})
        record = core.add_dotfile(ctx, ".bashrc", quiet=True)
        os.unlink(record.repo_abs)
        os.mkdir(record.repo_abs)

        with pytest.raises(OSError):
            core.remove_dotfile(ctx, ".bashrc", quiet=True)

        assert len(load_index(ctx.config_dir)) == 1

    def test_remove_failure_keeps_original_link(self, ctx):
        """When the repo side cannot be removed the original link survives."""
        repo_side = ctx.files_root / ".gitconfig"
        original = ctx.home / ".gitconfig"
        repo_side.mkdir(parents=True)
        original.symlink_to(repo_side)
        save_index(ctx.config_dir, Index([FileRecord(str(original), str(repo_side))]))

        with pytest.raises(OSError):
            core.remove_dotfile(ctx, ".gitconfig", quiet=True)

        assert os.path.islink(original)
        assert os.readlink(original) == str(repo_side)
        assert len(load_index(ctx.config_dir)) == 1

    def test_remove_untracked(self, ctx):
        """Untracked paths raise NotTrackedError."""
        with pytest.raises(NotTrackedError):
            core.remove_dotfile(ctx, ".bashrc", quiet=True)

    def test_remove_after_original_deleted(self, ctx):
        """Files deleted out of band can still be untracked."""
        create_test_files(ctx.home, {".config/app/settings.ini": ""})
        core.add_dotfile(ctx, ".config/app/settings.ini", quiet=True)
        (ctx.home / ".config" / "app" / "settings.ini").unlink()

        core.remove_dotfile(ctx, ".config/app/settings.ini", quiet=True)

        assert len(load_index(ctx.config_dir)) == 0

    def test_remove_prunes_empty_directories(self, ctx):
        """Empty mirrored directories are cleaned up, files/ is kept."""
        create_test_files(ctx.home, {".config/app/settings.ini": "", ".config/x": ""})
        core.add_dotfile(ctx, ".config/app/settings.ini", quiet=True)
        core.add_dotfile(ctx, ".config/x", quiet=True)

        core.remove_dotfile(ctx, ".config/app/settings.ini", quiet=True)
        assert not (ctx.files_root / ".config" / "app").exists()
        assert (ctx.files_root / ".config").is_dir()

        core.remove_dotfile(ctx, ".config/x", quiet=True)
        assert not (ctx.files_root / ".config").exists()
        assert ctx.files_root.is_dir()


class TestListAndStatus:
    """Test reporting without side effects."""

    def test_list_empty(self, ctx):
        """An empty repository lists nothing and creates nothing."""
        assert core.list_dotfiles(ctx) == []
        assert not ctx.config_dir.exists()

    def test_list_classifies_each_record(self, ctx, tmp_path: Path):
        """A tampered link is reported as bad, an untouched one as OK."""
        create_test_files(ctx.home, {".bashrc": "", ".vimrc": ""})
        good = core.add_dotfile(ctx, ".bashrc", quiet=True)
        bad = core.add_dotfile(ctx, ".vimrc", quiet=True)
        os.unlink(bad.repo_abs)
        os.symlink(str(tmp_path / "elsewhere"), bad.repo_abs)

        entries = core.list_dotfiles(ctx)

        assert entries == [(good, LinkStatus.OK), (bad, LinkStatus.BAD_LINK)]
        # reported, never repaired
        assert os.readlink(bad.repo_abs) == str(tmp_path / "elsewhere")

    def test_list_skips_malformed_lines(self, ctx):
        """list uses lenient parsing."""
        ctx.config_dir.mkdir(parents=True)
        ctx.index_file.write_text("garbage\n# comment\n")

        assert core.list_dotfiles(ctx) == []

    def test_status(self, ctx):
        """status classifies a single record."""
        create_test_files(ctx.home, {".bashrc": ""})
        record = core.add_dotfile(ctx, ".bashrc", quiet=True)

        assert core.dotfile_status(ctx, "~/.bashrc") == (record, LinkStatus.OK)

    def test_status_untracked(self, ctx):
        """status on an untracked path raises NotTrackedError."""
        with pytest.raises(NotTrackedError):
            core.dotfile_status(ctx, ".bashrc")


class TestValidateIndex:
    """Test strict validation."""

    def test_all_valid(self, ctx):
        """Healthy records all land in 'ok'."""
        create_test_files(ctx.home, {".bashrc": "", ".vimrc": ""})
        core.add_dotfile(ctx, ".bashrc", quiet=True)
        core.add_dotfile(ctx, ".vimrc", quiet=True)

        report = core.validate_index(ctx)

        assert len(report["ok"]) == 2
        assert report["bad_link"] == report["missing"] == []

    def test_groups_problems(self, ctx):
        """Each problem lands in its own bucket."""
        create_test_files(ctx.home, {".a": "", ".b": "", ".c": ""})
        a = core.add_dotfile(ctx, ".a", quiet=True)
        b = core.add_dotfile(ctx, ".b", quiet=True)
        core.add_dotfile(ctx, ".c", quiet=True)
        os.unlink(a.repo_abs)
        os.unlink(b.original_abs)

        report = core.validate_index(ctx)

        assert report["missing"] == [a.original_abs]
        assert report["original_missing"] == [b.original_abs]
        assert report["ok"] == [str(ctx.home / ".c")]

    def test_malformed_index_raises(self, ctx):
        """Strict parsing surfaces corruption."""
        ctx.config_dir.mkdir(parents=True)
        ctx.index_file.write_text("only-one-field\n")

        with pytest.raises(IndexParseError):
            core.validate_index(ctx)
