"""
Tests for the plansandbox.filesystem.walker module.

Tests cover:
- Event sequence and matching
- Symlink handling: loops, ancestors, escapes, safe links, the external link
- Depth and path-length guards (partial results, never failures)
- Ignore files during walks
- Ordering by modification time
- Error isolation per node
"""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from plansandbox.config import SandboxConfig
from plansandbox.exceptions import AccessDeniedError, FileOperationError, PathNotFoundError
from plansandbox.filesystem.confinement import PathConfinement, is_within
from plansandbox.filesystem.data_models import SkipReason, WalkEventKind
from plansandbox.filesystem.ignore import IgnoreRuleCache
from plansandbox.filesystem.walker import DirectoryWalker, _read_size_and_mtime


# ==============================================================================
# Fixtures
# ==============================================================================


@pytest.fixture
def jail(tmp_path):
    """
    jail/
        readme.md
        notes.md.bak
        docs/guide.md
        docs/api/ref.md
        src/app.py
    """
    root = tmp_path / "jail"
    (root / "docs" / "api").mkdir(parents=True)
    (root / "src").mkdir()
    (root / "readme.md").write_text("# readme")
    (root / "notes.md.bak").write_text("old")
    (root / "docs" / "guide.md").write_text("guide")
    (root / "docs" / "api" / "ref.md").write_text("ref")
    (root / "src" / "app.py").write_text("print()")
    return Path(os.path.realpath(root))


def make_walker(jail, **config_overrides):
    config = SandboxConfig(**config_overrides)
    return DirectoryWalker(PathConfinement(jail, config), IgnoreRuleCache())


def matched_paths(result):
    return sorted(m.relative_path for m in result.matches)


# ==============================================================================
# Basic Walks
# ==============================================================================


class TestBasicWalk:
    """Tests for plain walks and matching."""

    def test_recursive_extension_match(self, jail):
        """Test that '*.md' finds markdown files at every depth but not '.md.bak'."""
        result = make_walker(jail).walk("*.md")

        assert matched_paths(result) == ["docs/api/ref.md", "docs/guide.md", "readme.md"]
        assert not result.truncated

    def test_search_root_subdirectory(self, jail):
        """Test that paths are relative to the search root."""
        result = make_walker(jail).walk("*.md", "docs")

        assert matched_paths(result) == ["api/ref.md", "guide.md"]
        assert result.root == jail / "docs"

    def test_search_root_plan_prefix(self, jail):
        """Test that the search root is normalized."""
        result = make_walker(jail).walk("*.py", "plan-7/src")

        assert matched_paths(result) == ["app.py"]

    def test_no_matches(self, jail):
        """Test that a walk without matches is a falsy result."""
        result = make_walker(jail).walk("*.rs")

        assert not result
        assert result.total_matches == 0
        assert result.skipped[SkipReason.NO_MATCH] == 5

    def test_every_result_inside_root(self, jail):
        """Test that every match resolves inside the jail root."""
        for match in make_walker(jail).walk("*").matches:
            assert is_within(jail, os.path.realpath(match.absolute_path))

    def test_event_sequence(self, jail):
        """Test the order of events for a small tree."""
        events = list(make_walker(jail).events("*.py", "src"))

        assert [e.kind for e in events] == [
            WalkEventKind.ENTER_DIR,
            WalkEventKind.FILE_MATCH,
            WalkEventKind.EXIT_DIR,
        ]
        assert events[1].match.relative_path == "app.py"
        assert events[1].depth == 1

    def test_events_are_restartable(self, jail):
        """Test that two event sequences are independent walks."""
        walker = make_walker(jail)

        first = [e.kind for e in walker.events("*.md")]
        second = [e.kind for e in walker.events("*.md")]

        assert first == second

    def test_events_are_lazy(self, jail):
        """Test that nothing is read until the sequence is consumed."""
        walker = make_walker(jail)

        with patch("plansandbox.filesystem.walker.os.scandir") as scandir:
            events = walker.events("*.md")
            scandir.assert_not_called()
            del events

    def test_missing_search_root(self, jail):
        """Test that a missing search root raises PathNotFoundError."""
        with pytest.raises(PathNotFoundError):
            make_walker(jail).walk("*.md", "nope")

    def test_file_as_search_root(self, jail):
        """Test that a file search root raises FileOperationError."""
        with pytest.raises(FileOperationError):
            make_walker(jail).walk("*.md", "readme.md")

    def test_escaping_search_root(self, jail):
        """Test that a search root outside the jail is denied."""
        with pytest.raises(AccessDeniedError):
            make_walker(jail).walk("*.md", "../..")

    def test_invalid_pattern(self, jail):
        """Test that an empty pattern raises ValueError."""
        with pytest.raises(ValueError):
            make_walker(jail).walk("  ")

    def test_to_dict(self, jail):
        """Test result serialization."""
        data = make_walker(jail).walk("*.py").to_dict()

        assert data["total_matches"] == 1
        assert data["matches"][0]["relative_path"] == "src/app.py"
        assert data["truncated"] is False


# ==============================================================================
# Symlinks
# ==============================================================================


class TestSymlinks:
    """Tests for symlink handling during walks."""

    def test_three_level_loop_terminates(self, jail):
        """Test that a loop three levels down back to the top terminates."""
        deep = jail / "loop" / "l1" / "l2"
        deep.mkdir(parents=True)
        (deep / "deep.md").write_text("x")
        os.symlink(jail / "loop", deep / "back")

        result = make_walker(jail).walk("*.md")

        assert "loop/l1/l2/deep.md" in matched_paths(result)
        # The target was already entered, so the cycle check fires first
        assert result.skipped[SkipReason.CYCLE] == 1

    def test_link_chain_loop_terminates(self, jail):
        """Test that a symlink-to-symlink loop does not hang the walk."""
        os.symlink(jail / "c2", jail / "c1")
        os.symlink(jail / "c3", jail / "c2")
        os.symlink(jail / "c1", jail / "c3")

        result = make_walker(jail).walk("*.md")

        assert len(result.matches) == 3

    def test_link_to_jail_root_not_followed(self, jail):
        """Test that a link to the jail root is never followed."""
        os.symlink(jail, jail / "docs" / "root_again")

        result = make_walker(jail).walk("*.md")

        assert len(result.matches) == 3
        assert result.skipped[SkipReason.CYCLE] == 1

    def test_link_above_jail_root_not_followed(self, jail):
        """Test that a link to an ancestor of the jail root is never followed."""
        os.symlink(jail.parent, jail / "up")

        result = make_walker(jail).walk("*.md")

        assert len(result.matches) == 3
        assert result.skipped[SkipReason.CIRCULAR_SYMLINK] == 1

    def test_escaping_link_skipped(self, jail, tmp_path):
        """Test that a link to a directory outside the jail root is skipped."""
        outside = tmp_path / "outside"
        outside.mkdir()
        (outside / "leak.md").write_text("secret")
        os.symlink(outside, jail / "escape")

        result = make_walker(jail).walk("*.md")

        assert "escape/leak.md" not in matched_paths(result)
        assert result.skipped[SkipReason.ESCAPES_JAIL] == 1

    def test_safe_link_descended_once(self, jail):
        """Test that a safe link is walked but a directory is not visited twice."""
        os.symlink(jail / "docs" / "api", jail / "api_link")

        result = make_walker(jail).walk("*.md")
        paths = matched_paths(result)

        # 'api_link' sorts before 'docs', so the link is walked first
        assert "api_link/ref.md" in paths
        assert "docs/api/ref.md" not in paths
        assert result.skipped[SkipReason.CYCLE] == 1

    def test_symlinked_files_not_matched(self, jail):
        """Test that symlinked files are skipped for matching."""
        os.symlink(jail / "readme.md", jail / "docs" / "alias.md")

        result = make_walker(jail).walk("*.md")

        assert "docs/alias.md" not in matched_paths(result)
        assert result.skipped[SkipReason.SYMLINK_FILE] == 1

    def test_external_link_as_search_root(self, jail, tmp_path):
        """Test that the external link can be searched directly."""
        external = tmp_path / "external"
        (external / "pkg").mkdir(parents=True)
        (external / "pkg" / "mod.py").write_text("x = 1")
        os.symlink(external, jail / "linked_external")

        result = make_walker(jail).walk("*.py", "linked_external")

        assert matched_paths(result) == ["pkg/mod.py"]
        assert result.root == Path(os.path.realpath(external))

    def test_external_link_not_followed_from_root(self, jail, tmp_path):
        """Test that a whole-plan walk does not follow the external link."""
        external = tmp_path / "external"
        external.mkdir()
        (external / "mod.py").write_text("x = 1")
        os.symlink(external, jail / "linked_external")

        result = make_walker(jail).walk("*.py")

        assert matched_paths(result) == ["src/app.py"]

    def test_symlink_root_registered_for_cycles(self, jail, tmp_path):
        """Test that a link back to the external root inside it is not followed."""
        external = tmp_path / "external"
        (external / "inner").mkdir(parents=True)
        (external / "inner" / "a.py").write_text("")
        os.symlink(external, external / "inner" / "again")
        os.symlink(external, jail / "linked_external")

        result = make_walker(jail).walk("*.py", "linked_external")

        assert matched_paths(result) == ["inner/a.py"]


# ==============================================================================
# Limits
# ==============================================================================


class TestLimits:
    """Tests for depth and path-length guards."""

    def test_deep_tree_capped_at_max_depth(self, jail):
        """Test that a 150-level tree yields files down to depth 100 and is truncated."""
        current = jail / "deep"
        for _ in range(150):
            current = current / "d"
        current.mkdir(parents=True)
        level = jail / "deep"
        for _ in range(150):
            level = level / "d"
            (level / "f.txt").write_text("x")

        result = make_walker(jail).walk("*.txt", "deep")

        depths = [m.relative_path.count("/") + 1 for m in result.matches]
        assert len(result.matches) == 99
        assert max(depths) == 100
        assert result.truncated
        assert result.skipped[SkipReason.DEPTH_LIMIT] == 1

    def test_custom_max_depth(self, jail):
        """Test that max_depth is configurable."""
        result = make_walker(jail, max_depth=2).walk("*.md")

        assert matched_paths(result) == ["docs/guide.md", "readme.md"]
        assert result.truncated

    def test_long_paths_skipped(self, jail):
        """Test that over-long paths are skipped without failing."""
        long_dir = jail / ("x" * 50)
        long_dir.mkdir()
        (long_dir / "inner.md").write_text("x")
        limit = len(str(jail)) + 30

        result = make_walker(jail, max_path_length=limit).walk("*.md")

        assert "inner.md" not in " ".join(matched_paths(result))
        assert "readme.md" in matched_paths(result)
        assert result.skipped[SkipReason.PATH_TOO_LONG] >= 1
        assert result.truncated


# ==============================================================================
# Ignore Files
# ==============================================================================


class TestIgnoreDuringWalk:
    """Tests for ignore rules during walks."""

    def test_ignored_directory_skipped(self, jail):
        """Test that an ignored directory is not descended."""
        (jail / "node_modules" / "pkg").mkdir(parents=True)
        (jail / "node_modules" / "pkg" / "index.md").write_text("x")
        (jail / ".gitignore").write_text("node_modules/\n")

        result = make_walker(jail).walk("*.md")

        assert not any(p.startswith("node_modules") for p in matched_paths(result))
        assert result.skipped[SkipReason.IGNORED] == 1

    def test_build_negation_reinclude(self, jail):
        """Test 'build/' with '!build/out.txt' re-including out.txt."""
        (jail / "build").mkdir()
        (jail / "build" / "out.txt").write_text("keep")
        (jail / "build" / "tmp.txt").write_text("drop")
        (jail / ".gitignore").write_text("build/\n!build/out.txt\n")

        result = make_walker(jail).walk("*.txt")

        assert matched_paths(result) == ["build/out.txt"]

    def test_build_without_negation(self, jail):
        """Test that 'build/' alone excludes build/out.txt."""
        (jail / "build").mkdir()
        (jail / "build" / "out.txt").write_text("drop")
        (jail / ".gitignore").write_text("build/\n")

        result = make_walker(jail).walk("*.txt")

        assert result.matches == []

    def test_ignored_files(self, jail):
        """Test that ignored files are skipped, in subdirectory searches too."""
        (jail / ".ignore").write_text("api/\n")

        result = make_walker(jail).walk("*.md", "docs")

        assert matched_paths(result) == ["guide.md"]

    def test_ignore_files_disabled(self, jail):
        """Test that respect_ignore_files=False ignores the rules."""
        (jail / ".gitignore").write_text("*.md\n")

        result = make_walker(jail, respect_ignore_files=False).walk("*.md")

        assert len(result.matches) == 3

    def test_external_link_uses_its_own_ignore_files(self, jail, tmp_path):
        """Test that searches under the external link read the target's ignore files."""
        external = tmp_path / "external"
        (external / "gen").mkdir(parents=True)
        (external / "gen" / "a.py").write_text("")
        (external / "main.py").write_text("")
        (external / ".gitignore").write_text("gen/\n")
        (jail / ".gitignore").write_text("main.py\n")
        os.symlink(external, jail / "linked_external")

        result = make_walker(jail).walk("*.py", "linked_external")

        assert matched_paths(result) == ["main.py"]

    def test_nested_ignore_file_applies_to_its_directory(self, jail):
        """Test that sub/.gitignore excludes files under sub/ only."""
        (jail / "sub").mkdir()
        (jail / "sub" / ".gitignore").write_text("*.log\n")
        (jail / "sub" / "x.log").write_text("x")
        (jail / "top.log").write_text("x")

        result = make_walker(jail).walk("*.log")

        assert matched_paths(result) == ["top.log"]
        assert result.skipped[SkipReason.IGNORED] == 1

    def test_nested_ignore_file_paths_are_relative(self, jail):
        """Test that anchored rules in a nested file are relative to its directory."""
        (jail / "docs" / ".gitignore").write_text("/api/\n")

        result = make_walker(jail).walk("*.md")

        assert matched_paths(result) == ["docs/guide.md", "readme.md"]

    def test_nested_negation_overrides_parent(self, jail):
        """Test that a deeper ignore file re-includes what a parent excluded."""
        (jail / "logs").mkdir()
        (jail / "logs" / "keep.log").write_text("x")
        (jail / "logs" / "drop.log").write_text("x")
        (jail / ".gitignore").write_text("*.log\n")
        (jail / "logs" / ".ignore").write_text("!keep.log\n")

        result = make_walker(jail).walk("*.log")

        assert matched_paths(result) == ["logs/keep.log"]

    def test_nested_ignore_file_above_search_root(self, jail):
        """Test that ignore files between the plan root and the search root apply."""
        (jail / "docs" / ".gitignore").write_text("ref.md\n")

        result = make_walker(jail).walk("*.md", "docs/api")

        assert result.matches == []


# ==============================================================================
# Ordering
# ==============================================================================


class TestOrdering:
    """Tests for newest-first ordering."""

    def test_newest_first(self, tmp_path):
        """Test that mtimes T1 < T2 < T3 come back as T3, T2, T1."""
        root = tmp_path / "jail"
        root.mkdir()
        for name, mtime in [("t1.log", 1_000_000), ("t2.log", 2_000_000), ("t3.log", 3_000_000)]:
            path = root / name
            path.write_text(name)
            os.utime(path, (mtime, mtime))

        result = make_walker(root).walk("*.log")

        assert [m.relative_path for m in result.matches] == ["t3.log", "t2.log", "t1.log"]

    def test_unreadable_mtime_last(self, tmp_path):
        """Test that a match whose mtime cannot be read sorts last."""
        root = tmp_path / "jail"
        root.mkdir()
        for name, mtime in [("a.log", 1_000_000), ("b.log", 2_000_000), ("c.log", 3_000_000)]:
            path = root / name
            path.write_text(name)
            os.utime(path, (mtime, mtime))

        def fake_stat(path):
            if path.name == "c.log":
                return 0, None
            return _read_size_and_mtime(path)

        with patch("plansandbox.filesystem.walker._read_size_and_mtime", side_effect=fake_stat):
            result = make_walker(root).walk("*.log")

        assert [m.relative_path for m in result.matches] == ["b.log", "a.log", "c.log"]
        assert result.matches[-1].modified is None

    def test_equal_mtimes_keep_visit_order(self, tmp_path):
        """Test that ties keep name order."""
        root = tmp_path / "jail"
        root.mkdir()
        for name in ["b.log", "a.log", "c.log"]:
            path = root / name
            path.write_text(name)
            os.utime(path, (5_000_000, 5_000_000))

        result = make_walker(root).walk("*.log")

        assert [m.relative_path for m in result.matches] == ["a.log", "b.log", "c.log"]


# ==============================================================================
# Error Isolation
# ==============================================================================


class TestErrorIsolation:
    """Tests that one failing node does not abort the walk."""

    def test_unlistable_directory(self, jail):
        """Test that a directory that cannot be listed becomes an IO_ERROR skip."""
        real_scandir = os.scandir

        def flaky_scandir(path):
            if Path(path).name == "api":
                raise PermissionError("denied")
            return real_scandir(path)

        with patch("plansandbox.filesystem.walker.os.scandir", side_effect=flaky_scandir):
            result = make_walker(jail).walk("*.md")

        assert matched_paths(result) == ["docs/guide.md", "readme.md"]
        assert result.skipped[SkipReason.IO_ERROR] == 1
        assert not result.truncated

    def test_unreadable_attributes(self, jail):
        """Test that a failed stat gives no size or time instead of raising."""
        assert _read_size_and_mtime(jail / "vanished.md") == (0, None)

        size, modified = _read_size_and_mtime(jail / "src" / "app.py")
        assert size == len("print()")
        assert modified is not None
