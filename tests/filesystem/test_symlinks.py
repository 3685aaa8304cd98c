"""
Tests for the plansandbox.filesystem.symlinks module.

Tests cover:
- classify: SAFE, CIRCULAR_ANCESTOR and ESCAPES_JAIL links
- describe and read_target
- VisitedSet identity tracking
"""

import os
from pathlib import Path

import pytest

from plansandbox.filesystem.data_models import SymlinkStatus
from plansandbox.filesystem.symlinks import (
    VisitedSet,
    classify,
    describe,
    directory_identity,
    is_symlink,
    read_target,
)


# ==============================================================================
# Fixtures
# ==============================================================================


@pytest.fixture
def jail(tmp_path):
    root = tmp_path / "jail"
    (root / "a" / "b" / "c").mkdir(parents=True)
    (root / "shared").mkdir()
    (tmp_path / "elsewhere").mkdir()
    return Path(os.path.realpath(root))


# ==============================================================================
# classify
# ==============================================================================


class TestClassify:
    """Tests for symlink classification."""

    def test_safe_link(self, jail):
        """Test that a link to a sibling subtree is SAFE."""
        link = jail / "a" / "to_shared"
        os.symlink(jail / "shared", link)

        assert classify(link, jail) is SymlinkStatus.SAFE

    def test_relative_safe_link(self, jail):
        """Test that relative targets resolve against the link's parent."""
        link = jail / "a" / "b" / "rel_shared"
        os.symlink("../../shared", link)

        assert classify(link, jail) is SymlinkStatus.SAFE

    def test_link_to_jail_root(self, jail):
        """Test that a link to the jail root is circular."""
        link = jail / "a" / "b" / "c" / "root"
        os.symlink(jail, link)

        assert classify(link, jail) is SymlinkStatus.CIRCULAR_ANCESTOR

    def test_link_to_ancestor_of_jail(self, jail):
        """Test that a link above the jail root is circular, not escaping."""
        link = jail / "up"
        os.symlink(jail.parent, link)

        assert classify(link, jail) is SymlinkStatus.CIRCULAR_ANCESTOR

    def test_link_to_own_ancestor(self, jail):
        """Test that a link to an ancestor of its own directory is circular."""
        link = jail / "a" / "b" / "c" / "back"
        os.symlink("../..", link)

        assert classify(link, jail) is SymlinkStatus.CIRCULAR_ANCESTOR

    def test_link_to_own_parent(self, jail):
        """Test that a link to its own directory is circular."""
        link = jail / "a" / "self"
        os.symlink(".", link)

        assert classify(link, jail) is SymlinkStatus.CIRCULAR_ANCESTOR

    def test_escaping_link(self, jail, tmp_path):
        """Test that a link outside the jail root escapes."""
        link = jail / "a" / "out"
        os.symlink(tmp_path / "elsewhere", link)

        assert classify(link, jail) is SymlinkStatus.ESCAPES_JAIL

    def test_dangling_link(self, jail):
        """Test that an unresolvable link counts as circular."""
        link = jail / "a" / "dangling"
        os.symlink(jail / "missing", link)

        assert classify(link, jail) is SymlinkStatus.CIRCULAR_ANCESTOR

    def test_link_chain_loop(self, jail):
        """Test that a link chain loop counts as circular."""
        os.symlink(jail / "l2", jail / "l1")
        os.symlink(jail / "l3", jail / "l2")
        os.symlink(jail / "l1", jail / "l3")

        assert classify(jail / "l1", jail) is SymlinkStatus.CIRCULAR_ANCESTOR


# ==============================================================================
# Helpers
# ==============================================================================


class TestHelpers:
    """Tests for is_symlink, read_target and describe."""

    def test_is_symlink(self, jail):
        """Test symlink detection without following."""
        os.symlink(jail / "shared", jail / "link")

        assert is_symlink(jail / "link")
        assert not is_symlink(jail / "shared")

    def test_read_target_raw(self, jail):
        """Test that the raw target text is returned."""
        os.symlink("../shared", jail / "a" / "rel")

        assert read_target(jail / "a" / "rel") == "../shared"

    def test_read_target_not_link(self, jail):
        """Test that reading a non-link raises OSError."""
        with pytest.raises(OSError):
            read_target(jail / "shared")

    def test_describe(self, jail):
        """Test the log description format."""
        link = jail / "a" / "rel"
        os.symlink("../shared", link)

        assert describe(link) == f"{link} -> ../shared (target: {jail / 'shared'})"


# ==============================================================================
# VisitedSet
# ==============================================================================


class TestVisitedSet:
    """Tests for VisitedSet."""

    def test_add_new_and_repeat(self, jail):
        """Test that a second add of the same directory returns False."""
        visited = VisitedSet()

        assert visited.add(jail / "a")
        assert not visited.add(jail / "a")
        assert len(visited) == 1

    def test_identity_follows_links(self, jail):
        """Test that a link and its target share an identity."""
        os.symlink(jail / "shared", jail / "alias")
        visited = VisitedSet()

        visited.add(jail / "shared")

        assert jail / "alias" in visited
        assert not visited.add(jail / "alias")

    def test_identity_fallback(self, jail):
        """Test that an unstat-able path falls back to its real path."""
        assert directory_identity(jail / "missing") == os.path.realpath(jail / "missing")

    def test_independent_sets(self, jail):
        """Test that two walks do not share state."""
        first = VisitedSet()
        second = VisitedSet()
        first.add(jail)

        assert second.add(jail)
