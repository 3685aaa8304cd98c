"""
Tests for the plansandbox.shell.validators module.

Tests cover:
- Token extraction: absolute paths, cd targets, '..' fragments
- Validation against a plan root
- Working directory tracking across cd
- Known limits of the heuristic
"""

import os
from unittest.mock import Mock

import pytest

from plansandbox.exceptions import AccessDeniedError
from plansandbox.filesystem.confinement import PathConfinement
from plansandbox.shell.data_models import CommandPathKind, CommandPathToken
from plansandbox.shell.validators import (
    check_command_paths,
    extract_command_paths,
    validate_command_paths,
)


# ==============================================================================
# Fixtures
# ==============================================================================


@pytest.fixture
def confinement(tmp_path):
    root = tmp_path / "plans" / "p1"
    (root / "sub").mkdir(parents=True)
    (root / "notes.txt").write_text("notes")
    return PathConfinement(root)


# ==============================================================================
# Extraction
# ==============================================================================


class TestExtractCommandPaths:
    """Tests for extract_command_paths."""

    def test_empty(self):
        """Test that empty commands have no tokens."""
        assert extract_command_paths("") == []
        assert extract_command_paths(None) == []
        assert extract_command_paths("   ") == []

    def test_absolute_path(self):
        """Test that whitespace-preceded absolute paths are found."""
        tokens = extract_command_paths("cat /etc/passwd")

        assert tokens == [CommandPathToken(CommandPathKind.ABSOLUTE, "/etc/passwd")]

    def test_quoted_absolute_path(self):
        """Test that a leading quote is skipped."""
        tokens = extract_command_paths("cat '/etc/shadow'")

        assert tokens[0].text == "/etc/shadow"

    def test_absolute_path_stops_at_separators(self):
        """Test that ';', '&' and '|' end a path."""
        tokens = extract_command_paths("ls /tmp;echo hi | wc")

        assert [t.text for t in tokens] == ["/tmp"]

    def test_leading_command_not_matched(self):
        """Test that the command word itself is not treated as a path."""
        assert extract_command_paths("/usr/bin/env") == []

    def test_stream_devices_exempt(self):
        """Test that redirections to stream devices are allowed."""
        assert extract_command_paths("make 2> /dev/null") == []

    def test_cd_target(self):
        """Test that cd targets are found and unquoted."""
        tokens = extract_command_paths('cd "sub dir"; ls')

        assert CommandPathToken(CommandPathKind.CD_TARGET, "sub") in tokens

    def test_cd_case_insensitive(self):
        """Test that 'CD' is recognized."""
        assert extract_command_paths("CD sub")[0].kind is CommandPathKind.CD_TARGET

    @pytest.mark.parametrize("command", ["cd -", "cd ~", "cd ~/projects"])
    def test_cd_special_targets_exempt(self, command):
        """Test that 'cd -', 'cd ~' and 'cd ~/x' are not checked."""
        assert extract_command_paths(command) == []

    def test_parent_reference(self):
        """Test that tokens containing '..' are found."""
        tokens = extract_command_paths("cat ../secret.txt")

        assert tokens == [CommandPathToken(CommandPathKind.PARENT_REFERENCE, "../secret.txt")]

    def test_kind_order(self):
        """Test tokens come in kind order: absolute, cd, parent."""
        tokens = extract_command_paths("cd .. && cat /etc/hosts")

        assert [t.kind for t in tokens] == [
            CommandPathKind.ABSOLUTE,
            CommandPathKind.CD_TARGET,
            CommandPathKind.PARENT_REFERENCE,
        ]


# ==============================================================================
# Validation
# ==============================================================================


class TestValidateCommandPaths:
    """Tests for validate_command_paths."""

    def test_cat_etc_passwd_rejected(self, confinement):
        """Test that 'cat /etc/passwd' is rejected."""
        with pytest.raises(AccessDeniedError) as exc_info:
            validate_command_paths("cat /etc/passwd", confinement)

        assert exc_info.value.developer_message == (
            "Absolute path '/etc/passwd' is outside root-plan-folder. "
            "Use relative paths from root-plan-folder instead"
        )
        assert exc_info.value.context["command"] == "cat /etc/passwd"

    def test_cat_relative_accepted(self, confinement):
        """Test that 'cat notes.txt' is accepted."""
        validate_command_paths("cat notes.txt", confinement)

    def test_absolute_inside_root_accepted(self, confinement):
        """Test that an absolute path inside the root is accepted."""
        validate_command_paths(f"cat {confinement.jail_root}/notes.txt", confinement)

    def test_cd_dotdot_at_root_rejected(self, confinement):
        """Test that 'cd ..' from the root is rejected."""
        with pytest.raises(AccessDeniedError) as exc_info:
            validate_command_paths("cd ..", confinement)

        assert exc_info.value.developer_message == "cd command target '..' is outside root-plan-folder"

    def test_cd_dotdot_inside_root_accepted(self, confinement):
        """Test that 'cd sub/..' stays at the root and is accepted."""
        validate_command_paths("cd sub/..", confinement)

    def test_cd_absolute_rejected(self, confinement):
        """Test that 'cd /tmp' is rejected."""
        with pytest.raises(AccessDeniedError):
            validate_command_paths("cd /tmp", confinement)

    def test_dotdot_fragment_rejected(self, confinement):
        """Test that a '..' fragment climbing out is rejected."""
        with pytest.raises(AccessDeniedError) as exc_info:
            validate_command_paths("cp notes.txt sub/../../stolen.txt", confinement)

        assert exc_info.value.developer_message == (
            "Path with '..' 'sub/../../stolen.txt' would escape root-plan-folder"
        )

    def test_symlink_escape_rejected(self, confinement, tmp_path):
        """Test that a relative path through an escaping symlink is rejected."""
        os.symlink(tmp_path, confinement.jail_root / "out")

        with pytest.raises(AccessDeniedError):
            validate_command_paths("cd out", confinement)

    def test_empty_accepted(self, confinement):
        """Test that an empty command is accepted."""
        validate_command_paths("", confinement)

    def test_denial_audited(self, tmp_path):
        """Test that rejected tokens reach the audit logger."""
        audit = Mock()
        confinement = PathConfinement(tmp_path, audit=audit)

        with pytest.raises(AccessDeniedError):
            validate_command_paths("cat /etc/passwd", confinement)

        audit.log_denial.assert_called_once()

    def test_check_command_paths(self, confinement):
        """Test the non-raising variant."""
        assert check_command_paths("ls sub", confinement) == (True, None)

        ok, message = check_command_paths("ls /", confinement)
        assert not ok
        assert "outside root-plan-folder" in message


class TestHeuristicLimits:
    """Documents what the text heuristic does not see."""

    def test_variable_expansion_not_detected(self, confinement):
        """Test that paths hidden in variables pass the heuristic."""
        validate_command_paths("cat $HOME_FILE", confinement)

    def test_path_glued_to_redirect_not_detected(self, confinement):
        """Test that a path without preceding whitespace is not extracted."""
        assert extract_command_paths("echo x>/tmp/out") == []


class TestWorkingDirectoryTracking:
    """Tests for relative tokens after a 'cd' in the same command."""

    def test_cd_then_back_accepted(self, confinement):
        """Test that 'cd sub && cd ..' ends at the root and is accepted."""
        validate_command_paths("cd sub && cd ..", confinement)

    def test_cd_then_too_far_rejected(self, confinement):
        """Test that 'cd sub && cd ../..' climbs out and is rejected."""
        with pytest.raises(AccessDeniedError) as exc_info:
            validate_command_paths("cd sub && cd ../..", confinement)

        assert exc_info.value.developer_message == "cd command target '../..' is outside root-plan-folder"

    def test_fragment_after_cd_accepted(self, confinement):
        """Test that a '..' fragment is resolved from the directory cd moved to."""
        validate_command_paths("cd sub && cat ../notes.txt", confinement)

    def test_semicolon_keeps_root_possible(self, confinement):
        """Test that after ';' a failed cd is assumed possible."""
        with pytest.raises(AccessDeniedError):
            validate_command_paths("cd sub; cat ../notes.txt", confinement)

    @pytest.mark.parametrize(
        "command",
        [
            "(cd sub) && cat ../notes.txt",
            "cd sub | cat ../notes.txt",
            "cd sub & cat ../notes.txt",
            "echo cd sub && cat ../notes.txt",
        ],
    )
    def test_cd_elsewhere_not_followed(self, confinement, command):
        """Test that a cd in a subshell, pipe, background job or argument does not move later tokens."""
        with pytest.raises(AccessDeniedError):
            validate_command_paths(command, confinement)

    def test_cd_previous_resets_to_root(self, confinement):
        """Test that 'cd -' is judged as leaving the tracked directory."""
        with pytest.raises(AccessDeniedError):
            validate_command_paths("cd sub && cd - && cd ..", confinement)

    def test_absolute_cd_tracked(self, confinement):
        """Test that an absolute cd inside the root moves later tokens."""
        validate_command_paths(f"cd {confinement.jail_root}/sub && cd ..", confinement)

    def test_symlinked_directory_uses_real_parent(self, confinement):
        """Test that '..' after entering a symlinked directory is its real parent."""
        (confinement.jail_root / "sub" / "deep").mkdir()
        os.symlink(confinement.jail_root, confinement.jail_root / "sub" / "deep" / "top")

        with pytest.raises(AccessDeniedError):
            validate_command_paths("cd sub/deep/top && cat ../notes.txt", confinement)

    def test_token_offsets(self):
        """Test that tokens carry their position in the command."""
        tokens = extract_command_paths("cd sub && cd ..")

        assert [(t.kind, t.offset) for t in tokens] == [
            (CommandPathKind.CD_TARGET, 3),
            (CommandPathKind.CD_TARGET, 13),
            (CommandPathKind.PARENT_REFERENCE, 13),
        ]
