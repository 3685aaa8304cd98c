"""
Pre-flight path checks on shell command text.

Paths are pulled out of the raw command string with regular expressions
and each one is confined to the plan root. This is a best-effort
heuristic: quoting, variable expansion and command substitution are not
parsed, so a determined command can hide a path from it. It catches the
common cases ('cat /etc/passwd', 'cd ../..') before a process starts.

Relative tokens are resolved against the directory the command will be
in at that point. Commands start in the plan root, and a leading 'cd'
of one simple command moves the later ones of a '&&' / ';' chain.
"""

from __future__ import annotations

import logging
import os
import posixpath
import re
from typing import FrozenSet, List, Optional, Sequence, Tuple

from plansandbox.exceptions import AccessDeniedError
from plansandbox.filesystem.confinement import PathConfinement, is_within, resolve_path

from .data_models import CommandPathKind, CommandPathToken

logger = logging.getLogger(__name__)

# Absolute path preceded by whitespace; the command word itself is not matched
ABSOLUTE_PATH_RE = re.compile(r"\s+[\"']?(/[^\s;&|\"']+)")

# cd target up to the next separator
CD_TARGET_RE = re.compile(r"\bcd\s+([^\s;&|]+)", re.IGNORECASE)

# Any whitespace-delimited token containing '..'
PARENT_REFERENCE_RE = re.compile(r"([^\s]*\.\.[^\s]*)")

# Separators between simple commands that run in the same shell
COMMAND_SEPARATOR_RE = re.compile(r"&&|;|\n")

# 'cd' as the command word of a simple command
LEADING_CD_RE = re.compile(r"\s*cd\b(?:\s+([^\s;&|]+))?", re.IGNORECASE)

# Pipes, subshells, substitution and background jobs run 'cd' elsewhere
UNTRACKED_RE = re.compile(r"[|()`]|(?<!&)&(?!&)")

_QUOTES_RE = re.compile(r"^[\"']|[\"']$")

# Stream devices commonly used in redirections
STREAM_DEVICE_PATHS = frozenset({"/dev/null", "/dev/stdin", "/dev/stdout", "/dev/stderr"})

ROOT_ONLY: FrozenSet[str] = frozenset({"."})


def _strip_quotes(token: str) -> str:
    return _QUOTES_RE.sub("", token.strip())


def _is_home_or_previous(target: str) -> bool:
    return target == "-" or target.startswith("~")


def _relative_to(directory: str, path: str) -> str:
    return path if directory == "." else posixpath.join(directory, path)


def extract_command_paths(command: Optional[str]) -> List[CommandPathToken]:
    """
    Extract path-like tokens from command text.

    Args:
        command: Shell command text

    Returns:
        Tokens in kind order: absolute paths, cd targets, '..' fragments.
        'cd -' and 'cd ~...' targets are not returned.
    """
    if not command or not command.strip():
        return []

    tokens: List[CommandPathToken] = []

    for match in ABSOLUTE_PATH_RE.finditer(command):
        if match.group(1) in STREAM_DEVICE_PATHS:
            continue
        tokens.append(CommandPathToken(CommandPathKind.ABSOLUTE, match.group(1), match.start(1)))

    for match in CD_TARGET_RE.finditer(command):
        target = _strip_quotes(match.group(1))
        if not target or _is_home_or_previous(target):
            continue
        tokens.append(CommandPathToken(CommandPathKind.CD_TARGET, target, match.start(1)))

    if ".." in command:
        for match in PARENT_REFERENCE_RE.finditer(command):
            fragment = _strip_quotes(match.group(1))
            if fragment and ".." in fragment:
                tokens.append(
                    CommandPathToken(CommandPathKind.PARENT_REFERENCE, fragment, match.start(1))
                )

    return tokens


def _change_directory(confinement: PathConfinement, directory: str, target: Optional[str]) -> str:
    """Root-relative directory after 'cd target' from directory ('.' when unknown)."""
    if not target or _is_home_or_previous(target):
        return "."
    try:
        if target.startswith("/"):
            candidate = resolve_path(confinement.jail_root, target, raw=target)
        else:
            candidate = confinement.resolve(_relative_to(directory, target))
    except AccessDeniedError:
        return "."

    # Canonical first: a symlinked directory's '..' is its real parent
    for path in (candidate.canonical, candidate.lexical):
        if is_within(confinement.jail_root, path):
            return os.path.relpath(path, confinement.jail_root)
    return "."


def track_working_directories(
    command: str,
    confinement: PathConfinement,
) -> List[Tuple[int, FrozenSet[str]]]:
    """
    Directories each simple command of a chain may start in.

    Directories are relative to the plan root ('.' is the root). A 'cd'
    carries over '&&', since the chain stops when it fails. After ';' or
    a newline any directory seen since the previous such separator is
    possible. Commands with pipes, subshells, substitution or background
    jobs are judged from the root only.

    Args:
        command: Shell command text
        confinement: Confinement of the plan root

    Returns:
        (start offset, possible directories) per simple command, in order
    """
    if UNTRACKED_RE.search(command):
        return [(0, ROOT_ONLY)]

    segments: List[Tuple[int, FrozenSet[str]]] = []
    current = ROOT_ONLY
    seen = set(ROOT_ONLY)
    position = 0
    separators: List[Optional[re.Match]] = list(COMMAND_SEPARATOR_RE.finditer(command))
    for separator in separators + [None]:
        end = separator.start() if separator else len(command)
        segments.append((position, current))

        step = LEADING_CD_RE.match(command, position, end)
        if step:
            target = _strip_quotes(step.group(1)) if step.group(1) else None
            current = frozenset(_change_directory(confinement, d, target) for d in current)
            seen.update(current)

        if separator is None or separator.group() != "&&":
            current = frozenset(seen)
        if separator is not None:
            position = separator.end()
    return segments


def _directories_at(segments: Sequence[Tuple[int, FrozenSet[str]]], offset: int) -> List[str]:
    directories = ROOT_ONLY
    for start, possible in segments:
        if start > offset:
            break
        directories = possible
    return sorted(directories)


def validate_command_paths(command: Optional[str], confinement: PathConfinement) -> None:
    """
    Confine every path token of a command.

    Absolute tokens must already point inside the plan root. cd targets
    and '..' fragments are resolved against every directory the command
    may be in at that point (see track_working_directories).

    Args:
        command: Shell command text
        confinement: Confinement of the plan root

    Raises:
        AccessDeniedError: On the first token that leaves the plan root
    """
    tokens = extract_command_paths(command)
    if not tokens:
        return
    segments = track_working_directories(command, confinement)

    for token in tokens:
        try:
            if token.kind is CommandPathKind.ABSOLUTE:
                confinement.confine_absolute(token.text)
            else:
                for directory in _directories_at(segments, token.offset):
                    confinement.resolve_and_confine(_relative_to(directory, token.text))
        except AccessDeniedError as e:
            if token.kind is CommandPathKind.ABSOLUTE:
                message = (
                    f"Absolute path '{token.text}' is outside root-plan-folder. "
                    "Use relative paths from root-plan-folder instead"
                )
            elif token.kind is CommandPathKind.CD_TARGET:
                message = f"cd command target '{token.text}' is outside root-plan-folder"
            else:
                message = f"Path with '..' '{token.text}' would escape root-plan-folder"
            logger.warning(f"Rejected command '{command}': {message}")
            raise AccessDeniedError(
                message,
                path=token.text,
                jail_root=str(confinement.jail_root),
                context={"command": command, "token_kind": token.kind.value},
            ) from e
        logger.debug(f"Command path validated: {token.kind.value} '{token.text}'")


def check_command_paths(
    command: Optional[str],
    confinement: PathConfinement,
) -> Tuple[bool, Optional[str]]:
    """
    Validate command paths without raising.

    Returns:
        Tuple of (is_valid, error_message)
    """
    try:
        validate_command_paths(command, confinement)
    except AccessDeniedError as e:
        return False, e.developer_message
    return True, None
