"""
Glob pattern compilation for recursive file search.

Patterns are matched against paths relative to the walk root, always with
'/' separators, so behavior is the same on every host platform.

Supported syntax:
- '**/' matches zero or more directories, '/**' everything beneath
- '*' matches within one path segment, '?' one non-separator character
- '[abc]', '[a-z]', '[!abc]' character classes
- '{a,b}' alternation (may nest)
- '\\x' escapes x
"""

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional

logger = logging.getLogger(__name__)

# A normalized pattern made of one '*word*' token, e.g. '**/*tools*'
_SINGLE_TOKEN_RE = re.compile(r"\*\*/\*([^/*{}\[\]?\\]+)\*")

# Innermost unescaped '{...}' group
_BRACE_GROUP_RE = re.compile(r"(?<!\\)\{([^{}]*)\}")


def normalize_glob(pattern: str) -> str:
    """
    Make a pattern recursive.

    Strips surrounding whitespace and leading '/', then prefixes '**/'
    unless the pattern already starts with it.

    Example:
        >>> normalize_glob("*.md")
        '**/*.md'
        >>> normalize_glob("/src/**/*.py")
        '**/src/**/*.py'
    """
    trimmed = pattern.strip()
    if trimmed.startswith("**/"):
        return trimmed
    return "**/" + trimmed.lstrip("/")


def expand_braces(pattern: str) -> List[str]:
    """
    Expand '{a,b}' alternations, innermost group first.

    Example:
        >>> expand_braces("*.{md,{yml,yaml}}")
        ['*.md', '*.yml', '*.yaml']
    """
    group = _BRACE_GROUP_RE.search(pattern)
    if group is None:
        return [pattern]
    head, tail = pattern[:group.start()], pattern[group.end():]
    expanded: List[str] = []
    for alternative in group.group(1).split(","):
        expanded.extend(expand_braces(head + alternative + tail))
    return list(dict.fromkeys(expanded))


def _translate_class(body: str) -> str:
    """Translate the inside of a '[...]' class."""
    negate = body[:1] in ("!", "^")
    if negate:
        body = body[1:]
    # Escape regex-special characters but keep ranges
    escaped = body.replace("\\", "\\\\").replace("[", "\\[").replace("]", "\\]")
    if negate:
        return f"[^/{escaped}]"
    return f"[{escaped}]"


def _translate(pattern: str) -> str:
    """Translate a brace-free glob."""
    parts = []
    i, n = 0, len(pattern)
    while i < n:
        c = pattern[i]
        i += 1
        if c == "*":
            whole_segment = pattern.startswith("*", i) and (i == 1 or pattern[i - 2] == "/")
            if whole_segment and pattern.startswith("*/", i):
                parts.append("(?:.*/)?")
                i += 2
                continue
            if whole_segment and i + 1 == n:
                parts.append(".*")
                i += 1
                continue
            # Any other run of stars stays within the segment
            while pattern.startswith("*", i):
                i += 1
            parts.append("[^/]*")
        elif c == "?":
            parts.append("[^/]")
        elif c == "[":
            end = pattern.find("]", i + 1 if pattern[i:i + 1] in ("!", "^", "]") else i)
            if end == -1:
                parts.append(re.escape(c))
            else:
                parts.append(_translate_class(pattern[i:end]))
                i = end + 1
        elif c == "\\" and i < n:
            parts.append(re.escape(pattern[i]))
            i += 1
        else:
            parts.append(re.escape(c))
    return "".join(parts)


def translate_glob(pattern: str) -> str:
    """
    Translate a glob pattern into an anchored regular expression.

    Args:
        pattern: Glob pattern (not auto-prefixed)

    Returns:
        Regular expression source matching whole relative paths
    """
    alternatives = "|".join(_translate(alt) for alt in expand_braces(pattern))
    return rf"(?s:{alternatives})\Z"


@dataclass(frozen=True)
class GlobMatcher:
    """
    Compiled recursive glob.

    Besides the strict glob, a pattern that is a single '*word*' token
    also accepts files whose relative path has any segment containing
    'word', so '*tools*' finds files inside a 'my_tools/' directory. This
    is looser than strict glob semantics.
    """

    pattern: str
    normalized: str
    regex: "re.Pattern[str]"
    directory_regex: Optional["re.Pattern[str]"] = None
    segment_literal: Optional[str] = None

    def matches(self, relative_path: str) -> bool:
        """
        Test a path relative to the walk root.

        Args:
            relative_path: Relative path; '\\' separators are normalized to '/'

        Returns:
            True if the path matches the glob or the directory relaxation
        """
        path = relative_path.replace("\\", "/")
        if self.regex.match(path):
            return True
        if self.directory_regex is not None and self.directory_regex.match(path):
            return True
        if self.segment_literal is not None:
            return any(self.segment_literal in segment for segment in path.split("/"))
        return False


@lru_cache(maxsize=256)
def compile_glob(pattern: str) -> GlobMatcher:
    """
    Compile a user glob pattern, auto-prefixing it with '**/'.

    Results are cached by the exact pattern string.

    Args:
        pattern: Glob pattern as supplied by the caller

    Returns:
        GlobMatcher for the pattern

    Raises:
        ValueError: If the pattern is empty or does not compile
    """
    if not pattern or not pattern.strip():
        raise ValueError("Glob pattern must not be empty")

    normalized = normalize_glob(pattern)
    try:
        regex = re.compile(translate_glob(normalized))
    except re.error as e:
        raise ValueError(f"Invalid glob pattern '{pattern}': {e}") from e

    directory_regex = None
    segment_literal = None
    token = _SINGLE_TOKEN_RE.fullmatch(normalized)
    if token:
        segment_literal = token.group(1)
        logger.debug(f"Pattern '{pattern}' also matches directories containing '{segment_literal}'")
        # '**/*tools*' -> '**/*tools*/**/*'
        directory_regex = re.compile(translate_glob(normalized + "/**/*"))

    return GlobMatcher(
        pattern=pattern,
        normalized=normalized,
        regex=regex,
        directory_regex=directory_regex,
        segment_literal=segment_literal,
    )
