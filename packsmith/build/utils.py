"""Utility functions for the Packsmith build system.

This module contains glob handling shared by the watch controller and the
lint step, plus small path helpers used while staging packages.
"""

from __future__ import annotations

import os
import pathlib
import re
import shutil
from typing import Iterable, List, Optional, Pattern, Sequence, Union


def expand_braces(pattern: str) -> List[str]:
    """Expand ``{a,b}`` alternatives in a glob pattern.

    Args:
        pattern: Glob pattern, possibly with nested brace groups

    Returns:
        The list of patterns without braces, in order of appearance
    """
    start = pattern.find("{")
    if start == -1:
        return [pattern]

    depth = 0
    for index in range(start, len(pattern)):
        char = pattern[index]
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                end = index
                break
    else:
        # Unbalanced brace, treat it literally
        return [pattern]

    options: List[str] = []
    depth = 0
    current = ""
    for char in pattern[start + 1:end]:
        if char == "," and depth == 0:
            options.append(current)
            current = ""
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
        current += char
    options.append(current)

    prefix, suffix = pattern[:start], pattern[end + 1:]
    expanded: List[str] = []
    for option in options:
        expanded.extend(expand_braces(prefix + option + suffix))
    return expanded


def fnmatch_to_regex(pattern: str) -> str:
    """Convert a brace-free glob pattern to a regex pattern.

    ``**/`` matches zero or more directories, ``*`` and ``?`` never cross a
    ``/``.

    Args:
        pattern: Glob pattern

    Returns:
        Regex pattern string
    """
    parts: List[str] = []
    index = 0
    while index < len(pattern):
        if pattern.startswith("**/", index):
            parts.append("(?:.*/)?")
            index += 3
        elif pattern.startswith("**", index):
            parts.append(".*")
            index += 2
        elif pattern[index] == "*":
            parts.append("[^/]*")
            index += 1
        elif pattern[index] == "?":
            parts.append("[^/]")
            index += 1
        else:
            parts.append(re.escape(pattern[index]))
            index += 1
    return "^" + "".join(parts) + "$"


class GlobMatcher:
    """Matches relative POSIX paths against a set of glob patterns."""

    def __init__(self, patterns: Iterable[str]) -> None:
        self.patterns = list(patterns)
        self._regexes: List[Pattern[str]] = [
            re.compile(fnmatch_to_regex(expanded))
            for pattern in self.patterns
            for expanded in expand_braces(normalize_pattern(pattern))
        ]

    def matches(self, relative_path: Union[str, pathlib.PurePath]) -> bool:
        path = pathlib.PurePath(relative_path).as_posix()
        return any(regex.match(path) for regex in self._regexes)


def normalize_pattern(pattern: str) -> str:
    pattern = pattern.replace("\\", "/")
    while pattern.startswith("./"):
        pattern = pattern[2:]
    return pattern


def relative_posix(path: Union[str, pathlib.Path], root: Union[str, pathlib.Path]) -> Optional[str]:
    """Get ``path`` relative to ``root`` as a POSIX string.

    Returns:
        The relative path, or None when ``path`` is outside ``root``
    """
    try:
        return pathlib.Path(os.path.abspath(path)).relative_to(os.path.abspath(root)).as_posix()
    except ValueError:
        return None


def collect_matching_files(
        base_dir: Union[str, pathlib.Path],
        include_patterns: Sequence[str],
        exclude_patterns: Optional[Sequence[str]] = None
) -> List[pathlib.Path]:
    """Collect the files under ``base_dir`` matching the glob patterns.

    Args:
        base_dir: Base directory to search
        include_patterns: Glob patterns for files to include
        exclude_patterns: Glob patterns for files to exclude

    Returns:
        Sorted list of matching file paths
    """
    base_dir = pathlib.Path(base_dir)
    include = GlobMatcher(include_patterns)
    exclude = GlobMatcher(exclude_patterns or [])

    matches: List[pathlib.Path] = []
    for root, dirs, files in os.walk(base_dir):
        dirs.sort()
        root_path = pathlib.Path(root)
        for file in files:
            rel_path = (root_path / file).relative_to(base_dir).as_posix()
            if include.matches(rel_path) and not exclude.matches(rel_path):
                matches.append(root_path / file)
    return sorted(matches)


def remove_path(path: Union[str, pathlib.Path]) -> bool:
    """Delete a file or directory tree.

    Returns:
        True if something was removed
    """
    path = pathlib.Path(path)
    if path.is_symlink() or path.is_file():
        path.unlink()
        return True
    if path.is_dir():
        shutil.rmtree(path)
        return True
    return False
