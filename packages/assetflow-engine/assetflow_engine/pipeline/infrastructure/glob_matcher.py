"""
Glob matching for pipeline source patterns.

Dialect:
- ``**`` spans directory separators; ``**/`` at a segment start also matches
  zero directories
- ``*`` and ``?`` never match ``/``
- ``{a,b}`` alternation (nestable)
- ``[abc]`` / ``[!abc]`` character classes, never matching ``/``
- case-sensitive, whole-path match on POSIX paths
"""

import re
from functools import lru_cache
from pathlib import Path, PurePosixPath

GLOB_CHARS = frozenset("*?[{")


def normalize_path(path: str) -> str:
    """POSIX separators, no leading ``./``."""
    path = path.replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    return path


def normalize_pattern(pattern: str) -> str:
    """No leading ``./``; backslashes stay escapes."""
    while pattern.startswith("./"):
        pattern = pattern[2:]
    return pattern


def _find_closing(pattern: str, start: int, open_char: str, close_char: str) -> int:
    """Index of the matching close char, or -1."""
    depth = 0
    i = start
    while i < len(pattern):
        char = pattern[i]
        if char == "\\":
            i += 2
            continue
        if char == open_char:
            depth += 1
        elif char == close_char:
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return -1


def _split_alternatives(body: str) -> list[str]:
    """Split brace contents on top-level commas."""
    parts: list[str] = []
    depth = 0
    current: list[str] = []
    for char in body:
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
        if char == "," and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(char)
    parts.append("".join(current))
    return parts


def _translate(pattern: str, segment_start: bool = True) -> str:
    """
    Regex source for ``pattern``.

    ``segment_start``: whether position 0 follows a ``/`` (or starts the path);
    brace alternatives inherit it from the brace position.
    """
    out: list[str] = []
    i = 0
    n = len(pattern)
    while i < n:
        char = pattern[i]

        if char == "*":
            j = i
            while j < n and pattern[j] == "*":
                j += 1
            if j - i >= 2:
                at_segment_start = pattern[i - 1] == "/" if i else segment_start
                if at_segment_start and j < n and pattern[j] == "/":
                    out.append("(?:.*/)?")
                    i = j + 1
                else:
                    out.append(".*")
                    i = j
            else:
                out.append("[^/]*")
                i = j
            continue

        if char == "?":
            out.append("[^/]")
        elif char == "[":
            end = _find_closing(pattern, i, "[", "]")
            if end == -1:
                out.append(re.escape(char))
            else:
                body = pattern[i + 1 : end]
                if body.startswith("!"):
                    body = "^" + body[1:]
                out.append(f"(?!/)[{body}]")
                i = end
        elif char == "{":
            end = _find_closing(pattern, i, "{", "}")
            if end == -1:
                out.append(re.escape(char))
            else:
                alternatives = _split_alternatives(pattern[i + 1 : end])
                inner_start = pattern[i - 1] == "/" if i else segment_start
                out.append("(?:" + "|".join(_translate(alt, inner_start) for alt in alternatives) + ")")
                i = end
        elif char == "\\" and i + 1 < n:
            i += 1
            out.append(re.escape(pattern[i]))
        else:
            out.append(re.escape(char))
        i += 1

    return "".join(out)


@lru_cache(maxsize=1024)
def compile_glob(pattern: str) -> re.Pattern[str]:
    """Compile a glob to a regex matched against the whole path."""
    return re.compile(rf"(?s:{_translate(normalize_pattern(pattern))})\Z")


def glob_match(pattern: str, path: str) -> bool:
    return compile_glob(pattern).match(normalize_path(path)) is not None


def is_glob(pattern: str) -> bool:
    return any(char in GLOB_CHARS for char in pattern)


def glob_parent(pattern: str) -> str:
    """
    Static directory prefix of a glob.

    >>> glob_parent("app/scss/**/*.scss")
    'app/scss'
    >>> glob_parent("app/js/main.js")
    'app/js'
    """
    parts = PurePosixPath(normalize_pattern(pattern)).parts
    static: list[str] = []
    for part in parts[:-1]:
        if is_glob(part):
            break
        static.append(part)
    return "/".join(static) if static else "."


def expand(root: Path, patterns: tuple[str, ...] | list[str]) -> list[tuple[str, Path]]:
    """
    Find files under ``root`` matching ``patterns``.

    Returns ``(pattern, path)`` pairs in pattern order, sorted within a
    pattern, each file at most once (first matching pattern wins).
    """
    seen: set[Path] = set()
    found: list[tuple[str, Path]] = []

    for pattern in patterns:
        normalized = normalize_pattern(pattern)
        if not is_glob(normalized):
            candidate = root / normalized
            if candidate.is_file() and candidate not in seen:
                seen.add(candidate)
                found.append((pattern, candidate))
            continue

        base = root / glob_parent(normalized)
        if not base.is_dir():
            continue
        regex = compile_glob(normalized)
        matches = sorted(
            path
            for path in base.rglob("*")
            if path.is_file() and regex.match(path.relative_to(root).as_posix())
        )
        for path in matches:
            if path not in seen:
                seen.add(path)
                found.append((pattern, path))

    return found
