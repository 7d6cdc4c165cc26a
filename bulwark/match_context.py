"""Structural context captured around a match.

Everything here is a lexical heuristic over source text: enough for
calibration rules such as "inside a comment" or "under a test directory",
without parsing the language.
"""

import bisect
import re
from pathlib import PurePosixPath

from bulwark.utils.constants import (
    C_LIKE_EXTENSIONS,
    HASH_COMMENT_EXTENSIONS,
    LINE_COMMENT_MARKERS,
    PATH_HINT_SEGMENTS,
    SQL_EXTENSIONS,
)

_QUOTES = "\"'`"

_SECRET_ASSIGNMENT = re.compile(
    r"(?i)((?:password|passwd|pwd|secret|token|api[_-]?key|private[_-]?key|access[_-]?key)"
    r"[\"']?\s*[:=]\s*)([\"'])([^\"'\n]{4,})\2"
)
_LONG_TOKEN = re.compile(r"(?<![A-Za-z0-9_\-+/=])[A-Za-z0-9_\-+/=]{32,}")


def comment_family(type_key: str) -> str | None:
    if type_key in C_LIKE_EXTENSIONS:
        return "c_like"
    if type_key in HASH_COMMENT_EXTENSIONS:
        return "hash"
    if type_key in SQL_EXTENSIONS:
        return "sql"
    return None


def scan_line_prefix(prefix: str, markers: tuple[str, ...]) -> tuple[bool, bool]:
    """Walk a line prefix and report (inside line comment, inside string)."""
    quote = None
    i = 0
    while i < len(prefix):
        ch = prefix[i]
        if quote:
            if ch == "\\":
                i += 2
                continue
            if ch == quote:
                quote = None
        elif ch in _QUOTES:
            quote = ch
        elif any(prefix.startswith(marker, i) for marker in markers):
            return True, False
        i += 1
    return False, quote is not None


def block_comment_spans(content: str, markers: tuple[str, ...] = ()) -> list[tuple[int, int]]:
    """Half-open ``/* ... */`` spans, ignoring openers inside strings and line comments.

    Single and double quotes end at a newline; backticks may span lines. An
    unterminated comment runs to the end of the content.
    """
    spans = []
    quote = None
    i = 0
    n = len(content)
    while i < n:
        ch = content[i]
        if quote:
            if ch == "\\":
                i += 2
                continue
            if ch == quote or (ch == "\n" and quote != "`"):
                quote = None
            i += 1
        elif ch in _QUOTES:
            quote = ch
            i += 1
        elif content.startswith("/*", i):
            end = content.find("*/", i + 2)
            end = n if end == -1 else end + 2
            spans.append((i, end))
            i = end
        elif any(content.startswith(marker, i) for marker in markers):
            newline = content.find("\n", i)
            i = n if newline == -1 else newline
        else:
            i += 1
    return spans


def in_block_comment(spans: list[tuple[int, int]], pos: int) -> bool:
    index = bisect.bisect_right(spans, (pos, float("inf"))) - 1
    return index >= 0 and spans[index][0] <= pos < spans[index][1]


def classify_position(
    content: str,
    pos: int,
    line_start: int,
    type_key: str,
    spans: list[tuple[int, int]] | None = None,
) -> tuple[bool, bool]:
    """Return (in_comment, in_string) for the match starting at ``pos``.

    ``spans`` are the file's block comment spans; they are computed here when
    the caller has not cached them.
    """
    family = comment_family(type_key)
    markers = LINE_COMMENT_MARKERS.get(family, ())
    if family in ("c_like", "sql"):
        if spans is None:
            spans = block_comment_spans(content, markers)
        if in_block_comment(spans, pos):
            return True, False
    return scan_line_prefix(content[line_start:pos], markers)


def path_hints(rel_path: str) -> frozenset[str]:
    """Hints such as 'test' or 'vendor' derived from directory and file names."""
    parts = [p.lower() for p in PurePosixPath(rel_path).parts]
    if not parts:
        return frozenset()
    dirs = parts[:-1]
    name = parts[-1]
    hints = set()
    for hint, segments in PATH_HINT_SEGMENTS.items():
        if any(d in segments for d in dirs):
            hints.add(hint)
    stem_parts = set(name.split("."))
    if "test" in stem_parts or "spec" in stem_parts or name.startswith("test_") or name.endswith("_test.go"):
        hints.add("test")
    if "mock" in stem_parts:
        hints.add("mock")
    if name.endswith(".min.js") or "generated" in stem_parts:
        hints.add("generated")
    return frozenset(hints)


def redact(text: str, limit: int) -> str:
    """Mask secret-looking values and bound the length of matched text."""
    text = _SECRET_ASSIGNMENT.sub(lambda m: f"{m.group(1)}{m.group(2)}****{m.group(2)}", text)
    text = _LONG_TOKEN.sub(lambda m: m.group(0)[:4] + "****", text)
    if len(text) > limit:
        text = text[: max(limit - 3, 0)] + "..."
    return text


def build_snippet(lines: list[str], start: int, end: int, context_lines: int, max_chars: int) -> str:
    """Numbered snippet around a 1-based inclusive line range."""
    if not lines:
        return ""
    first = max(1, start - context_lines)
    last = min(len(lines), end + context_lines)
    out = []
    for i in range(first, last + 1):
        prefix = ">> " if start <= i <= end else "   "
        out.append(f"{i:4d}{prefix}{lines[i - 1]}")
    return redact("\n".join(out), max_chars)
