"""Concurrent scan of a source tree against a resolved rule set."""

import bisect
import os
import threading
from collections.abc import Iterator
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from fnmatch import fnmatch
from functools import cached_property
from pathlib import Path
from typing import Any

from bulwark.errors import FileReadError, MatcherTimeoutError, ScanRootError, SkippedOversizeFile
from bulwark.findings import Finding, LineRange, MatchContext, ScanStats, make_finding_id
from bulwark.match_context import (
    block_comment_spans,
    build_snippet,
    classify_position,
    comment_family,
    path_hints,
    redact,
)
from bulwark.rule_compiler import CompiledMatcher, file_type_key
from bulwark.session import ScanSession
from bulwark.utils.constants import BINARY_SNIFF_BYTES, DEFAULT_MAX_FILE_SIZE, LINE_COMMENT_MARKERS
from bulwark.utils.logging import logger


class FileWalker:
    """Walks a root directory, pruning ignored directories and files.

    Ignore globs are matched against the posix path relative to the root and,
    for globs without a slash, against the bare name. ``dir/**`` prunes the
    directory itself. Symlinked directories are never followed.
    """

    def __init__(self, root_path: Path, ignore: list[str] | None = None):
        self.root_path = root_path
        self.ignore = [p.strip() for p in (ignore or []) if p and p.strip()]
        self.skipped_dirs = 0

    def _ignored(self, rel_path: str, name: str, is_dir: bool) -> bool:
        for pattern in self.ignore:
            if fnmatch(rel_path, pattern):
                return True
            if "/" not in pattern and fnmatch(name, pattern):
                return True
            if is_dir and pattern.endswith("/**"):
                base = pattern[:-3]
                if fnmatch(rel_path, base) or ("/" not in base and fnmatch(name, base)):
                    return True
        return False

    def walk(self) -> Iterator[tuple[Path, str]]:
        """Yield (absolute path, relative posix path) in sorted order."""
        for dirpath, dirnames, filenames in os.walk(self.root_path, followlinks=False):
            current = Path(dirpath)
            rel_dir = current.relative_to(self.root_path).as_posix()
            rel_dir = "" if rel_dir == "." else rel_dir

            kept = []
            for d in sorted(dirnames):
                rel = f"{rel_dir}/{d}" if rel_dir else d
                if self._ignored(rel, d, is_dir=True):
                    self.skipped_dirs += 1
                else:
                    kept.append(d)
            dirnames[:] = kept

            for filename in sorted(filenames):
                rel = f"{rel_dir}/{filename}" if rel_dir else filename
                if not self._ignored(rel, filename, is_dir=False):
                    yield current / filename, rel


@dataclass
class ScanResult:
    """Raw, unordered scan output for one session."""

    findings: list[Finding] = field(default_factory=list)
    stats: ScanStats = field(default_factory=ScanStats)

    @property
    def incomplete(self) -> bool:
        return self.stats.files_not_dispatched > 0


class ScanExecutor:
    """Applies compiled matchers to every in-scope file with a bounded worker pool."""

    def __init__(
        self,
        ignore: list[str] | None = None,
        max_file_size: int = DEFAULT_MAX_FILE_SIZE,
        concurrency: int | None = None,
        max_match_chars: int = 160,
        max_matches_per_file: int = 50,
        snippet_context_lines: int = 2,
        max_snippet_chars: int = 800,
    ):
        self.ignore = list(ignore or [])
        self.max_file_size = max_file_size
        self.concurrency = concurrency
        self.max_match_chars = max_match_chars
        self.max_matches_per_file = max_matches_per_file
        self.snippet_context_lines = snippet_context_lines
        self.max_snippet_chars = max_snippet_chars

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "ScanExecutor":
        limits = config["limits"]
        return cls(
            ignore=config["scan"]["ignore"],
            max_file_size=limits["max_file_size"],
            concurrency=limits["concurrency"] or None,
            max_match_chars=limits["max_match_chars"],
            max_matches_per_file=limits["max_matches_per_file"],
            snippet_context_lines=config["report"]["snippet_context_lines"],
            max_snippet_chars=config["report"]["max_snippet_chars"],
        )

    def worker_count(self, session: ScanSession) -> int:
        return max(1, session.concurrency or self.concurrency or os.cpu_count() or 4)

    def scan(self, session: ScanSession, root: Path | str) -> ScanResult:
        """Scan ``root`` and return raw findings (unordered)."""
        root_path = Path(root).resolve()
        if not root_path.is_dir():
            raise ScanRootError(str(root))

        walker = FileWalker(root_path, self.ignore)
        files = list(walker.walk())
        max_workers = self.worker_count(session)
        logger.info(
            f"[SCAN] {session.domain}: {len(files)} files, "
            f"{session.rule_set.matcher_count} matchers, {max_workers} workers"
        )

        result = ScanResult()
        progress = _Progress(session)

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = [
                executor.submit(self._scan_file, session, path, rel, progress)
                for path, rel in files
            ]
            for future in as_completed(futures):
                file_findings, file_stats = future.result()
                result.findings.extend(file_findings)
                result.stats = result.stats.merge(file_stats)

        if result.incomplete:
            logger.warning(
                f"[SCAN] {session.domain}: cancelled, "
                f"{result.stats.files_not_dispatched} files not scanned"
            )
        logger.info(f"[SCAN] {session.domain}: {len(result.findings)} raw findings")
        return result

    def _scan_file(
        self, session: ScanSession, path: Path, rel: str, progress: "_Progress"
    ) -> tuple[list[Finding], ScanStats]:
        stats = ScanStats()
        if session.token.cancelled:
            stats.files_not_dispatched = 1
            return [], stats

        try:
            findings = self._evaluate_file(session, path, rel, stats)
        finally:
            progress.advance(rel)
        return findings, stats

    def _evaluate_file(
        self, session: ScanSession, path: Path, rel: str, stats: ScanStats
    ) -> list[Finding]:
        matchers = session.rule_set.matchers_for(rel)
        if not matchers:
            stats.files_out_of_scope = 1
            return []

        try:
            size = path.stat().st_size
        except OSError as e:
            session.record(FileReadError(rel, e.strerror or str(e)))
            stats.files_unreadable = 1
            return []

        if size > self.max_file_size:
            session.record(SkippedOversizeFile(rel, size, self.max_file_size))
            stats.files_skipped_oversize = 1
            return []

        try:
            data = path.read_bytes()
        except OSError as e:
            session.record(FileReadError(rel, e.strerror or str(e)))
            stats.files_unreadable = 1
            return []

        if b"\x00" in data[:BINARY_SNIFF_BYTES]:
            stats.files_binary = 1
            return []

        content = data.decode("utf-8", errors="replace")
        stats.files_scanned = 1
        source = _SourceText(content, rel)

        findings: list[Finding] = []
        seen: set[str] = set()
        for matcher in matchers:
            try:
                matched = self._run_matcher(session, matcher, source)
            except TimeoutError:
                session.record(MatcherTimeoutError(rel, matcher.pattern_id, matcher.timeout))
                stats.matcher_timeouts += 1
                continue
            for finding in matched:
                if finding.finding_id not in seen:
                    seen.add(finding.finding_id)
                    findings.append(finding)
        return findings

    def _run_matcher(
        self, session: ScanSession, matcher: CompiledMatcher, source: "_SourceText"
    ) -> list[Finding]:
        pattern = session.rule_set.pattern_index[matcher.pattern_id]
        found = []
        for match in matcher.finditer(source.content):
            if match.end() == match.start():
                continue
            found.append(self._build_finding(session.domain, pattern, match, source))
            if len(found) >= self.max_matches_per_file:
                logger.debug(f"[SCAN] {pattern.id}: match cap reached in {source.rel}")
                break
        return found

    def _build_finding(self, domain: str, pattern, match, source: "_SourceText") -> Finding:
        start_line, line_start = source.line_of(match.start())
        end_line, _ = source.line_of(max(match.end() - 1, match.start()))
        line_range = LineRange(start_line, end_line)
        column = match.start() - line_start + 1

        in_comment, in_string = classify_position(
            source.content, match.start(), line_start, source.type_key, source.comment_spans
        )
        context = MatchContext(
            snippet=build_snippet(
                source.lines, start_line, end_line, self.snippet_context_lines, self.max_snippet_chars
            ),
            in_comment=in_comment,
            in_string=in_string,
            path_hints=source.hints,
            extension=source.type_key,
        )
        return Finding(
            finding_id=make_finding_id(domain, pattern.id, source.rel, line_range, column),
            pattern_id=pattern.id,
            domains=(domain,),
            file=source.rel,
            line_range=line_range,
            column=column,
            matched_text=redact(match.group(0), self.max_match_chars),
            severity=pattern.severity,
            original_severity=pattern.severity,
            category=pattern.category.value,
            title=pattern.title,
            cwe_ids=tuple(sorted(pattern.cwe_ids)),
            context=context,
        )


class _SourceText:
    """File content plus line index, shared by all matchers for one file."""

    def __init__(self, content: str, rel: str):
        self.content = content
        self.rel = rel
        self.type_key = file_type_key(rel)
        self.hints = path_hints(rel)
        self.lines = [line.rstrip("\r") for line in content.split("\n")]
        self._starts = [0]
        pos = content.find("\n")
        while pos != -1:
            self._starts.append(pos + 1)
            pos = content.find("\n", pos + 1)

    @cached_property
    def comment_spans(self) -> list[tuple[int, int]]:
        markers = LINE_COMMENT_MARKERS.get(comment_family(self.type_key), ())
        return block_comment_spans(self.content, markers)

    def line_of(self, offset: int) -> tuple[int, int]:
        """1-based line number and line start offset for a character offset."""
        index = bisect.bisect_right(self._starts, offset) - 1
        return index + 1, self._starts[index]


class _Progress:
    """Thread-safe completed-file counter feeding the session callback."""

    def __init__(self, session: ScanSession):
        self._session = session
        self._lock = threading.Lock()
        self._done = 0

    def advance(self, rel: str) -> None:
        with self._lock:
            self._done += 1
            done = self._done
        if self._session.on_file_done is not None:
            self._session.on_file_done(done, rel)
