"""Finding, diagnostic and report records shared by every scan stage."""

import hashlib
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

from bulwark.utils.finding_priority import Severity


@dataclass(frozen=True, order=True)
class LineRange:
    """Inclusive 1-based line span of a match."""

    start: int
    end: int

    def to_dict(self) -> dict[str, int]:
        return {"start": self.start, "end": self.end}


@dataclass(frozen=True)
class MatchContext:
    """Structural context captured at match time.

    Calibration predicates are evaluated against this alone, so a finding
    never has to be re-read from disk.
    """

    snippet: str = ""
    in_comment: bool = False
    in_string: bool = False
    path_hints: frozenset[str] = frozenset()
    extension: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "snippet": self.snippet,
            "in_comment": self.in_comment,
            "in_string": self.in_string,
            "path_hints": sorted(self.path_hints),
            "extension": self.extension,
        }


def make_finding_id(domain: str, pattern_id: str, file: str, line_range: LineRange, column: int) -> str:
    """Deterministic id for a finding location."""
    key = f"{domain}\x00{pattern_id}\x00{file}\x00{line_range.start}:{line_range.end}\x00{column}"
    return "F-" + hashlib.sha1(key.encode("utf-8")).hexdigest()[:12]


@dataclass(frozen=True)
class Finding:
    """One reported (or suppressed-but-retained) violation."""

    finding_id: str
    pattern_id: str
    domains: tuple[str, ...]
    file: str
    line_range: LineRange
    column: int
    matched_text: str
    severity: Severity
    original_severity: Severity
    category: str = ""
    title: str = ""
    cwe_ids: tuple[int, ...] = ()
    suppressed: bool = False
    suppression_reason: str = ""
    annotations: tuple[str, ...] = ()
    context: MatchContext = field(default_factory=MatchContext)
    cross_referenced_with: tuple[str, ...] = ()

    @property
    def location(self) -> tuple[str, LineRange]:
        return (self.file, self.line_range)

    def to_dict(self) -> dict[str, Any]:
        """Convert finding to a JSON-ready dictionary."""
        return {
            "finding_id": self.finding_id,
            "pattern_id": self.pattern_id,
            "domains": list(self.domains),
            "file": self.file,
            "line_range": self.line_range.to_dict(),
            "column": self.column,
            "matched_text": self.matched_text,
            "severity": self.severity.value,
            "original_severity": self.original_severity.value,
            "category": self.category,
            "title": self.title,
            "cwe_ids": list(self.cwe_ids),
            "suppressed": self.suppressed,
            "suppression_reason": self.suppression_reason,
            "annotations": list(self.annotations),
            "context": self.context.to_dict(),
            "cross_referenced_with": list(self.cross_referenced_with),
        }


class DiagnosticKind(Enum):
    """Recoverable problems surfaced next to findings."""

    INVALID_SIGNATURE = "invalid-signature"
    OVERSIZE_FILE = "oversize-file"
    MATCHER_TIMEOUT = "matcher-timeout"
    READ_ERROR = "read-error"


@dataclass(frozen=True)
class Diagnostic:
    """Structured record of something that could not be fully evaluated."""

    kind: DiagnosticKind
    message: str
    file: str | None = None
    pattern_id: str | None = None
    domain: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "file": self.file,
            "pattern_id": self.pattern_id,
            "domain": self.domain,
        }

    def sort_key(self) -> tuple:
        return (
            self.kind.value,
            self.domain or "",
            self.file or "",
            self.pattern_id or "",
            self.message,
        )


@dataclass
class ScanStats:
    """Per-scan counters."""

    files_scanned: int = 0
    files_out_of_scope: int = 0
    files_skipped_oversize: int = 0
    files_unreadable: int = 0
    files_binary: int = 0
    files_not_dispatched: int = 0
    matcher_timeouts: int = 0

    def merge(self, other: "ScanStats") -> "ScanStats":
        return ScanStats(**{k: v + getattr(other, k) for k, v in asdict(self).items()})

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(frozen=True)
class Report:
    """Final, ordered output of an audit."""

    domains: tuple[str, ...]
    findings: tuple[Finding, ...]
    summary: dict[str, Any]
    diagnostics: tuple[Diagnostic, ...] = ()
    stats: ScanStats = field(default_factory=ScanStats)
    incomplete: bool = False

    @property
    def visible_findings(self) -> list[Finding]:
        return [f for f in self.findings if not f.suppressed]

    @property
    def suppressed_findings(self) -> list[Finding]:
        return [f for f in self.findings if f.suppressed]

    def to_dict(self) -> dict[str, Any]:
        return {
            "domains": list(self.domains),
            "incomplete": self.incomplete,
            "summary": self.summary,
            "stats": self.stats.to_dict(),
            "findings": [f.to_dict() for f in self.findings],
            "diagnostics": [d.to_dict() for d in self.diagnostics],
        }
