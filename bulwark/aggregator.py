"""Merge, cross-reference and order findings into the final report."""

from collections import defaultdict
from dataclasses import replace

from bulwark.findings import Diagnostic, Finding, Report, ScanStats
from bulwark.utils.finding_priority import PRIORITY_ORDER, Severity, priority


def report_sort_key(finding: Finding) -> tuple:
    """Severity desc, file, line, pattern id; remaining fields make it total."""
    return (
        priority(finding.severity),
        finding.file,
        finding.line_range.start,
        finding.pattern_id,
        finding.line_range.end,
        finding.column,
        finding.finding_id,
    )


def _preference(finding: Finding) -> tuple:
    # Lower sorts first: visible before suppressed, then most severe, then domain
    return (finding.suppressed, priority(finding.severity), finding.domains, finding.finding_id)


def merge_duplicates(findings) -> list[Finding]:
    """Collapse the same match reported by several domains into one finding."""
    groups: dict[tuple, list[Finding]] = defaultdict(list)
    for finding in findings:
        key = (finding.pattern_id, finding.file, finding.line_range, finding.column)
        groups[key].append(finding)

    merged = []
    for group in groups.values():
        best = min(group, key=_preference)
        domains = tuple(sorted({d for f in group for d in f.domains}))
        annotations = list(best.annotations)
        if not best.suppressed:
            # Keep the audit trail of domains whose calibration hid this match
            for other in sorted(group, key=lambda f: f.domains):
                if other.suppressed:
                    note = f"suppressed in {', '.join(other.domains)}: {other.suppression_reason}"
                    if note not in annotations:
                        annotations.append(note)
        merged.append(replace(best, domains=domains, annotations=tuple(annotations)))
    return merged


def link_cross_references(findings: list[Finding]) -> list[Finding]:
    """Link findings that flag the same (file, line range)."""
    by_location: dict[tuple, list[str]] = defaultdict(list)
    for finding in findings:
        by_location[finding.location].append(finding.finding_id)

    linked = []
    for finding in findings:
        others = tuple(sorted(i for i in by_location[finding.location] if i != finding.finding_id))
        linked.append(replace(finding, cross_referenced_with=others))
    return linked


def summarize(findings: list[Finding], domains) -> dict:
    severities = sorted(PRIORITY_ORDER, key=PRIORITY_ORDER.get)
    by_severity = {s: 0 for s in severities}
    by_domain = {d: {s: 0 for s in severities} for d in domains}
    suppressed = 0

    for finding in findings:
        if finding.suppressed:
            suppressed += 1
            continue
        by_severity[finding.severity.value] += 1
        for domain in finding.domains:
            by_domain.setdefault(domain, {s: 0 for s in severities})
            by_domain[domain][finding.severity.value] += 1

    return {
        "total": len(findings),
        "visible": len(findings) - suppressed,
        "suppressed": suppressed,
        "by_severity": by_severity,
        "by_domain": by_domain,
        "files_affected": len({f.file for f in findings if not f.suppressed}),
        "highest_severity": next(
            (s for s in severities if by_severity[s]), None
        ),
    }


def aggregate(
    findings,
    domains=(),
    diagnostics: "list[Diagnostic] | tuple[Diagnostic, ...]" = (),
    stats: ScanStats | None = None,
    incomplete: bool = False,
) -> Report:
    """Produce the deterministic, ordered report.

    The order does not depend on the order findings arrive in, so reports
    from parallel scans can be diffed run to run.
    """
    domains = tuple(sorted(set(domains) | {d for f in findings for d in f.domains}))
    merged = merge_duplicates(findings)
    ordered = sorted(link_cross_references(merged), key=report_sort_key)

    return Report(
        domains=domains,
        findings=tuple(ordered),
        summary=summarize(ordered, domains),
        diagnostics=tuple(sorted(diagnostics, key=Diagnostic.sort_key)),
        stats=stats or ScanStats(),
        incomplete=incomplete,
    )


def highest_severity(report: Report) -> Severity | None:
    value = report.summary.get("highest_severity")
    return Severity(value) if value else None
