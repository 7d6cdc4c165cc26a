"""Calibration and suppression of raw findings.

Rules come from the "common false positives" and "severity calibration"
reference documents a manifest loads. Each rule pairs a context predicate
with one action; rules for a pattern run in declaration order.

Suppression is terminal and never deletes a finding: it is kept with
``suppressed=True`` and a reason so the report stays auditable.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from fnmatch import fnmatch
from typing import Any

import regex

from bulwark.findings import Finding
from bulwark.rule_compiler import SignatureRejected, check_signature_safety
from bulwark.utils.constants import PATH_HINT_SEGMENTS
from bulwark.utils.finding_priority import Severity, normalize_severity
from bulwark.utils.logging import logger

PREDICATE_TIMEOUT = 0.5

_PREDICATE_KEYS = {
    "always",
    "path_contains",
    "path_glob",
    "path_hint",
    "in_comment",
    "in_string",
    "matched_text_matches",
    "snippet_matches",
    "extension",
}


class ActionKind(Enum):
    SUPPRESS = "suppress"
    DOWNGRADE = "downgrade"
    UPGRADE = "upgrade"
    ANNOTATE = "annotate"


def _compile_predicate_regex(source: str) -> Any:
    try:
        check_signature_safety(source)
        return regex.compile(source, regex.IGNORECASE)
    except (SignatureRejected, regex.error) as e:
        raise ValueError(f"invalid predicate regex {source!r}: {e}") from e


@dataclass(frozen=True)
class ContextPredicate:
    """Conjunction of simple checks over a finding's captured context.

    An empty predicate always holds.
    """

    path_contains: str | None = None
    path_glob: str | None = None
    path_hint: str | None = None
    in_comment: bool | None = None
    in_string: bool | None = None
    matched_text_matches: Any = None
    snippet_matches: Any = None
    extensions: frozenset[str] | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ContextPredicate":
        if not data:
            return cls()
        if not isinstance(data, dict):
            raise ValueError("predicate must be a mapping")
        unknown = set(data) - _PREDICATE_KEYS
        if unknown:
            raise ValueError(f"unknown predicate keys: {', '.join(sorted(unknown))}")

        hint = data.get("path_hint")
        if hint is not None and hint not in PATH_HINT_SEGMENTS:
            raise ValueError(f"unknown path hint '{hint}'")

        extension = data.get("extension")
        extensions = None
        if extension is not None:
            values = extension if isinstance(extension, list) else [extension]
            extensions = frozenset(str(v).lower() for v in values)

        text_re = data.get("matched_text_matches")
        snippet_re = data.get("snippet_matches")
        return cls(
            path_contains=data.get("path_contains"),
            path_glob=data.get("path_glob"),
            path_hint=hint,
            in_comment=data.get("in_comment"),
            in_string=data.get("in_string"),
            matched_text_matches=_compile_predicate_regex(text_re) if text_re else None,
            snippet_matches=_compile_predicate_regex(snippet_re) if snippet_re else None,
            extensions=extensions,
        )

    def holds(self, finding: Finding) -> bool:
        path = "/" + finding.file.lstrip("/")
        ctx = finding.context

        if self.path_contains is not None and self.path_contains not in path:
            return False
        if self.path_glob is not None and not (
            fnmatch(finding.file, self.path_glob) or fnmatch(path, self.path_glob)
        ):
            return False
        if self.path_hint is not None and self.path_hint not in ctx.path_hints:
            return False
        if self.in_comment is not None and ctx.in_comment != self.in_comment:
            return False
        if self.in_string is not None and ctx.in_string != self.in_string:
            return False
        if self.extensions is not None and ctx.extension not in self.extensions:
            return False
        if self.matched_text_matches is not None and not _search(
            self.matched_text_matches, finding.matched_text
        ):
            return False
        if self.snippet_matches is not None and not _search(self.snippet_matches, ctx.snippet):
            return False
        return True


def _search(compiled, text: str) -> bool:
    try:
        return compiled.search(text, timeout=PREDICATE_TIMEOUT) is not None
    except TimeoutError:
        logger.warning(f"Calibration predicate {compiled.pattern!r} timed out; treated as no match")
        return False


@dataclass(frozen=True)
class CalibrationAction:
    kind: ActionKind
    severity: Severity | None = None
    text: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CalibrationAction":
        raw = data.get("action")
        try:
            kind = ActionKind(str(raw).strip().lower())
        except ValueError:
            raise ValueError(f"unknown calibration action '{raw}'") from None

        if kind in (ActionKind.DOWNGRADE, ActionKind.UPGRADE):
            if "to" not in data:
                raise ValueError(f"'{kind.value}' requires a 'to' severity")
            return cls(kind=kind, severity=normalize_severity(data["to"]), text=data.get("note", ""))
        if kind is ActionKind.ANNOTATE:
            note = data.get("note") or data.get("reason")
            if not note:
                raise ValueError("'annotate' requires a note")
            return cls(kind=kind, text=note)
        return cls(kind=kind, text=data.get("reason", ""))


@dataclass(frozen=True)
class CalibrationRule:
    """One {contextPredicate, action} pair from a reference document."""

    predicate: ContextPredicate
    action: CalibrationAction
    source_doc: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any], source_doc: str = "") -> "CalibrationRule":
        if not isinstance(data, dict):
            raise ValueError("calibration rule must be a mapping")
        return cls(
            predicate=ContextPredicate.from_dict(data.get("when")),
            action=CalibrationAction.from_dict(data),
            source_doc=source_doc,
        )


@dataclass
class _Working:
    severity: Severity
    suppressed: bool = False
    reason: str = ""
    annotations: list[str] = field(default_factory=list)


def apply_rules(finding: Finding, rules, false_positive_notes: str = "") -> Finding:
    """Run one finding through its pattern's rules."""
    if finding.suppressed:
        return finding

    state = _Working(severity=finding.severity, annotations=list(finding.annotations))

    for rule in rules:
        if not rule.predicate.holds(finding):
            continue
        action = rule.action

        if action.kind is ActionKind.SUPPRESS:
            state.suppressed = True
            state.reason = action.text or false_positive_notes or f"suppressed by {rule.source_doc or 'calibration'}"
            break
        if action.kind is ActionKind.DOWNGRADE and action.severity < state.severity:
            state.annotations.append(
                f"severity {state.severity.value} -> {action.severity.value} ({rule.source_doc})"
                + (f": {action.text}" if action.text else "")
            )
            state.severity = action.severity
        elif action.kind is ActionKind.UPGRADE and action.severity > state.severity:
            state.annotations.append(
                f"severity {state.severity.value} -> {action.severity.value} ({rule.source_doc})"
                + (f": {action.text}" if action.text else "")
            )
            state.severity = action.severity
        elif action.kind is ActionKind.ANNOTATE:
            state.annotations.append(action.text)

    return replace(
        finding,
        severity=state.severity,
        suppressed=state.suppressed,
        suppression_reason=state.reason,
        annotations=tuple(state.annotations),
    )


def calibrate(findings, calibration_table, patterns=None) -> list[Finding]:
    """Apply calibration rules to raw findings.

    Args:
        findings: Raw findings from the scan executor.
        calibration_table: pattern id -> sequence of CalibrationRule.
        patterns: optional pattern id -> Pattern, used for suppression reasons.

    Returns:
        The same number of findings; suppressed ones carry a reason.
    """
    calibrated = []
    for finding in findings:
        rules = calibration_table.get(finding.pattern_id, ())
        if not rules:
            calibrated.append(finding)
            continue
        notes = ""
        if patterns is not None and finding.pattern_id in patterns:
            notes = patterns[finding.pattern_id].false_positive_notes
        calibrated.append(apply_rules(finding, rules, notes))
    return calibrated
