"""Tests for calibration predicates and actions."""

import pytest

from bulwark.calibration import CalibrationRule, ContextPredicate, apply_rules, calibrate
from bulwark.utils.finding_priority import Severity


def rule(action, when=None, doc="doc", **extra):
    return CalibrationRule.from_dict(dict(extra, action=action, when=when), source_doc=doc)


def test_empty_predicate_always_holds(make_finding):
    assert ContextPredicate.from_dict(None).holds(make_finding())
    assert ContextPredicate.from_dict({"always": True}).holds(make_finding())


def test_path_contains_checks_a_rooted_path(make_finding):
    predicate = ContextPredicate.from_dict({"path_contains": "/test/"})
    assert predicate.holds(make_finding(file="test/login.test.ts"))
    assert predicate.holds(make_finding(file="pkg/test/login.ts"))
    assert not predicate.holds(make_finding(file="src/latest/login.ts"))


def test_predicate_is_a_conjunction(make_finding):
    predicate = ContextPredicate.from_dict({"in_comment": True, "extension": [".ts"]})
    assert predicate.holds(make_finding(in_comment=True, extension=".ts"))
    assert not predicate.holds(make_finding(in_comment=True, extension=".py"))
    assert not predicate.holds(make_finding(in_comment=False, extension=".ts"))


def test_path_hint_and_glob(make_finding):
    hint = ContextPredicate.from_dict({"path_hint": "vendor"})
    assert hint.holds(make_finding(path_hints=frozenset({"vendor"})))
    glob = ContextPredicate.from_dict({"path_glob": "src/*.ts"})
    assert glob.holds(make_finding(file="src/app.ts"))
    assert not glob.holds(make_finding(file="lib/app.ts"))


def test_text_predicates(make_finding):
    predicate = ContextPredicate.from_dict({"snippet_matches": r"sanitize\("})
    assert predicate.holds(make_finding(snippet="   1>> q = sanitize(req.body)"))
    assert not predicate.holds(make_finding(snippet="   1>> q = req.body"))


@pytest.mark.parametrize("data,message", [
    ({"near_line": 3}, "unknown predicate keys"),
    ({"path_hint": "prod"}, "unknown path hint"),
    ({"snippet_matches": "(a+)+"}, "invalid predicate regex"),
])
def test_predicate_validation(data, message):
    with pytest.raises(ValueError, match=message):
        ContextPredicate.from_dict(data)


def test_downgrade_requires_target():
    with pytest.raises(ValueError, match="requires a 'to' severity"):
        rule("downgrade")


def test_suppression_is_retained_with_reason(make_finding):
    finding = make_finding(file="test/a.ts")
    [result] = calibrate([finding], {"P-1": (rule("suppress", {"path_contains": "/test/"}, reason="fixture"),)})
    assert result.suppressed
    assert result.suppression_reason == "fixture"
    assert result.finding_id == finding.finding_id


def test_suppression_reason_falls_back_to_false_positive_notes(make_finding):
    result = apply_rules(make_finding(), [rule("suppress")], "Validated input is safe.")
    assert result.suppression_reason == "Validated input is safe."
    result = apply_rules(make_finding(), [rule("suppress", doc="fp-doc")])
    assert result.suppression_reason == "suppressed by fp-doc"


def test_suppression_is_terminal(make_finding):
    result = apply_rules(make_finding(), [rule("suppress"), rule("upgrade", to="critical")])
    assert result.suppressed
    assert result.severity is Severity.HIGH
    assert result.annotations == ()


def test_downgrade_only_lowers(make_finding):
    finding = make_finding(severity="medium")
    assert apply_rules(finding, [rule("downgrade", to="high")]).severity is Severity.MEDIUM

    lowered = apply_rules(finding, [rule("downgrade", to="low", note="sample code")])
    assert lowered.severity is Severity.LOW
    assert lowered.original_severity is Severity.MEDIUM
    assert lowered.annotations == ("severity medium -> low (doc): sample code",)


def test_upgrade_only_raises(make_finding):
    finding = make_finding(severity="high")
    assert apply_rules(finding, [rule("upgrade", to="low")]).severity is Severity.HIGH
    assert apply_rules(finding, [rule("upgrade", to="critical")]).severity is Severity.CRITICAL


def test_rules_apply_in_order(make_finding):
    result = apply_rules(
        make_finding(severity="high"),
        [rule("annotate", note="first"), rule("downgrade", to="medium"), rule("annotate", note="last")],
    )
    assert result.annotations == ("first", "severity high -> medium (doc)", "last")


def test_patterns_without_rules_are_untouched(make_finding):
    finding = make_finding(pattern_id="OTHER")
    assert calibrate([finding], {"P-1": (rule("suppress"),)}) == [finding]


def test_later_action_overrides_earlier_severity(make_finding):
    rules = [rule("upgrade", to="critical", doc="cal"), rule("downgrade", to="medium", doc="cal")]
    out = apply_rules(make_finding(severity="high"), rules)
    assert out.severity is Severity.MEDIUM
    assert out.original_severity is Severity.HIGH
    assert out.annotations == (
        "severity high -> critical (cal)",
        "severity critical -> medium (cal)",
    )


def test_downgrade_then_upgrade_restores_severity(make_finding):
    rules = [rule("downgrade", to="low"), rule("upgrade", to="high")]
    assert apply_rules(make_finding(severity="medium"), rules).severity is Severity.HIGH


def test_upgrade_downgrade_then_suppress(make_finding):
    rules = [
        rule("upgrade", to="critical"),
        rule("downgrade", to="medium"),
        rule("suppress", reason="generated code"),
        rule("upgrade", to="critical"),
    ]
    out = apply_rules(make_finding(severity="high"), rules)
    assert out.suppressed
    assert out.suppression_reason == "generated code"
    assert out.severity is Severity.MEDIUM
    assert len(out.annotations) == 2


@pytest.mark.parametrize("action,target", [("downgrade", "critical"), ("upgrade", "low")])
def test_severity_actions_only_move_in_their_direction(make_finding, action, target):
    out = apply_rules(make_finding(severity="high"), [rule(action, to=target)])
    assert out.severity is Severity.HIGH
    assert out.annotations == ()
