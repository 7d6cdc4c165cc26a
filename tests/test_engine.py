"""End-to-end tests for AuditEngine."""

import pytest

from bulwark.config_runtime import DEFAULTS
from bulwark.engine import AuditEngine
from bulwark.errors import ScanRootError, UnknownDomainError
from bulwark.knowledge_loader import KnowledgeBaseLoader
from bulwark.session import CancellationToken

from conftest import OC_051


def test_suppression_by_test_path(oc051_kb, login_project):
    report = AuditEngine(oc051_kb).run(["injection"], login_project)

    assert [f.file for f in report.visible_findings] == ["src/login.ts"]
    [suppressed] = report.suppressed_findings
    assert suppressed.file == "test/login.test.ts"
    assert suppressed.suppression_reason == "test fixture"
    assert report.visible_findings[0].line_range.start == 2
    assert report.summary["visible"] == 1
    assert report.summary["suppressed"] == 1
    assert not report.incomplete
    assert report.stats.files_out_of_scope == 1


def test_reports_are_reproducible(oc051_kb, login_project):
    engine = AuditEngine(oc051_kb)
    first = engine.run(["injection"], login_project).to_dict()
    second = engine.run(["injection"], login_project).to_dict()
    assert first == second


def test_load_errors_raise_before_scanning(oc051_kb, login_project, tmp_path):
    engine = AuditEngine(oc051_kb)
    with pytest.raises(UnknownDomainError):
        engine.run(["astrology"], login_project)
    with pytest.raises(ScanRootError):
        engine.run(["injection"], tmp_path / "absent")
    with pytest.raises(ValueError):
        engine.run([], login_project)


def test_invalid_signature_is_reported_not_fatal(kb_factory, login_project):
    broken = dict(OC_051, id="BAD-1", signatures=[{"regex": "(a+)+$"}])
    kb = KnowledgeBaseLoader(
        kb_factory([OC_051, broken], [{"domain": "injection", "core_patterns": ["OC-051", "BAD-1"]}])
    ).load()

    report = AuditEngine(kb).run(["injection"], login_project)

    assert len(report.findings) == 2
    [diagnostic] = report.diagnostics
    assert diagnostic.pattern_id == "BAD-1"
    assert diagnostic.kind.value == "invalid-signature"


def test_multiple_domains_merge_shared_matches(tmp_path):
    project = tmp_path / "project"
    project.mkdir()
    (project / "config.ts").write_text('const apiKey = "sk_live_abcdefghijklmnop";\n')

    kb = KnowledgeBaseLoader().load()
    report = AuditEngine(kb).run(["injection", "secrets"], project)

    [finding] = [f for f in report.findings if f.pattern_id == "SEC-001"]
    assert finding.domains == ("injection", "secrets")
    assert report.domains == ("injection", "secrets")


def test_cancelled_before_start_yields_incomplete_report(oc051_kb, login_project):
    token = CancellationToken()
    token.cancel()
    report = AuditEngine(oc051_kb).run(["injection"], login_project, token=token)
    assert report.incomplete
    assert report.findings == ()
    assert report.stats.files_not_dispatched == 3


def test_config_limits_reach_the_executor(oc051_kb, login_project):
    config = {**DEFAULTS, "limits": {**DEFAULTS["limits"], "max_file_size": 10}}
    report = AuditEngine(oc051_kb, config).run(["injection"], login_project)
    assert report.findings == ()
    assert report.stats.files_skipped_oversize == 2
    assert {d.kind.value for d in report.diagnostics} == {"oversize-file"}


def test_glob_string_does_not_hide_later_credentials(tmp_path):
    project = tmp_path / "project"
    project.mkdir()
    (project / "server.ts").write_text(
        'app.use("/api/*", auth);\nconst apiKey = "sk_live_abcdefghijklmnop";\n'
    )

    report = AuditEngine(KnowledgeBaseLoader().load()).run(["secrets"], project)

    [finding] = [f for f in report.findings if f.pattern_id == "SEC-001"]
    assert finding.context.in_comment is False
    assert not finding.suppressed
    assert finding.line_range.start == 2


def test_merge_records_suppression_from_another_domain(kb_factory, login_project):
    kb_dir = kb_factory(
        [OC_051],
        [
            {"domain": "injection", "core_patterns": ["OC-051"], "core_references": ["fp"]},
            {"domain": "automation", "core_patterns": ["OC-051"]},
        ],
        [
            {
                "id": "fp",
                "rules": {
                    "OC-051": [
                        {"when": {"path_contains": "/test/"}, "action": "suppress", "reason": "test fixture"}
                    ]
                },
            }
        ],
    )
    report = AuditEngine(KnowledgeBaseLoader(kb_dir).load()).run(["injection", "automation"], login_project)

    [finding] = [f for f in report.findings if f.file == "test/login.test.ts"]
    assert finding.domains == ("automation", "injection")
    assert not finding.suppressed
    assert finding.annotations == ("suppressed in injection: test fixture",)
