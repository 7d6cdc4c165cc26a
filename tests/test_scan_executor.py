"""Tests for the concurrent scan executor."""

import os
from dataclasses import replace

import pytest

from bulwark.errors import ScanRootError
from bulwark.findings import DiagnosticKind
from bulwark.manifest_resolver import Manifest, ManifestResolver
from bulwark.pattern_store import Category, DetectionSignature, Pattern, PatternStore
from bulwark.scan_executor import FileWalker, ScanExecutor
from bulwark.session import CancellationToken, ScanSession
from bulwark.utils.finding_priority import Severity


@pytest.fixture
def session_for():
    """Build a ScanSession for a single-domain rule set over ``patterns``."""
    def make(*patterns, **kwargs):
        store = PatternStore.from_patterns(patterns)
        manifest = Manifest(domain="d", core_pattern_ids=tuple(p.id for p in patterns))
        rule_set = ManifestResolver(store, {"d": manifest}).resolve("d")
        return ScanSession(domain="d", rule_set=rule_set, **kwargs)
    return make


def write(root, rel, text):
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


def test_walker_prunes_ignored_directories(tmp_path):
    write(tmp_path, "src/a.ts", "")
    write(tmp_path, "node_modules/pkg/index.ts", "")
    write(tmp_path, "src/a.spec.ts", "")
    write(tmp_path, "legacy/old/b.ts", "")

    walker = FileWalker(tmp_path, ["node_modules/**", "*.spec.ts", "legacy/old/**"])
    assert [rel for _, rel in walker.walk()] == ["src/a.ts"]
    assert walker.skipped_dirs == 2


def test_extension_scope(tmp_path, make_pattern, session_for):
    write(tmp_path, "src/a.ts", "danger(1)\n")
    write(tmp_path, "src/b.py", "danger(2)\n")
    write(tmp_path, "README.md", "danger(3)\n")

    result = ScanExecutor().scan(session_for(make_pattern(file_types=(".ts",))), tmp_path)

    assert [f.file for f in result.findings] == ["src/a.ts"]
    assert result.stats.files_scanned == 1
    assert result.stats.files_out_of_scope == 2
    assert not result.incomplete


def test_finding_location_and_context(tmp_path, make_pattern, session_for):
    write(tmp_path, "src/app.ts", "const a = 1;\n    danger(req.body);\n// danger(x)\n")

    result = ScanExecutor().scan(session_for(make_pattern()), tmp_path)
    first, second = sorted(result.findings, key=lambda f: f.line_range.start)

    assert first.line_range.start == first.line_range.end == 2
    assert first.column == 5
    assert first.matched_text == "danger("
    assert first.domains == ("d",)
    assert first.severity is first.original_severity is Severity.HIGH
    assert not first.context.in_comment
    assert "   2>>     danger(req.body);" in first.context.snippet
    assert first.context.extension == ".ts"
    assert second.context.in_comment


def test_same_match_from_two_signatures_is_reported_once(tmp_path, session_for):
    pattern = Pattern(
        id="P-1",
        title="t",
        category=Category.INJECTION,
        severity=Severity.HIGH,
        signatures=(DetectionSignature(r"danger\("), DetectionSignature(r"danger\(\w+\)")),
    )
    write(tmp_path, "a.ts", "danger(x)\n")
    result = ScanExecutor().scan(session_for(pattern), tmp_path)
    assert len(result.findings) == 1


def test_oversize_file_is_skipped_with_diagnostic(tmp_path, make_pattern, session_for):
    write(tmp_path, "big.ts", "danger(" + "x" * 100 + ")\n")
    write(tmp_path, "small.ts", "danger(x)\n")
    session = session_for(make_pattern())

    result = ScanExecutor(max_file_size=50).scan(session, tmp_path)

    assert [f.file for f in result.findings] == ["small.ts"]
    assert result.stats.files_skipped_oversize == 1
    [diagnostic] = session.diagnostics.snapshot()
    assert diagnostic.kind is DiagnosticKind.OVERSIZE_FILE
    assert diagnostic.file == "big.ts"
    assert diagnostic.domain == "d"


def test_binary_files_are_skipped(tmp_path, make_pattern, session_for):
    (tmp_path / "blob.ts").write_bytes(b"danger(\x00\x01)")
    result = ScanExecutor().scan(session_for(make_pattern()), tmp_path)
    assert result.findings == []
    assert result.stats.files_binary == 1


def test_unreadable_file_becomes_diagnostic(tmp_path, make_pattern, session_for):
    write(tmp_path, "ok.ts", "danger(x)\n")
    (tmp_path / "gone.ts").symlink_to(tmp_path / "missing.ts")
    session = session_for(make_pattern())

    result = ScanExecutor().scan(session, tmp_path)

    assert len(result.findings) == 1
    assert result.stats.files_unreadable == 1
    [diagnostic] = session.diagnostics.snapshot()
    assert diagnostic.kind is DiagnosticKind.READ_ERROR
    assert diagnostic.file == "gone.ts"


class _TimingOutRegex:
    pattern = "slow"

    def finditer(self, content, timeout=None, concurrent=None):
        raise TimeoutError("regex timed out")


def test_matcher_timeout_is_recorded_and_other_matchers_run(tmp_path, make_pattern, session_for):
    write(tmp_path, "a.ts", "danger(x) safe(y)\n")
    session = session_for(make_pattern("SLOW"), make_pattern("FAST", regex=r"safe\("))
    [slow] = session.rule_set.patterns["SLOW"]
    session.rule_set.patterns["SLOW"] = (replace(slow, regex=_TimingOutRegex()),)

    result = ScanExecutor().scan(session, tmp_path)

    assert [f.pattern_id for f in result.findings] == ["FAST"]
    assert result.stats.matcher_timeouts == 1
    [diagnostic] = session.diagnostics.snapshot()
    assert diagnostic.kind is DiagnosticKind.MATCHER_TIMEOUT
    assert diagnostic.pattern_id == "SLOW"


def test_matches_per_file_are_capped(tmp_path, make_pattern, session_for):
    write(tmp_path, "a.ts", "danger(1)\n" * 20)
    result = ScanExecutor(max_matches_per_file=3).scan(session_for(make_pattern()), tmp_path)
    assert len(result.findings) == 3


def test_secret_values_are_redacted(tmp_path, make_pattern, session_for):
    write(tmp_path, "config.ts", 'const password = "hunter2hunter2";\n')
    pattern = make_pattern(regex=r"password\s*=\s*\"[^\"]+\"")
    [finding] = ScanExecutor().scan(session_for(pattern), tmp_path).findings
    assert "hunter2" not in finding.matched_text
    assert "hunter2" not in finding.context.snippet


def test_missing_root(tmp_path, make_pattern, session_for):
    with pytest.raises(ScanRootError):
        ScanExecutor().scan(session_for(make_pattern()), tmp_path / "absent")


def test_cancellation_returns_partial_results(tmp_path, make_pattern, session_for):
    for i in range(1000):
        write(tmp_path, f"src/f{i:04d}.ts", "danger(x)\n")

    token = CancellationToken()

    def on_file_done(done, _rel):
        if done >= 10:
            token.cancel()

    session = session_for(make_pattern(), token=token, concurrency=2, on_file_done=on_file_done)
    result = ScanExecutor().scan(session, tmp_path)

    assert result.incomplete
    assert 10 <= len(result.findings) < 1000
    assert result.stats.files_scanned == len(result.findings)
    assert result.stats.files_scanned + result.stats.files_not_dispatched == 1000


def test_worker_count_prefers_session_setting(make_pattern, session_for):
    executor = ScanExecutor(concurrency=8)
    assert executor.worker_count(session_for(make_pattern(), concurrency=3)) == 3
    assert executor.worker_count(session_for(make_pattern())) == 8
    assert ScanExecutor().worker_count(session_for(make_pattern())) == max(1, os.cpu_count() or 4)
