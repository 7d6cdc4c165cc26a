"""Tests for loading YAML knowledge bases."""

import pytest

from bulwark.errors import InvalidPatternError, KnowledgeBaseError
from bulwark.knowledge_loader import KnowledgeBaseLoader
from bulwark.pattern_store import Category
from bulwark.utils.finding_priority import Severity

from conftest import OC_051


def test_loads_patterns_manifests_and_references(oc051_kb):
    assert oc051_kb.domains == ["injection"]
    pattern = oc051_kb.store["OC-051"]
    assert pattern.category is Category.INJECTION
    assert pattern.severity is Severity.HIGH
    assert pattern.cwe_ids == frozenset({943})
    assert pattern.signatures[0].file_types == (".ts",)

    doc = oc051_kb.reference_docs["fp"]
    [rule] = doc.rules["OC-051"]
    assert rule.predicate.path_contains == "/test/"
    assert rule.source_doc == "fp"


def test_bundled_knowledge_base_loads():
    kb = KnowledgeBaseLoader().load()
    assert {"injection", "secrets", "auth", "business-logic", "automation"} <= set(kb.domains)
    assert "OC-051" in kb.store
    assert kb.store.dangling_related() == {}


def test_missing_directory(tmp_path):
    with pytest.raises(KnowledgeBaseError, match="not found"):
        KnowledgeBaseLoader(tmp_path / "nope").load()


def test_invalid_yaml(kb_factory):
    kb = kb_factory([OC_051], [])
    (kb / "patterns" / "broken.yml").write_text("patterns: [unclosed\n")
    with pytest.raises(KnowledgeBaseError, match="invalid YAML"):
        KnowledgeBaseLoader(kb).load()


def test_unknown_severity_is_fatal(kb_factory):
    kb = kb_factory([dict(OC_051, severity="apocalyptic")], [])
    with pytest.raises(InvalidPatternError, match="OC-051"):
        KnowledgeBaseLoader(kb).load()


def test_pattern_without_signatures_is_fatal(kb_factory):
    kb = kb_factory([dict(OC_051, signatures=[])], [])
    with pytest.raises(InvalidPatternError, match="no detection signature"):
        KnowledgeBaseLoader(kb).load()


def test_duplicate_pattern_ids_are_fatal(kb_factory):
    kb = kb_factory([OC_051, dict(OC_051)], [])
    with pytest.raises(InvalidPatternError, match="duplicate"):
        KnowledgeBaseLoader(kb).load()


def test_bare_string_signature_applies_everywhere():
    pattern = KnowledgeBaseLoader.parse_pattern(
        {"id": "P-1", "category": "secrets", "severity": "low", "signatures": ["AKIA"]}
    )
    assert pattern.signatures[0].file_types == ("*",)
    assert pattern.title == "P-1"


def test_unknown_calibration_action_is_fatal(kb_factory):
    kb = kb_factory(
        [OC_051],
        [],
        [{"id": "fp", "rules": {"OC-051": [{"when": {"always": True}, "action": "ignore"}]}}],
    )
    with pytest.raises(KnowledgeBaseError, match="unknown calibration action"):
        KnowledgeBaseLoader(kb).load()


def test_manifest_fields(kb_factory):
    kb = kb_factory(
        [OC_051, dict(OC_051, id="SEC-1", category="secrets")],
        [
            {
                "domain": "injection",
                "core_patterns": ["OC-051"],
                "cross_cutting": [{"domain": "secrets", "patterns": ["SEC-1"], "condition": "api-server"}],
                "ai_pitfalls": [],
            },
            {"domain": "secrets", "core_patterns": ["SEC-1"]},
        ],
    )
    manifest = KnowledgeBaseLoader(kb).load().manifests["injection"]
    assert manifest.core_pattern_ids == ("OC-051",)
    [ref] = manifest.cross_cutting
    assert (ref.domain, ref.pattern_ids, ref.condition) == ("secrets", ("SEC-1",), "api-server")
