"""Tests for the immutable pattern store."""

import pytest

from bulwark.errors import InvalidPatternError
from bulwark.pattern_store import Category, DetectionSignature, Pattern, PatternStore
from bulwark.utils.finding_priority import Severity


def test_pattern_requires_a_signature():
    with pytest.raises(InvalidPatternError, match="no detection signature"):
        Pattern(id="P-1", title="t", category=Category.INJECTION, severity=Severity.HIGH, signatures=())


def test_pattern_rejects_self_reference():
    with pytest.raises(InvalidPatternError, match="itself"):
        Pattern(
            id="P-1",
            title="t",
            category=Category.INJECTION,
            severity=Severity.HIGH,
            signatures=(DetectionSignature("x"),),
            related_pattern_ids=frozenset({"P-1"}),
        )


def test_pattern_rejects_empty_file_types():
    with pytest.raises(InvalidPatternError, match="no file types"):
        Pattern(
            id="P-1",
            title="t",
            category=Category.INJECTION,
            severity=Severity.HIGH,
            signatures=(DetectionSignature("x", file_types=()),),
        )


def test_store_rejects_duplicate_ids(make_pattern):
    with pytest.raises(InvalidPatternError, match="duplicate"):
        PatternStore.from_patterns([make_pattern("P-1"), make_pattern("P-1")])


def test_store_is_a_read_only_mapping(make_pattern):
    store = PatternStore.from_patterns([make_pattern("P-1"), make_pattern("P-2", category="secrets")])
    assert len(store) == 2
    assert "P-2" in store
    assert [p.id for p in store.by_category(Category.SECRETS)] == ["P-2"]
    with pytest.raises(TypeError):
        store["P-3"] = make_pattern("P-3")


def test_dangling_related_ids_are_reported(make_pattern):
    store = PatternStore.from_patterns([
        make_pattern("P-1", related_pattern_ids=frozenset({"P-2", "P-9"})),
        make_pattern("P-2"),
    ])
    assert store.dangling_related() == {"P-1": ["P-9"]}


@pytest.mark.parametrize("raw,expected", [
    ("access_control", Category.ACCESS_CONTROL),
    ("AI-Pitfall", Category.AI_PITFALL),
    (Category.DOS, Category.DOS),
])
def test_category_parse(raw, expected):
    assert Category.parse(raw) is expected


def test_category_parse_unknown():
    with pytest.raises(ValueError):
        Category.parse("astrology")
