"""Immutable collection of vulnerability patterns."""

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum

from bulwark.errors import InvalidPatternError
from bulwark.utils.finding_priority import Severity

__all__ = ["Category", "DetectionSignature", "Pattern", "PatternStore", "Severity"]


class Category(Enum):
    """Vulnerability categories a pattern can belong to."""

    INJECTION = "injection"
    AUTH = "auth"
    CRYPTO = "crypto"
    DATA = "data"
    ACCESS_CONTROL = "access-control"
    CONFIG = "config"
    SECRETS = "secrets"
    DOS = "dos"
    SUPPLY_CHAIN = "supply-chain"
    LOGIC = "logic"
    WEB = "web"
    BLOCKCHAIN = "blockchain"
    AUTOMATION = "automation"
    AI_PITFALL = "ai-pitfall"

    @classmethod
    def parse(cls, value: "str | Category") -> "Category":
        if isinstance(value, Category):
            return value
        normalized = str(value).strip().lower().replace("_", "-")
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"unknown category '{value}'") from None


@dataclass(frozen=True)
class DetectionSignature:
    """One matcher definition, scoped to a set of file types.

    ``file_types`` holds literal extensions (".ts"), bare file names
    ("dockerfile") or named classes ("typescript"); "*" admits any file.
    """

    regex: str
    file_types: tuple[str, ...] = ("*",)
    ignore_case: bool = False
    description: str = ""


@dataclass(frozen=True)
class Pattern:
    """A single detectable vulnerability signature."""

    id: str
    title: str
    category: Category
    severity: Severity
    signatures: tuple[DetectionSignature, ...]
    cwe_ids: frozenset[int] = frozenset()
    false_positive_notes: str = ""
    related_pattern_ids: frozenset[str] = frozenset()
    vulnerable_example: str = ""
    secure_example: str = ""

    def __post_init__(self):
        """Enforce the load-time invariants."""
        if not self.id or not str(self.id).strip():
            raise InvalidPatternError(str(self.id), "pattern id is empty")
        if not self.signatures:
            raise InvalidPatternError(self.id, "pattern declares no detection signature")
        for signature in self.signatures:
            if not signature.regex:
                raise InvalidPatternError(self.id, "detection signature has an empty regex")
            if not signature.file_types:
                raise InvalidPatternError(self.id, "detection signature has no file types")
        if self.id in self.related_pattern_ids:
            raise InvalidPatternError(self.id, "pattern lists itself as related")


@dataclass(frozen=True)
class PatternStore(Mapping):
    """Read-only mapping of pattern id to Pattern.

    Built once at startup; never mutated while a scan is running.
    """

    _patterns: dict[str, Pattern] = field(default_factory=dict)

    @classmethod
    def from_patterns(cls, patterns: Iterable[Pattern]) -> "PatternStore":
        """Build a store, rejecting duplicate ids."""
        indexed: dict[str, Pattern] = {}
        for pattern in patterns:
            if not isinstance(pattern, Pattern):
                raise InvalidPatternError(str(pattern), "not a Pattern record")
            if pattern.id in indexed:
                raise InvalidPatternError(pattern.id, "duplicate pattern id")
            indexed[pattern.id] = pattern
        return cls(indexed)

    def __getitem__(self, pattern_id: str) -> Pattern:
        return self._patterns[pattern_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._patterns)

    def __len__(self) -> int:
        return len(self._patterns)

    def by_category(self, category: Category) -> list[Pattern]:
        return [p for p in self._patterns.values() if p.category is category]

    def dangling_related(self) -> dict[str, list[str]]:
        """Related-pattern ids that point outside the store, keyed by owner."""
        missing: dict[str, list[str]] = {}
        for pattern in self._patterns.values():
            absent = sorted(r for r in pattern.related_pattern_ids if r not in self._patterns)
            if absent:
                missing[pattern.id] = absent
        return missing
