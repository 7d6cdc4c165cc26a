"""Resolve a domain's focus manifest into a flat, deduplicated rule set.

Resolution order for a domain:

1. core patterns, in manifest order
2. cross-cutting references whose condition is in the caller's context flags
3. core reference documents (calibration and false-positive rules)
4. AI-pitfall overlays

Cross-domain references are plain pattern ids copied by value; resolving a
manifest never touches another domain's resolved state.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from bulwark.calibration import CalibrationRule
from bulwark.errors import DanglingReferenceError, ManifestError, UnknownDomainError
from bulwark.pattern_store import Pattern, PatternStore
from bulwark.rule_compiler import CompiledMatcher, RuleCompiler, file_type_key
from bulwark.utils.logging import logger

ALWAYS = "always"

SOURCE_CORE = "core"
SOURCE_CROSS_CUTTING = "cross-cutting"
SOURCE_AI_PITFALL = "ai-pitfall"


@dataclass(frozen=True)
class CrossCuttingRef:
    """Patterns owned by ``domain`` that another manifest loads when relevant."""

    domain: str
    pattern_ids: tuple[str, ...]
    condition: str | None = None

    def applies(self, context_flags: frozenset[str]) -> bool:
        return self.condition in (None, ALWAYS) or self.condition in context_flags


@dataclass(frozen=True)
class Manifest:
    """Named bundle of what an audit domain must evaluate."""

    domain: str
    core_pattern_ids: tuple[str, ...] = ()
    cross_cutting: tuple[CrossCuttingRef, ...] = ()
    core_reference_docs: tuple[str, ...] = ()
    ai_pitfall_ids: tuple[str, ...] = ()
    description: str = ""

    def __post_init__(self):
        if not self.domain or not self.domain.strip():
            raise ManifestError(str(self.domain), "domain name is empty")

    def referenced_pattern_ids(self) -> list[str]:
        ids = list(self.core_pattern_ids)
        for ref in self.cross_cutting:
            ids.extend(ref.pattern_ids)
        ids.extend(self.ai_pitfall_ids)
        return ids


@dataclass(frozen=True)
class ReferenceDoc:
    """Calibration / false-positive document a manifest always loads."""

    id: str
    kind: str = "reference"
    title: str = ""
    rules: Mapping[str, tuple[CalibrationRule, ...]] = field(default_factory=dict)


@dataclass(frozen=True)
class ResolvedRuleSet:
    """Compiled, ordered rule set for one domain in one scan session."""

    domain: str
    patterns: dict[str, tuple[CompiledMatcher, ...]]
    sources: dict[str, str]
    calibration_table: dict[str, tuple[CalibrationRule, ...]]
    reference_docs: tuple[str, ...]
    pattern_index: dict[str, Pattern]

    def matchers_for(self, path: str) -> list[CompiledMatcher]:
        """Matchers whose file-type scope admits ``path``, in rule-set order."""
        key = file_type_key(path)
        return [
            matcher
            for matchers in self.patterns.values()
            for matcher in matchers
            if matcher.applies_to(key)
        ]

    @property
    def matcher_count(self) -> int:
        return sum(len(m) for m in self.patterns.values())

    def fingerprint(self) -> dict[str, Any]:
        """Canonical, JSON-serialisable description of the resolved content."""
        return {
            "domain": self.domain,
            "patterns": [
                {
                    "id": pattern_id,
                    "source": self.sources[pattern_id],
                    "matchers": [
                        {
                            "index": m.signature_index,
                            "regex": m.source,
                            "extensions": sorted(m.extensions) if m.extensions is not None else "*",
                        }
                        for m in matchers
                    ],
                }
                for pattern_id, matchers in self.patterns.items()
            ],
            "calibration": {
                pattern_id: [
                    {
                        "doc": rule.source_doc,
                        "action": rule.action.kind.value,
                        "severity": rule.action.severity.value if rule.action.severity else None,
                        "text": rule.action.text,
                    }
                    for rule in rules
                ]
                for pattern_id, rules in self.calibration_table.items()
            },
            "reference_docs": list(self.reference_docs),
        }


class ManifestResolver:
    """Resolves manifests against a pattern store for one scan session.

    Every manifest is validated when the resolver is built so that a broken
    reference fails before any file is scanned. Resolved sets are cached per
    domain; the cache is filled before scanning and only read afterwards.
    """

    def __init__(
        self,
        store: PatternStore,
        manifests: Mapping[str, Manifest],
        reference_docs: Mapping[str, ReferenceDoc] | None = None,
        compiler: RuleCompiler | None = None,
        context_flags=frozenset(),
        known_flags=None,
        diagnostics=None,
    ):
        self.store = store
        self.manifests = dict(manifests)
        self.reference_docs = dict(reference_docs or {})
        self.compiler = compiler or RuleCompiler()
        self.context_flags = frozenset(context_flags)
        self.known_flags = frozenset(known_flags) if known_flags is not None else None
        self.diagnostics = diagnostics
        self._cache: dict[str, ResolvedRuleSet] = {}

        if self.known_flags is not None:
            unknown = sorted(self.context_flags - self.known_flags)
            if unknown:
                raise ValueError(f"Unknown context flags: {', '.join(unknown)}")

        self._validate()

    @property
    def known_domains(self) -> list[str]:
        return sorted(self.manifests)

    def _validate(self) -> None:
        for domain, manifest in self.manifests.items():
            if manifest.domain != domain:
                raise ManifestError(domain, f"keyed under '{domain}' but declares '{manifest.domain}'")
            for pattern_id in manifest.referenced_pattern_ids():
                if pattern_id not in self.store:
                    raise DanglingReferenceError(domain, pattern_id)
            for ref in manifest.cross_cutting:
                if ref.domain not in self.manifests:
                    raise DanglingReferenceError(domain, ref.domain, kind="domain")
                if (
                    self.known_flags is not None
                    and ref.condition not in (None, ALWAYS)
                    and ref.condition not in self.known_flags
                ):
                    raise ManifestError(domain, f"unknown cross-cutting condition '{ref.condition}'")
            for doc_id in manifest.core_reference_docs:
                if doc_id not in self.reference_docs:
                    raise DanglingReferenceError(domain, doc_id, kind="reference document")
        for doc in self.reference_docs.values():
            for pattern_id in doc.rules:
                if pattern_id not in self.store:
                    raise DanglingReferenceError(doc.id, pattern_id)

    def _manifest(self, domain: str) -> Manifest:
        try:
            return self.manifests[domain]
        except KeyError:
            raise UnknownDomainError(domain, list(self.manifests)) from None

    def plan(self, domain: str) -> list[tuple[str, str]]:
        """Ordered (pattern id, source) pairs for a domain, before compilation."""
        manifest = self._manifest(domain)
        ordered: dict[str, str] = {}

        def take(pattern_ids, source):
            for pattern_id in pattern_ids:
                if pattern_id not in ordered:
                    ordered[pattern_id] = source

        take(manifest.core_pattern_ids, SOURCE_CORE)
        for ref in manifest.cross_cutting:
            if ref.applies(self.context_flags):
                take(ref.pattern_ids, SOURCE_CROSS_CUTTING)
        take(manifest.ai_pitfall_ids, SOURCE_AI_PITFALL)
        return list(ordered.items())

    def resolve(self, domain: str) -> ResolvedRuleSet:
        """Resolve (and cache) the rule set for ``domain``."""
        cached = self._cache.get(domain)
        if cached is not None:
            return cached

        manifest = self._manifest(domain)
        plan = self.plan(domain)

        patterns: dict[str, tuple[CompiledMatcher, ...]] = {}
        sources: dict[str, str] = {}
        for pattern_id, source in plan:
            pattern = self.store[pattern_id]
            patterns[pattern_id] = tuple(
                self.compiler.compile(pattern, self.diagnostics, domain=domain)
            )
            sources[pattern_id] = source

        calibration: dict[str, list[CalibrationRule]] = {}
        loaded_docs: list[str] = []
        for doc_id in manifest.core_reference_docs:
            if doc_id in loaded_docs:
                continue
            loaded_docs.append(doc_id)
            for pattern_id, rules in self.reference_docs[doc_id].rules.items():
                if pattern_id in patterns:
                    calibration.setdefault(pattern_id, []).extend(rules)

        rule_set = ResolvedRuleSet(
            domain=domain,
            patterns=patterns,
            sources=sources,
            calibration_table={k: tuple(v) for k, v in calibration.items()},
            reference_docs=tuple(loaded_docs),
            pattern_index={pattern_id: self.store[pattern_id] for pattern_id in patterns},
        )

        logger.debug(
            f"[RESOLVER] {domain}: {len(patterns)} patterns, "
            f"{rule_set.matcher_count} matchers, {len(loaded_docs)} reference docs"
        )
        self._cache[domain] = rule_set
        return rule_set
