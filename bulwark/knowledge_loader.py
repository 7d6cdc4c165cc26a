"""Knowledge base loader: YAML patterns, focus manifests and reference docs.

Layout of a knowledge base directory::

    patterns/*.yml     {patterns: [{id, title, category, severity, cwe, signatures, ...}]}
    manifests/*.yml    {domain, core_patterns, cross_cutting, core_references, ai_pitfalls}
    references/*.yml   {id, kind, title, rules: {pattern_id: [{when, action, ...}]}}

Every problem is fatal: a knowledge base either loads completely or not at all.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from bulwark.calibration import CalibrationRule
from bulwark.errors import InvalidPatternError, KnowledgeBaseError
from bulwark.manifest_resolver import CrossCuttingRef, Manifest, ReferenceDoc
from bulwark.pattern_store import Category, DetectionSignature, Pattern, PatternStore
from bulwark.utils.constants import BUNDLED_KB_DIR
from bulwark.utils.finding_priority import normalize_severity
from bulwark.utils.logging import logger


@dataclass
class KnowledgeBase:
    """Fully parsed and validated knowledge base."""

    root: Path
    store: PatternStore
    manifests: dict[str, Manifest] = field(default_factory=dict)
    reference_docs: dict[str, ReferenceDoc] = field(default_factory=dict)

    @property
    def domains(self) -> list[str]:
        return sorted(self.manifests)


def _as_list(value: Any, what: str, path: Path) -> list:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        raise KnowledgeBaseError(f"'{what}' must be a list", str(path))
    return value


def _yaml_files(directory: Path) -> list[Path]:
    if not directory.is_dir():
        return []
    files = list(directory.glob("**/*.yml")) + list(directory.glob("**/*.yaml"))
    return sorted(f for f in files if ".template" not in f.suffixes)


class KnowledgeBaseLoader:
    """Loads a knowledge base directory into in-memory records."""

    def __init__(self, kb_dir: Path | str | None = None):
        """Initialize loader.

        Args:
            kb_dir: Knowledge base root. Defaults to the bundled sample
                    knowledge base in bulwark/knowledge/.
        """
        self.kb_dir = Path(kb_dir) if kb_dir else BUNDLED_KB_DIR

    def load(self) -> KnowledgeBase:
        if not self.kb_dir.is_dir():
            raise KnowledgeBaseError("knowledge base directory not found", str(self.kb_dir))

        patterns = []
        for path in _yaml_files(self.kb_dir / "patterns"):
            patterns.extend(self._load_pattern_file(path))
        if not patterns:
            raise KnowledgeBaseError("no patterns found", str(self.kb_dir / "patterns"))
        store = PatternStore.from_patterns(patterns)

        manifests: dict[str, Manifest] = {}
        for path in _yaml_files(self.kb_dir / "manifests"):
            manifest = self._load_manifest_file(path)
            if manifest.domain in manifests:
                raise KnowledgeBaseError(f"duplicate manifest for domain '{manifest.domain}'", str(path))
            manifests[manifest.domain] = manifest

        docs: dict[str, ReferenceDoc] = {}
        for path in _yaml_files(self.kb_dir / "references"):
            doc = self._load_reference_file(path)
            if doc.id in docs:
                raise KnowledgeBaseError(f"duplicate reference document '{doc.id}'", str(path))
            docs[doc.id] = doc

        for owner, missing in store.dangling_related().items():
            logger.debug(f"[KB] {owner} relates to patterns outside this knowledge base: {missing}")

        logger.info(
            f"[KB] Loaded {len(store)} patterns, {len(manifests)} manifests, "
            f"{len(docs)} reference docs from {self.kb_dir}"
        )
        return KnowledgeBase(root=self.kb_dir, store=store, manifests=manifests, reference_docs=docs)

    def _read_yaml(self, path: Path) -> Any:
        try:
            with open(path, encoding="utf-8") as f:
                return yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise KnowledgeBaseError(f"invalid YAML: {e}", str(path)) from e
        except OSError as e:
            raise KnowledgeBaseError(f"cannot read file: {e}", str(path)) from e

    def _load_pattern_file(self, path: Path) -> list[Pattern]:
        data = self._read_yaml(path)
        if not isinstance(data, dict) or "patterns" not in data:
            raise KnowledgeBaseError("expected a mapping with a 'patterns' list", str(path))

        patterns = []
        for entry in _as_list(data["patterns"], "patterns", path):
            patterns.append(self.parse_pattern(entry, path))
        return patterns

    @staticmethod
    def parse_pattern(entry: Any, path: Path | None = None) -> Pattern:
        """Build a Pattern from one YAML record."""
        if not isinstance(entry, dict) or not entry.get("id"):
            raise KnowledgeBaseError("pattern entry without an 'id'", str(path) if path else None)
        pattern_id = str(entry["id"])

        try:
            category = Category.parse(entry.get("category", ""))
            severity = normalize_severity(entry.get("severity"))
        except ValueError as e:
            raise InvalidPatternError(pattern_id, str(e)) from e

        signatures = []
        for raw in entry.get("signatures") or []:
            if isinstance(raw, str):
                raw = {"regex": raw}
            if not isinstance(raw, dict) or not raw.get("regex"):
                raise InvalidPatternError(pattern_id, "signature without a 'regex'")
            file_types = raw.get("file_types", ["*"])
            if isinstance(file_types, str):
                file_types = [file_types]
            signatures.append(
                DetectionSignature(
                    regex=str(raw["regex"]),
                    file_types=tuple(str(t) for t in file_types),
                    ignore_case=bool(raw.get("ignore_case", False)),
                    description=str(raw.get("description", "")),
                )
            )

        try:
            cwe_ids = frozenset(int(str(c).upper().removeprefix("CWE-")) for c in entry.get("cwe") or [])
        except ValueError as e:
            raise InvalidPatternError(pattern_id, f"invalid CWE id: {e}") from e

        return Pattern(
            id=pattern_id,
            title=str(entry.get("title", pattern_id)),
            category=category,
            severity=severity,
            signatures=tuple(signatures),
            cwe_ids=cwe_ids,
            false_positive_notes=str(entry.get("false_positive_notes", "") or "").strip(),
            related_pattern_ids=frozenset(str(r) for r in entry.get("related") or []),
            vulnerable_example=str(entry.get("vulnerable_example", "") or ""),
            secure_example=str(entry.get("secure_example", "") or ""),
        )

    def _load_manifest_file(self, path: Path) -> Manifest:
        data = self._read_yaml(path)
        if not isinstance(data, dict) or not data.get("domain"):
            raise KnowledgeBaseError("manifest must declare a 'domain'", str(path))

        refs = []
        for raw in _as_list(data.get("cross_cutting"), "cross_cutting", path):
            if not isinstance(raw, dict) or not raw.get("domain"):
                raise KnowledgeBaseError("cross_cutting entry needs a 'domain'", str(path))
            refs.append(
                CrossCuttingRef(
                    domain=str(raw["domain"]),
                    pattern_ids=tuple(str(p) for p in _as_list(raw.get("patterns"), "patterns", path)),
                    condition=str(raw["condition"]) if raw.get("condition") else None,
                )
            )

        return Manifest(
            domain=str(data["domain"]),
            description=str(data.get("description", "") or "").strip(),
            core_pattern_ids=tuple(str(p) for p in _as_list(data.get("core_patterns"), "core_patterns", path)),
            cross_cutting=tuple(refs),
            core_reference_docs=tuple(
                str(d) for d in _as_list(data.get("core_references"), "core_references", path)
            ),
            ai_pitfall_ids=tuple(str(p) for p in _as_list(data.get("ai_pitfalls"), "ai_pitfalls", path)),
        )

    def _load_reference_file(self, path: Path) -> ReferenceDoc:
        data = self._read_yaml(path)
        if not isinstance(data, dict) or not data.get("id"):
            raise KnowledgeBaseError("reference document must declare an 'id'", str(path))
        doc_id = str(data["id"])

        raw_rules = data.get("rules") or {}
        if not isinstance(raw_rules, dict):
            raise KnowledgeBaseError("'rules' must map pattern ids to rule lists", str(path))

        rules: dict[str, tuple[CalibrationRule, ...]] = {}
        for pattern_id, entries in raw_rules.items():
            try:
                rules[str(pattern_id)] = tuple(
                    CalibrationRule.from_dict(e, source_doc=doc_id)
                    for e in _as_list(entries, f"rules.{pattern_id}", path)
                )
            except ValueError as e:
                raise KnowledgeBaseError(f"rule for {pattern_id}: {e}", str(path)) from e

        return ReferenceDoc(
            id=doc_id,
            kind=str(data.get("kind", "reference")),
            title=str(data.get("title", doc_id)),
            rules=rules,
        )
