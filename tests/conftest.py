"""Pytest configuration and fixtures."""
from pathlib import Path

import pytest
import yaml

from bulwark.findings import Finding, LineRange, MatchContext, make_finding_id
from bulwark.knowledge_loader import KnowledgeBaseLoader
from bulwark.pattern_store import Category, DetectionSignature, Pattern
from bulwark.utils.finding_priority import normalize_severity

OC_051 = {
    "id": "OC-051",
    "title": "NoSQL operator injection",
    "category": "injection",
    "severity": "high",
    "cwe": ["CWE-943"],
    "signatures": [
        {
            "regex": r"\bfindOne\s*\(\s*\{[^}\n]{0,200}\breq\.body\b",
            "file_types": [".ts"],
        }
    ],
    "false_positive_notes": "Validated primitives are safe.",
}


def write_kb(root: Path, patterns, manifests, references=()) -> Path:
    """Write a knowledge base directory from plain dicts."""
    kb = root / "kb"
    for sub in ("patterns", "manifests", "references"):
        (kb / sub).mkdir(parents=True, exist_ok=True)
    (kb / "patterns" / "patterns.yml").write_text(yaml.safe_dump({"patterns": list(patterns)}))
    for manifest in manifests:
        (kb / "manifests" / f"{manifest['domain']}.yml").write_text(yaml.safe_dump(manifest))
    for doc in references:
        (kb / "references" / f"{doc['id']}.yml").write_text(yaml.safe_dump(doc))
    return kb


@pytest.fixture
def kb_factory(tmp_path):
    """Return a callable that writes a knowledge base under tmp_path/kb."""
    def make(patterns, manifests, references=()):
        return write_kb(tmp_path, patterns, manifests, references)
    return make


@pytest.fixture
def oc051_kb_dir(kb_factory):
    """One pattern, one manifest, one reference doc suppressing /test/ paths."""
    return kb_factory(
        [OC_051],
        [{"domain": "injection", "core_patterns": ["OC-051"], "core_references": ["fp"]}],
        [
            {
                "id": "fp",
                "kind": "false-positives",
                "rules": {
                    "OC-051": [
                        {"when": {"path_contains": "/test/"}, "action": "suppress", "reason": "test fixture"}
                    ]
                },
            }
        ],
    )


@pytest.fixture
def oc051_kb(oc051_kb_dir):
    return KnowledgeBaseLoader(oc051_kb_dir).load()


@pytest.fixture
def login_project(tmp_path):
    """Project with the same vulnerable line in src/ and test/."""
    project = tmp_path / "project"
    line = "const user = await Users.findOne({password: req.body.password});\n"
    (project / "src").mkdir(parents=True)
    (project / "test").mkdir()
    (project / "src" / "login.ts").write_text("import { Users } from './db';\n" + line)
    (project / "test" / "login.test.ts").write_text(line)
    (project / "README.md").write_text("findOne({password: req.body.password})\n")
    return project


@pytest.fixture
def make_pattern():
    def make(pattern_id="P-1", regex=r"danger\(", file_types=("*",), severity="high", **extra):
        return Pattern(
            id=pattern_id,
            title=extra.pop("title", f"{pattern_id} title"),
            category=Category.parse(extra.pop("category", "injection")),
            severity=normalize_severity(severity),
            signatures=(DetectionSignature(regex=regex, file_types=tuple(file_types)),),
            **extra,
        )
    return make


@pytest.fixture
def make_finding():
    def make(pattern_id="P-1", file="src/app.ts", line=1, column=1, severity="high",
             domain="injection", suppressed=False, **context):
        line_range = LineRange(line, line)
        sev = normalize_severity(severity)
        return Finding(
            finding_id=make_finding_id(domain, pattern_id, file, line_range, column),
            pattern_id=pattern_id,
            domains=(domain,),
            file=file,
            line_range=line_range,
            column=column,
            matched_text="danger(",
            severity=sev,
            original_severity=sev,
            suppressed=suppressed,
            suppression_reason="fixture" if suppressed else "",
            context=MatchContext(**context),
        )
    return make
