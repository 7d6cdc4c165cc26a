"""Compile pattern detection signatures into extension-scoped matchers.

Signatures are data that may be edited outside this repository, so every one
passes a static safety check before it reaches the regex engine:

- no nested unbounded quantifiers (``(a+)+``, ``(?:x*)*``)
- no backreferences, recursion or conditional groups
- bounded repeats only up to ``max_bounded_repeat``
- literal braces must be escaped (rules out fuzzy-matching syntax)

Evaluation uses the ``regex`` library with a per-call timeout as the second
line of defense.
"""

import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any

import regex

from bulwark.errors import InvalidSignatureError
from bulwark.pattern_store import DetectionSignature, Pattern
from bulwark.utils.constants import EXTENSION_CLASSES
from bulwark.utils.logging import logger

_BRACE_QUANTIFIER = re.compile(r"\{(\d*)(,(\d*))?\}")
_ALLOWED_INLINE_FLAGS = set("aiLmsuw-")


def file_type_key(path: str) -> str:
    """Lookup key for a path: lowercased suffix, or the bare name when there is none."""
    p = PurePosixPath(path)
    if p.suffix:
        return p.suffix.lower()
    return p.name.lower()


class SignatureRejected(ValueError):
    """Raised by the safety check with a human-readable reason."""


@dataclass
class _Frame:
    has_unbounded: bool = False


@dataclass(frozen=True)
class _Atom:
    contains_unbounded: bool = False


def _consume_escape(sig: str, i: int) -> int:
    if i + 1 >= len(sig):
        raise SignatureRejected("trailing backslash")
    nxt = sig[i + 1]
    if nxt in "123456789":
        raise SignatureRejected("backreferences are not allowed")
    if nxt in "gk" and i + 2 < len(sig) and sig[i + 2] in "<{":
        raise SignatureRejected("backreferences are not allowed")
    if nxt in "pPN" and i + 2 < len(sig) and sig[i + 2] == "{":
        close = sig.find("}", i + 3)
        if close == -1:
            raise SignatureRejected("unterminated property escape")
        return close + 1
    return i + 2


def _consume_class(sig: str, i: int) -> int:
    j = i + 1
    if j < len(sig) and sig[j] == "^":
        j += 1
    if j < len(sig) and sig[j] == "]":
        j += 1
    while j < len(sig):
        ch = sig[j]
        if ch == "\\":
            j += 2
            continue
        if ch == "[" and j + 1 < len(sig) and sig[j + 1] == ":":
            close = sig.find(":]", j + 2)
            if close == -1:
                raise SignatureRejected("unterminated POSIX class")
            j = close + 2
            continue
        if ch == "]":
            return j + 1
        j += 1
    raise SignatureRejected("unterminated character class")


def _consume_group_open(sig: str, i: int) -> tuple[int, str]:
    """Return (next index, kind) where kind is group, flags or comment."""
    if i + 1 >= len(sig) or sig[i + 1] != "?":
        return i + 1, "group"

    j = i + 2
    if j >= len(sig):
        raise SignatureRejected("truncated group")
    head = sig[j]

    if head in ":=!>":
        return j + 1, "group"
    if sig.startswith("<=", j) or sig.startswith("<!", j):
        return j + 2, "group"
    if head == "P":
        if sig.startswith("P<", j):
            close = sig.find(">", j + 2)
            if close == -1:
                raise SignatureRejected("unterminated group name")
            return close + 1, "group"
        raise SignatureRejected("backreferences and recursion are not allowed")
    if head == "<":
        close = sig.find(">", j + 1)
        if close == -1:
            raise SignatureRejected("unterminated group name")
        return close + 1, "group"
    if head == "#":
        close = sig.find(")", j)
        if close == -1:
            raise SignatureRejected("unterminated comment group")
        return close + 1, "comment"
    if head == "(":
        raise SignatureRejected("conditional groups are not allowed")
    if head in "R&|" or head.isdigit() or (head in "+-" and j + 1 < len(sig) and sig[j + 1].isdigit()):
        raise SignatureRejected("recursion and branch-reset groups are not allowed")

    k = j
    while k < len(sig) and sig[k] not in ":)":
        if sig[k] not in _ALLOWED_INLINE_FLAGS:
            raise SignatureRejected(f"unsupported inline flag '{sig[k]}'")
        k += 1
    if k >= len(sig):
        raise SignatureRejected("unterminated inline flag group")
    if sig[k] == ")":
        return k + 1, "flags"
    return k + 1, "group"


def check_signature_safety(signature: str, max_length: int = 2000, max_repeat: int = 1000) -> None:
    """Reject signatures outside the backtracking-safe dialect.

    Raises:
        SignatureRejected: with the reason the signature is unsafe.
    """
    if not signature:
        raise SignatureRejected("empty signature")
    if len(signature) > max_length:
        raise SignatureRejected(f"signature longer than {max_length} characters")

    stack = [_Frame()]
    last_atom: _Atom | None = None
    i = 0
    n = len(signature)

    while i < n:
        ch = signature[i]

        if ch == "\\":
            i = _consume_escape(signature, i)
            last_atom = _Atom()
        elif ch == "[":
            i = _consume_class(signature, i)
            last_atom = _Atom()
        elif ch == "(":
            i, kind = _consume_group_open(signature, i)
            if kind == "group":
                stack.append(_Frame())
            last_atom = None
        elif ch == ")":
            if len(stack) == 1:
                raise SignatureRejected("unbalanced parenthesis")
            frame = stack.pop()
            if frame.has_unbounded:
                stack[-1].has_unbounded = True
            last_atom = _Atom(contains_unbounded=frame.has_unbounded)
            i += 1
        elif ch == "|":
            last_atom = None
            i += 1
        elif ch in "*+?{":
            if ch == "{":
                m = _BRACE_QUANTIFIER.match(signature, i)
                if m is None or (m.group(1) == "" and m.group(3) in (None, "")):
                    raise SignatureRejected("literal braces must be escaped")
                lo = int(m.group(1) or 0)
                if m.group(2) is None:
                    hi: int | None = lo
                elif m.group(3):
                    hi = int(m.group(3))
                else:
                    hi = None
                if hi is not None and hi < lo:
                    raise SignatureRejected(f"repeat range {{{lo},{hi}}} is inverted")
                if max(lo, hi or 0) > max_repeat:
                    raise SignatureRejected(f"bounded repeat exceeds {max_repeat}")
                unbounded = hi is None
                repeats = unbounded or hi > 1
                end = m.end()
            else:
                unbounded = ch in "*+"
                repeats = unbounded
                end = i + 1

            if last_atom is None:
                raise SignatureRejected("quantifier has nothing to repeat")
            # An unbounded atom may only be made optional, never repeated
            if repeats and last_atom.contains_unbounded:
                raise SignatureRejected("nested unbounded quantifiers")
            if unbounded:
                stack[-1].has_unbounded = True

            i = end
            if i < n and signature[i] in "?+":
                i += 1
            last_atom = None
        elif ch in "^$":
            last_atom = None
            i += 1
        else:
            last_atom = _Atom()
            i += 1

    if len(stack) != 1:
        raise SignatureRejected("unbalanced parenthesis")


@dataclass(frozen=True)
class CompiledMatcher:
    """Executable form of one detection signature."""

    pattern_id: str
    signature_index: int
    source: str
    extensions: frozenset[str] | None
    regex: Any
    timeout: float

    def applies_to(self, type_key: str) -> bool:
        return self.extensions is None or type_key in self.extensions

    def finditer(self, content: str):
        """Iterate matches; raises TimeoutError when the timeout elapses."""
        return self.regex.finditer(content, timeout=self.timeout, concurrent=True)


class RuleCompiler:
    """Turns Pattern signatures into CompiledMatcher lists."""

    def __init__(
        self,
        max_signature_length: int = 2000,
        max_bounded_repeat: int = 1000,
        matcher_timeout: float = 2.0,
        extension_classes: dict[str, frozenset[str]] | None = None,
    ):
        self.max_signature_length = max_signature_length
        self.max_bounded_repeat = max_bounded_repeat
        self.matcher_timeout = matcher_timeout
        self.extension_classes = extension_classes or EXTENSION_CLASSES

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "RuleCompiler":
        return cls(
            max_signature_length=config["limits"]["max_signature_length"],
            max_bounded_repeat=config["limits"]["max_bounded_repeat"],
            matcher_timeout=float(config["timeouts"]["matcher_timeout"]),
        )

    def resolve_file_types(self, file_types: tuple[str, ...]) -> frozenset[str] | None:
        """Expand named classes; None means the matcher applies to every file."""
        extensions: set[str] = set()
        for raw in file_types:
            for entry in str(raw).split(","):
                entry = entry.strip().lower()
                if not entry:
                    continue
                if entry == "*":
                    return None
                if entry.startswith(".") or entry in ("dockerfile", "makefile", "jenkinsfile"):
                    extensions.add(entry)
                elif entry in self.extension_classes:
                    extensions.update(self.extension_classes[entry])
                else:
                    raise SignatureRejected(f"unknown file type class '{entry}'")
        if not extensions:
            raise SignatureRejected("no file types declared")
        return frozenset(extensions)

    def compile_signature(
        self, pattern: Pattern, index: int, signature: DetectionSignature
    ) -> CompiledMatcher:
        """Compile one signature or raise InvalidSignatureError."""
        try:
            check_signature_safety(
                signature.regex, self.max_signature_length, self.max_bounded_repeat
            )
            extensions = self.resolve_file_types(signature.file_types)
        except SignatureRejected as e:
            raise InvalidSignatureError(pattern.id, signature.regex, str(e)) from e

        flags = regex.MULTILINE
        if signature.ignore_case:
            flags |= regex.IGNORECASE
        try:
            compiled = regex.compile(signature.regex, flags)
        except regex.error as e:
            raise InvalidSignatureError(pattern.id, signature.regex, f"does not compile: {e}") from e

        return CompiledMatcher(
            pattern_id=pattern.id,
            signature_index=index,
            source=signature.regex,
            extensions=extensions,
            regex=compiled,
            timeout=self.matcher_timeout,
        )

    def compile(self, pattern: Pattern, diagnostics=None, domain: str | None = None) -> list[CompiledMatcher]:
        """Compile every signature, omitting (and reporting) the invalid ones."""
        matchers = []
        for index, signature in enumerate(pattern.signatures):
            try:
                matchers.append(self.compile_signature(pattern, index, signature))
            except InvalidSignatureError as e:
                logger.warning(str(e))
                if diagnostics is not None:
                    diagnostics.record(e, domain=domain)
        return matchers

    def compile_strict(self, pattern: Pattern) -> list[CompiledMatcher]:
        """Compile every signature; the first invalid one raises."""
        return [
            self.compile_signature(pattern, index, signature)
            for index, signature in enumerate(pattern.signatures)
        ]
