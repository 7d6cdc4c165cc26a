"""Error taxonomy for the audit engine.

Load-time errors abort an audit before any file is read. Recoverable errors
are converted into Diagnostic records and attached to the report; scanning
carries on for every other file and matcher.
"""

from bulwark.findings import Diagnostic, DiagnosticKind


class BulwarkError(Exception):
    """Base class for all engine errors."""


# ---------------------------------------------------------------------------
# Load-time fatal
# ---------------------------------------------------------------------------


class LoadError(BulwarkError):
    """Knowledge base, manifest or scan root could not be loaded."""


class KnowledgeBaseError(LoadError):
    """A knowledge base file is missing or malformed."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(f"{path}: {message}" if path else message)
        self.path = path


class InvalidPatternError(LoadError):
    """A pattern record violates the Pattern invariants."""

    def __init__(self, pattern_id: str, reason: str):
        super().__init__(f"Invalid pattern '{pattern_id}': {reason}")
        self.pattern_id = pattern_id
        self.reason = reason


class ManifestError(LoadError):
    """A manifest record is structurally invalid."""

    def __init__(self, domain: str, reason: str):
        super().__init__(f"Invalid manifest '{domain}': {reason}")
        self.domain = domain
        self.reason = reason


class UnknownDomainError(LoadError):
    """No manifest exists for the requested domain."""

    def __init__(self, domain: str, available: list[str] | None = None):
        available = sorted(available or [])
        hint = f" (available: {', '.join(available)})" if available else ""
        super().__init__(f"Unknown audit domain '{domain}'{hint}")
        self.domain = domain
        self.available = available


class DanglingReferenceError(LoadError):
    """A manifest references an id that does not exist."""

    def __init__(self, domain: str, reference: str, kind: str = "pattern"):
        super().__init__(f"Manifest '{domain}' references unknown {kind} '{reference}'")
        self.domain = domain
        self.reference = reference
        self.kind = kind


class ScanRootError(LoadError):
    """The scan root does not exist or is not a directory."""

    def __init__(self, root: str):
        super().__init__(f"Scan root not found or not a directory: {root}")
        self.root = root


# ---------------------------------------------------------------------------
# Recoverable (surfaced as diagnostics)
# ---------------------------------------------------------------------------


class RecoverableError(BulwarkError):
    """An error that degrades one unit of work without stopping the audit."""

    kind: DiagnosticKind

    def __init__(self, message: str, file: str | None = None, pattern_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.file = file
        self.pattern_id = pattern_id

    def to_diagnostic(self, domain: str | None = None) -> Diagnostic:
        return Diagnostic(
            kind=self.kind,
            message=self.message,
            file=self.file,
            pattern_id=self.pattern_id,
            domain=domain,
        )


class InvalidSignatureError(RecoverableError):
    """A detection signature failed to compile or was rejected as unsafe."""

    kind = DiagnosticKind.INVALID_SIGNATURE

    def __init__(self, pattern_id: str, signature: str, reason: str):
        super().__init__(
            f"Pattern '{pattern_id}' signature {signature!r} rejected: {reason}",
            pattern_id=pattern_id,
        )
        self.signature = signature
        self.reason = reason


class SkippedOversizeFile(RecoverableError):
    """A file exceeded the configured size ceiling and was not scanned."""

    kind = DiagnosticKind.OVERSIZE_FILE

    def __init__(self, file: str, size: int, limit: int):
        super().__init__(f"Skipped {file}: {size} bytes exceeds limit of {limit}", file=file)
        self.size = size
        self.limit = limit


class MatcherTimeoutError(RecoverableError):
    """A matcher exceeded its execution timeout; no determination was made."""

    kind = DiagnosticKind.MATCHER_TIMEOUT

    def __init__(self, file: str, pattern_id: str, timeout: float):
        super().__init__(
            f"Pattern '{pattern_id}' timed out after {timeout:g}s on {file}; no determination",
            file=file,
            pattern_id=pattern_id,
        )
        self.timeout = timeout


class FileReadError(RecoverableError):
    """A file could not be read (permissions, broken symlink, vanished)."""

    kind = DiagnosticKind.READ_ERROR

    def __init__(self, file: str, reason: str):
        super().__init__(f"Could not read {file}: {reason}", file=file)
        self.reason = reason
