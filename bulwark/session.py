"""Per-scan state passed explicitly through every stage.

There is no module-level "current scan": each ScanSession owns its rule set,
cancellation token and diagnostics, so several domains can be audited at once
without sharing anything mutable.
"""

import threading
from collections.abc import Callable
from dataclasses import dataclass, field

from bulwark.errors import RecoverableError
from bulwark.findings import Diagnostic
from bulwark.manifest_resolver import ResolvedRuleSet


class CancellationToken:
    """Cooperative cancellation signal shared by the workers of one audit."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)


class DiagnosticsSink:
    """Append-only, thread-safe collection of diagnostics."""

    def __init__(self):
        self._lock = threading.Lock()
        self._items: list[Diagnostic] = []

    def record(self, error: RecoverableError, domain: str | None = None) -> None:
        self.add(error.to_diagnostic(domain=domain))

    def add(self, diagnostic: Diagnostic) -> None:
        with self._lock:
            self._items.append(diagnostic)

    def extend(self, diagnostics) -> None:
        with self._lock:
            self._items.extend(diagnostics)

    def snapshot(self) -> list[Diagnostic]:
        with self._lock:
            return list(self._items)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


ProgressCallback = Callable[[int, str], None]


@dataclass
class ScanSession:
    """Everything one domain scan needs, owned for the duration of the scan."""

    domain: str
    rule_set: ResolvedRuleSet
    token: CancellationToken = field(default_factory=CancellationToken)
    diagnostics: DiagnosticsSink = field(default_factory=DiagnosticsSink)
    concurrency: int | None = None
    on_file_done: ProgressCallback | None = None

    def record(self, error: RecoverableError) -> None:
        self.diagnostics.record(error, domain=self.domain)
