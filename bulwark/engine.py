"""Audit engine: resolve, scan, calibrate and aggregate one or more domains."""

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any

from bulwark.aggregator import aggregate
from bulwark.calibration import calibrate
from bulwark.config_runtime import DEFAULTS
from bulwark.errors import ScanRootError
from bulwark.findings import Report, ScanStats
from bulwark.knowledge_loader import KnowledgeBase
from bulwark.manifest_resolver import ManifestResolver
from bulwark.rule_compiler import RuleCompiler
from bulwark.scan_executor import ScanExecutor
from bulwark.session import CancellationToken, DiagnosticsSink, ProgressCallback, ScanSession
from bulwark.utils.logging import logger


class AuditEngine:
    """Coordinates one audit over a knowledge base.

    Each domain gets its own ScanSession; sessions share nothing mutable except
    the cancellation token, so cancelling the audit stops every domain.
    """

    def __init__(self, knowledge_base: KnowledgeBase, config: dict[str, Any] | None = None):
        self.kb = knowledge_base
        self.config = config or DEFAULTS
        self.compiler = RuleCompiler.from_config(self.config)
        self.executor = ScanExecutor.from_config(self.config)

    def build_resolver(self, context_flags=(), diagnostics: DiagnosticsSink | None = None) -> ManifestResolver:
        return ManifestResolver(
            self.kb.store,
            self.kb.manifests,
            self.kb.reference_docs,
            compiler=self.compiler,
            context_flags=frozenset(context_flags),
            known_flags=self.config["context"]["known_flags"],
            diagnostics=diagnostics,
        )

    def run(
        self,
        domains,
        root: Path | str,
        context_flags=(),
        token: CancellationToken | None = None,
        concurrency: int | None = None,
        on_file_done: ProgressCallback | None = None,
    ) -> Report:
        """Run a full audit and return the ordered report.

        Load-time problems (unknown domain, dangling reference, missing root)
        raise before any file is read. Everything after that degrades into
        diagnostics; cancellation yields a report marked incomplete.
        """
        domains = list(dict.fromkeys(domains))
        if not domains:
            raise ValueError("at least one domain is required")

        root_path = Path(root)
        if not root_path.is_dir():
            raise ScanRootError(str(root))

        token = token or CancellationToken()
        compile_diagnostics = DiagnosticsSink()
        resolver = self.build_resolver(context_flags, compile_diagnostics)

        # Resolve everything before the first worker starts; the cache is read-only afterwards
        sessions = [
            ScanSession(
                domain=domain,
                rule_set=resolver.resolve(domain),
                token=token,
                concurrency=concurrency,
                on_file_done=on_file_done,
            )
            for domain in domains
        ]

        findings = []
        stats = ScanStats()
        diagnostics = compile_diagnostics.snapshot()
        incomplete = False

        with ThreadPoolExecutor(max_workers=len(sessions)) as pool:
            futures = [(session, pool.submit(self.executor.scan, session, root_path)) for session in sessions]
            for session, future in futures:
                result = future.result()
                findings.extend(
                    calibrate(
                        result.findings,
                        session.rule_set.calibration_table,
                        session.rule_set.pattern_index,
                    )
                )
                stats = stats.merge(result.stats)
                diagnostics.extend(session.diagnostics.snapshot())
                incomplete = incomplete or result.incomplete

        if token.cancelled and not incomplete:
            logger.info("[ENGINE] Cancellation arrived after every file was dispatched")

        report = aggregate(findings, domains, diagnostics, stats=stats, incomplete=incomplete)
        logger.info(
            f"[ENGINE] {report.summary['visible']} visible, {report.summary['suppressed']} suppressed "
            f"findings across {', '.join(domains)}; {len(report.diagnostics)} diagnostics"
        )
        return report
