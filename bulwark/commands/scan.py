"""Audit a project tree against one or more focus domains."""

import signal
import threading
from pathlib import Path

import click

from bulwark.aggregator import highest_severity
from bulwark.commands._context import load_config_and_kb
from bulwark.engine import AuditEngine
from bulwark.findings import Report
from bulwark.pipeline.ui import (
    console,
    print_header,
    print_status_panel,
    print_warning,
    render_findings_table,
)
from bulwark.report_store import ReportStore
from bulwark.session import CancellationToken
from bulwark.utils.error_handler import handle_exceptions
from bulwark.utils.helpers import split_globs
from bulwark.utils.logging import configure_file_logging, logger


@click.command("scan")
@click.option("--domain", "domains", multiple=True, required=True,
              help="Focus domain to audit (repeatable, or comma-separated)")
@click.option("--path", "root", default=".", help="Root directory to scan")
@click.option("--concurrency", type=int, default=None, help="Worker threads per domain (default: cores)")
@click.option("--ignore", multiple=True, help="Extra ignore globs, comma-separated (repeatable)")
@click.option("--max-file-size", type=int, default=None, help="Skip files larger than this many bytes")
@click.option("--context", "context_flags", multiple=True,
              help="Context flag enabling conditional cross-cutting patterns (repeatable)")
@click.option("--kb", "kb_dir", default=None, help="Knowledge base directory (default: bundled)")
@click.option("--output-json", default=None, help="Write the report here instead of .bulwark/report.json")
@click.option("--max-rows", type=int, default=None, help="Maximum rows to display in table")
@click.option("--print-stats", is_flag=True, help="Print summary statistics")
@click.option("--show-suppressed", is_flag=True, help="Include suppressed findings in the table")
@handle_exceptions
def scan(domains, root, concurrency, ignore, max_file_size, context_flags, kb_dir,
         output_json, max_rows, print_stats, show_suppressed):
    """Scan a directory for the patterns a domain manifest selects.

    Resolves each domain's manifest (core patterns, cross-cutting patterns
    whose context condition holds, AI pitfalls) into compiled matchers, runs
    them over every in-scope file, applies the manifest's calibration and
    false-positive reference docs, and writes one ordered report.

    Examples:
      bulwark scan --domain injection
      bulwark scan --domain injection,secrets --path ./api
      bulwark scan --domain business-logic --context payments
      bulwark scan --domain injection --ignore "legacy/**,*.spec.ts"

    Output:
      .bulwark/report.json                      # Current report
      .bulwark-history/<timestamp>/report.json  # Previous reports

    Exit codes:
      0 - Scan completed (with or without findings, or cancelled by Ctrl+C)
      3 - Knowledge base, manifest or path problem; nothing was scanned

    Ctrl+C stops dispatching files; in-flight files finish and the partial
    report is written with "incomplete": true."""
    config, kb = load_config_and_kb(root, kb_dir)

    extra_ignore = split_globs(ignore)
    if extra_ignore:
        config["scan"]["ignore"] = list(config["scan"]["ignore"]) + extra_ignore
    if max_file_size is not None:
        config["limits"]["max_file_size"] = max_file_size
    if concurrency is not None:
        config["limits"]["concurrency"] = concurrency
    rows = max_rows if max_rows is not None else config["report"]["max_rows"]

    engine = AuditEngine(kb, config)
    token = CancellationToken()
    domain_list = split_globs(domains)
    context_list = split_globs(context_flags)
    unknown = sorted(set(context_list) - set(config["context"]["known_flags"]))
    if unknown:
        raise click.BadParameter(
            f"unknown context flag(s) {', '.join(unknown)}; known: {', '.join(config['context']['known_flags'])}",
            param_hint="--context",
        )

    root_path = Path(root).resolve()
    log_handler = None
    if root_path.is_dir():
        log_handler = configure_file_logging(root_path / config["paths"]["output_dir"])
    try:
        report = _run_with_interrupt(engine, token, domain_list, root_path, context_list, concurrency)
    finally:
        if log_handler is not None:
            logger.remove(log_handler)

    store = ReportStore(root_path, config["paths"]["output_dir"], config["paths"]["history_dir"])
    written = store.write(report, output_json)

    print_header("AUDIT RESULTS")
    data = report.to_dict()
    console.print(render_findings_table(data["findings"], max_rows=rows, show_suppressed=show_suppressed))
    hidden = len(report.findings if show_suppressed else report.visible_findings) - rows
    if hidden > 0:
        console.print(f"[dim]... {hidden} more in {written}[/dim]", highlight=False)

    if report.diagnostics:
        print_warning(f"{len(report.diagnostics)} diagnostics recorded (see 'diagnostics' in the report)")

    _print_status(report)
    console.print(f"Report saved to [path]{written}[/path]", highlight=False)

    if print_stats:
        _print_stats(report)


def _run_with_interrupt(engine, token, domains, root_path, context_flags, concurrency) -> Report:
    """Run the engine with SIGINT mapped to cooperative cancellation."""
    done = {"files": 0}
    lock = threading.Lock()

    with console.status("[info]Scanning...[/info]") as status:

        def on_file_done(_count: int, rel: str) -> None:
            with lock:
                done["files"] += 1
                status.update(f"[info]Scanning...[/info] {done['files']} files ({rel})")

        def on_sigint(signum, frame):
            if token.cancelled:
                raise KeyboardInterrupt
            logger.warning("[SCAN] Interrupt received, finishing in-flight files")
            token.cancel()

        install = threading.current_thread() is threading.main_thread()
        previous = signal.signal(signal.SIGINT, on_sigint) if install else None
        try:
            return engine.run(
                domains,
                root_path,
                context_flags=context_flags,
                token=token,
                concurrency=concurrency,
                on_file_done=on_file_done,
            )
        finally:
            if install:
                signal.signal(signal.SIGINT, previous)


def _print_status(report: Report) -> None:
    summary = report.summary
    detail = (
        f"{summary['visible']} findings in {summary['files_affected']} files, "
        f"{summary['suppressed']} suppressed"
    )
    if report.incomplete:
        print_status_panel(
            "INCOMPLETE",
            f"Scan cancelled; {report.stats.files_not_dispatched} files were not scanned",
            detail,
            level="incomplete",
        )
        return

    top = highest_severity(report)
    if top is None:
        print_status_panel("CLEAN", "No findings for " + ", ".join(report.domains), detail, level="success")
    else:
        print_status_panel(top.value.upper(), f"Highest severity: {top.value}", detail, level=top.value)


def _print_stats(report: Report) -> None:
    summary = report.summary
    console.print("\n--- Summary Statistics ---")
    console.print(f"Total findings: {summary['total']}", highlight=False)
    console.print(f"Visible findings: {summary['visible']}", highlight=False)
    console.print(f"Suppressed findings: {summary['suppressed']}", highlight=False)
    console.print(f"Files affected: {summary['files_affected']}", highlight=False)

    if summary["by_severity"]:
        console.print("\nBy severity:")
        for severity, count in summary["by_severity"].items():
            console.print(f"  {severity}: {count}", highlight=False)

    if summary["by_domain"]:
        console.print("\nBy domain:")
        for domain, counts in summary["by_domain"].items():
            parts = ", ".join(f"{sev}={n}" for sev, n in counts.items() if n)
            console.print(f"  {domain}: {parts or 'none'}", highlight=False)

    console.print("\nFiles:")
    for key, value in report.stats.to_dict().items():
        console.print(f"  {key}: {value}", highlight=False)

    if report.diagnostics:
        by_kind: dict[str, int] = {}
        for diagnostic in report.diagnostics:
            by_kind[diagnostic.kind.value] = by_kind.get(diagnostic.kind.value, 0) + 1
        console.print("\nDiagnostics:")
        for kind, count in sorted(by_kind.items()):
            console.print(f"  {kind}: {count}", highlight=False)
