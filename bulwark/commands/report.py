"""Display the last scan report without rescanning."""

import click

from bulwark.config_runtime import load_runtime_config
from bulwark.pipeline.ui import console, print_error, print_header, render_findings_table
from bulwark.report_store import ReportStore
from bulwark.utils.error_handler import handle_exceptions
from bulwark.utils.finding_priority import normalize_severity

SEVERITY_CHOICES = ["low", "medium", "high", "critical"]


@click.command("report")
@click.option("--path", "root", default=".", help="Project root the report was written under")
@click.option("--previous", is_flag=True, help="Show the most recent archived report instead")
@click.option("--severity", type=click.Choice(SEVERITY_CHOICES), default=None,
              help="Only findings at or above this severity")
@click.option("--domain", default=None, help="Only findings attributed to this domain")
@click.option("--include-suppressed", is_flag=True, help="Also list suppressed findings")
@click.option("--max-rows", type=int, default=None, help="Maximum rows to display in table")
@handle_exceptions
def report(root, previous, severity, domain, include_suppressed, max_rows):
    """Show the current (or previous) report, filtered.

    Examples:
      bulwark report
      bulwark report --severity high
      bulwark report --domain secrets --include-suppressed
      bulwark report --previous"""
    config = load_runtime_config(root)
    store = ReportStore(root, config["paths"]["output_dir"], config["paths"]["history_dir"])
    data = store.load(previous=previous)
    if data is None:
        which = "archived" if previous else "current"
        print_error(f"No {which} report under {root}; run 'bulwark scan' first")
        raise click.ClickException("report not found")

    findings = filter_findings(data["findings"], severity, domain)
    rows = max_rows if max_rows is not None else config["report"]["max_rows"]

    label = "PREVIOUS REPORT" if previous else "REPORT"
    print_header(f"{label} ({', '.join(data['domains'])})")
    console.print(
        f"Generated {data.get('generated_at', '?')} by bulwark {data.get('tool_version', '?')}",
        style="dim",
        highlight=False,
    )
    if data.get("incomplete"):
        console.print("[warning]Scan was cancelled; results are partial[/warning]")

    console.print(render_findings_table(findings, max_rows=rows, show_suppressed=include_suppressed))
    shown = [f for f in findings if include_suppressed or not f["suppressed"]]
    console.print(f"{len(shown)} findings shown", highlight=False)


def filter_findings(findings: list[dict], severity: str | None = None, domain: str | None = None) -> list[dict]:
    """Filter report finding dicts by minimum severity and domain."""
    minimum = normalize_severity(severity).rank if severity else 0
    return [
        f for f in findings
        if normalize_severity(f["severity"]).rank >= minimum
        and (domain is None or domain in f["domains"])
    ]
