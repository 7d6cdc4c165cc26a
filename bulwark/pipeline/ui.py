"""Console output shared by every bulwark command.

Commands print through the one themed ``console`` here, so severities read
the same in ``scan``, ``report`` and ``patterns``:

    from bulwark.pipeline.ui import console, severity_label

    console.print(severity_label("high"), "OC-051")
"""

import sys

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

from bulwark.utils.finding_priority import Severity

SEVERITY_STYLES = {
    Severity.CRITICAL: "bold white on red",
    Severity.HIGH: "bold red",
    Severity.MEDIUM: "bold yellow",
    Severity.LOW: "cyan",
}

BULWARK_THEME = Theme({
    "info": "bold cyan",
    "warning": "bold yellow",
    "error": "bold red",
    "success": "bold green",
    "incomplete": "bold magenta",
    "cmd": "bold magenta",
    "path": "cyan",
    "suppressed": "dim",
    **{severity.value: style for severity, style in SEVERITY_STYLES.items()},
})

console = Console(
    theme=BULWARK_THEME,
    force_terminal=sys.stdout.isatty()
)


def print_header(title: str) -> None:
    console.rule(f"[bold]{title}[/bold]")


def print_error(msg: str) -> None:
    console.print(f"[error]ERROR:[/error] {msg}", highlight=False)


def print_warning(msg: str) -> None:
    console.print(f"[warning]WARNING:[/warning] {msg}", highlight=False)


def print_success(msg: str) -> None:
    console.print(f"[success]OK:[/success] {msg}", highlight=False)


def severity_label(severity: str, suppressed: bool = False) -> Text:
    """Severity cell text; suppressed findings show their severity dimmed in parentheses."""
    if suppressed:
        return Text(f"({severity})", style="suppressed")
    return Text(severity.upper(), style=severity)


def print_status_panel(status: str, message: str, detail: str, level: str = "info") -> None:
    """Close a scan with a boxed verdict.

    ``level`` is a theme style name (a severity, "success", "incomplete" or
    "info"); the status is drawn in the border title in that style.
    """
    style = level if level in BULWARK_THEME.styles else "info"
    body = Text.assemble((message, style), "\n", (detail, "dim"))
    console.print(
        Panel(
            body,
            title=Text(f" {status} ", style=style),
            title_align="left",
            border_style=style,
            expand=False,
        )
    )


def render_findings_table(findings: list[dict], max_rows: int = 50, show_suppressed: bool = False) -> Table:
    """Build a table from finding dicts (Report.to_dict()["findings"])."""
    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2, 0, 0))
    table.add_column("SEVERITY", width=10)
    table.add_column("PATTERN", style="cmd", no_wrap=True)
    table.add_column("FILE", style="path", overflow="fold")
    table.add_column("LINE", justify="right")
    table.add_column("NOTE", style="dim", overflow="fold")

    rows = [f for f in findings if show_suppressed or not f["suppressed"]]
    for finding in rows[:max_rows]:
        line_range = finding["line_range"]
        line = str(line_range["start"])
        if line_range["end"] != line_range["start"]:
            line += f"-{line_range['end']}"
        if finding["suppressed"]:
            note = f"suppressed: {finding['suppression_reason']}"
        else:
            note = finding["title"]
            if finding["cross_referenced_with"]:
                note += f" [+{len(finding['cross_referenced_with'])} at same location]"
        table.add_row(
            severity_label(finding["severity"], finding["suppressed"]),
            finding["pattern_id"],
            finding["file"],
            line,
            note,
        )

    return table
