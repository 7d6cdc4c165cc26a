"""Show the resolved rule set a domain scan would run."""

import json

import click
from rich.table import Table

from bulwark.commands._context import build_engine
from bulwark.pipeline.ui import console, print_header, print_warning, severity_label
from bulwark.session import DiagnosticsSink
from bulwark.utils.error_handler import handle_exceptions
from bulwark.utils.helpers import split_globs


@click.command("patterns")
@click.option("--domain", required=True, help="Domain whose manifest to resolve")
@click.option("--context", "context_flags", multiple=True, help="Context flag (repeatable)")
@click.option("--path", "root", default=".", help="Project root (for .bulwark/config.json)")
@click.option("--kb", "kb_dir", default=None, help="Knowledge base directory (default: bundled)")
@click.option("--json", "as_json", is_flag=True, help="Print the resolved rule set as JSON")
@handle_exceptions
def patterns(domain, context_flags, root, kb_dir, as_json):
    """Show the ordered patterns a domain resolves to, with provenance.

    Core patterns come first, then cross-cutting patterns whose condition
    holds for the given --context flags, then AI pitfalls. Signatures that
    fail validation are listed as warnings and left out of the count.

    Examples:
      bulwark patterns --domain injection
      bulwark patterns --domain business-logic --context payments
      bulwark patterns --domain injection --json > rules.json"""
    engine = build_engine(root, kb_dir)
    diagnostics = DiagnosticsSink()
    resolver = engine.build_resolver(split_globs(context_flags), diagnostics)
    rule_set = resolver.resolve(domain)

    if as_json:
        click.echo(json.dumps(rule_set.fingerprint(), indent=2))
        return

    print_header(f"{domain.upper()} RULE SET")
    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2, 0, 0))
    table.add_column("#", justify="right", style="dim")
    table.add_column("PATTERN", style="cmd", no_wrap=True)
    table.add_column("SOURCE")
    table.add_column("SEVERITY")
    table.add_column("CATEGORY", style="dim")
    table.add_column("SIGNATURES", justify="right")
    table.add_column("CALIBRATION", justify="right")
    table.add_column("TITLE", overflow="fold")

    for position, (pattern_id, matchers) in enumerate(rule_set.patterns.items(), 1):
        pattern = rule_set.pattern_index[pattern_id]
        table.add_row(
            str(position),
            pattern_id,
            rule_set.sources[pattern_id],
            severity_label(pattern.severity.value),
            pattern.category.value,
            f"{len(matchers)}/{len(pattern.signatures)}",
            str(len(rule_set.calibration_table.get(pattern_id, ()))),
            pattern.title,
        )

    console.print(table)
    console.print(
        f"Reference docs: {', '.join(rule_set.reference_docs) or 'none'}",
        highlight=False,
    )
    for diagnostic in diagnostics.snapshot():
        print_warning(diagnostic.message)
