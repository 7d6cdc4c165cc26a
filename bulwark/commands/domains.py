"""List the focus domains a knowledge base can audit."""

import click
from rich.table import Table

from bulwark.commands._context import load_config_and_kb
from bulwark.pipeline.ui import console, print_header
from bulwark.utils.error_handler import handle_exceptions


@click.command("domains")
@click.option("--path", "root", default=".", help="Project root (for .bulwark/config.json)")
@click.option("--kb", "kb_dir", default=None, help="Knowledge base directory (default: bundled)")
@handle_exceptions
def domains(root, kb_dir):
    """List knowledge-base domains and what each manifest loads.

    Counts are pattern references per manifest section; cross-cutting
    entries show the context flag that enables them ("always" when
    unconditional)."""
    _config, kb = load_config_and_kb(root, kb_dir)

    print_header(f"DOMAINS ({len(kb.domains)})")
    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2, 0, 0))
    table.add_column("DOMAIN", style="cmd")
    table.add_column("CORE", justify="right")
    table.add_column("CROSS-CUTTING")
    table.add_column("AI PITFALLS", justify="right")
    table.add_column("REFERENCES", style="dim")

    for name in kb.domains:
        manifest = kb.manifests[name]
        cross = ", ".join(
            f"{ref.domain}:{len(ref.pattern_ids)} ({ref.condition or 'always'})"
            for ref in manifest.cross_cutting
        )
        table.add_row(
            name,
            str(len(manifest.core_pattern_ids)),
            cross or "-",
            str(len(manifest.ai_pitfall_ids)),
            ", ".join(manifest.core_reference_docs) or "-",
        )

    console.print(table)
    for name in kb.domains:
        description = kb.manifests[name].description
        if description:
            console.print(f"[cmd]{name}[/cmd]: {description}", highlight=False)
