"""Bulwark CLI - Main entry point and command registration hub."""
# ruff: noqa: E402 - Intentional lazy loading: commands imported after cli group definition

import click
from rich.table import Table

from bulwark import __version__
from bulwark.pipeline.ui import console


class VerboseGroup(click.Group):
    """Categorised help - generated from the registered commands."""

    def format_commands(self, ctx, formatter):
        """Override to suppress default command listing (we use categorized format in format_help)."""
        pass

    COMMAND_CATEGORIES = {
        "AUDIT": {
            "title": "AUDIT",
            "description": "Scan a project against one or more focus domains",
            "commands": ["scan", "report"],
            "command_meta": {
                "scan": {
                    "use_when": "Need findings for a domain (injection, secrets, ...)",
                },
                "report": {
                    "use_when": "Re-read the last report without rescanning",
                },
            },
        },
        "KNOWLEDGE_BASE": {
            "title": "KNOWLEDGE BASE",
            "description": "Inspect and check patterns, manifests and reference docs",
            "commands": ["domains", "patterns", "validate"],
            "command_meta": {
                "domains": {
                    "use_when": "Need the list of scannable domains",
                },
                "patterns": {
                    "use_when": "Need to see what a domain scan will run",
                },
                "validate": {
                    "run_when": "After editing the knowledge base",
                },
            },
        },
    }

    def format_help(self, ctx, formatter):
        """Generate Rich-styled categorized help."""
        super().format_help(ctx, formatter)

        registered = {
            name: cmd
            for name, cmd in self.commands.items()
            if not name.startswith("_") and not getattr(cmd, "hidden", False)
        }

        console.print()
        console.rule("[bold]COMMANDS[/bold]")

        for _category_id, category_data in self.COMMAND_CATEGORIES.items():
            console.print(f"\n[bold cyan]{category_data['title']}[/bold cyan]")
            console.print(f"[dim]{category_data['description']}[/dim]")

            table = Table(show_header=False, box=None, padding=(0, 2, 0, 0))
            table.add_column("Command", style="cmd", width=12)
            table.add_column("Description", style="white")
            table.add_column("Hint", style="dim", width=44)

            for cmd_name in category_data["commands"]:
                if cmd_name not in registered:
                    continue
                cmd = registered[cmd_name]

                first_line = (cmd.help or "").split("\n")[0].strip()
                period_idx = first_line.find(".")
                short_help = first_line[:period_idx] if period_idx > 0 else first_line
                if len(short_help) > 45:
                    short_help = short_help[:45].rsplit(" ", 1)[0] + "..."

                cmd_meta = category_data.get("command_meta", {}).get(cmd_name, {})
                hint = ""
                if "use_when" in cmd_meta:
                    hint = f"USE: {cmd_meta['use_when']}"
                elif "run_when" in cmd_meta:
                    hint = f"RUN: {cmd_meta['run_when']}"

                table.add_row(cmd_name, short_help, hint)

            console.print(table)

        console.print()
        console.rule()
        console.print("For detailed options: [cmd]bulwark <command> --help[/cmd]")


@click.group(cls=VerboseGroup)
@click.version_option(version=__version__, prog_name="bulwark")
@click.help_option("-h", "--help")
def cli():
    """Bulwark - Manifest-driven security pattern audits

    \b
    QUICK START:
      bulwark domains                       # What can be scanned
      bulwark scan --domain injection       # Audit the current directory
      bulwark report --severity high        # Re-read the last report

    \b
    For detailed options: bulwark <command> --help"""
    pass


from bulwark.commands.domains import domains
from bulwark.commands.patterns import patterns
from bulwark.commands.report import report
from bulwark.commands.scan import scan
from bulwark.commands.validate import validate

cli.add_command(scan)
cli.add_command(report)
cli.add_command(domains)
cli.add_command(patterns)
cli.add_command(validate)


def main():
    """Main entry point for console script."""
    cli()


if __name__ == "__main__":
    main()
