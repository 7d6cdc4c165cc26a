"""Check a knowledge base before it is used for scans."""

import sys

import click

from bulwark.commands._context import build_engine
from bulwark.errors import InvalidSignatureError, LoadError
from bulwark.pipeline.ui import console, print_error, print_header, print_success, print_warning
from bulwark.utils.error_handler import handle_exceptions
from bulwark.utils.exit_codes import ExitCodes


@click.command("validate")
@click.option("--path", "root", default=".", help="Project root (for .bulwark/config.json)")
@click.option("--kb", "kb_dir", default=None, help="Knowledge base directory (default: bundled)")
@handle_exceptions
def validate(root, kb_dir):
    """Strict-compile every signature and resolve every manifest.

    A scan tolerates an invalid signature (it is dropped with a diagnostic);
    validate reports the first invalid signature of each pattern. Every
    manifest is resolved with all known context flags enabled so
    conditional cross-cutting references are checked too.

    Exit codes:
      0 - Knowledge base is clean
      2 - At least one signature or manifest is invalid
      3 - Knowledge base could not be loaded at all"""
    engine = build_engine(root, kb_dir)
    kb = engine.kb
    problems: list[str] = []

    print_header("VALIDATE KNOWLEDGE BASE")
    console.print(f"Knowledge base: [path]{kb.root}[/path]", highlight=False)

    signature_count = 0
    for pattern_id in sorted(kb.store):
        pattern = kb.store[pattern_id]
        signature_count += len(pattern.signatures)
        try:
            engine.compiler.compile_strict(pattern)
        except InvalidSignatureError as e:
            problems.append(str(e))

    try:
        resolver = engine.build_resolver(engine.config["context"]["known_flags"])
        for domain in resolver.known_domains:
            resolver.resolve(domain)
    except LoadError as e:
        problems.append(f"{type(e).__name__}: {e}")

    for owner, missing in sorted(kb.store.dangling_related().items()):
        print_warning(f"{owner} lists unknown related patterns: {', '.join(missing)}")

    for problem in problems:
        print_error(problem)

    summary = f"{len(kb.store)} patterns, {signature_count} signatures, {len(kb.domains)} domains"
    if problems:
        console.print(f"\n{len(problems)} problem(s) in {summary}", highlight=False)
        sys.exit(ExitCodes.VALIDATION_FAILED)
    print_success(summary)
