"""Console presentation layer."""
from .ui import (
    console,
    print_error,
    print_header,
    print_status_panel,
    print_success,
    print_warning,
    render_findings_table,
    severity_label,
)

__all__ = [
    "console", "print_header", "print_error", "print_warning", "print_success",
    "print_status_panel", "render_findings_table", "severity_label",
]
