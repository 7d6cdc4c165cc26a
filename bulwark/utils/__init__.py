"""Bulwark utilities package.

error_handler is imported directly by commands; it depends on bulwark.errors,
which itself depends on this package.
"""

from .constants import (
    BULWARK_DIR,
    BUNDLED_KB_DIR,
    ERROR_LOG_FILE,
    HISTORY_DIR_NAME,
    OUTPUT_DIR_NAME,
)
from .exit_codes import ExitCodes
from .finding_priority import PRIORITY_ORDER, Severity, normalize_severity

__all__ = [
    "BULWARK_DIR",
    "BUNDLED_KB_DIR",
    "ERROR_LOG_FILE",
    "HISTORY_DIR_NAME",
    "OUTPUT_DIR_NAME",
    "ExitCodes",
    "PRIORITY_ORDER",
    "Severity",
    "normalize_severity",
]
