"""Centralized exit codes for the Bulwark CLI."""


class ExitCodes:
    """Standard exit codes for Bulwark CLI commands.

    Findings never change the exit code on their own; gating on severity is
    left to whatever wraps the scan.
    """

    SUCCESS = 0

    VALIDATION_FAILED = 2

    INFRASTRUCTURE_FAILURE = 3
