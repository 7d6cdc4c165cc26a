"""Centralized error handler for Bulwark commands."""

import traceback
from collections.abc import Callable
from datetime import datetime
from functools import wraps
from typing import Any

import click

from bulwark.errors import LoadError
from bulwark.utils.logging import logger

from .constants import BULWARK_DIR, ERROR_LOG_FILE
from .exit_codes import ExitCodes


class InfrastructureFailure(click.ClickException):
    """Click exception carrying the infrastructure-failure exit code."""

    exit_code = ExitCodes.INFRASTRUCTURE_FAILURE


def handle_exceptions(func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator that turns engine failures into a logged, non-zero exit."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        """Inner wrapper that implements the try-except logic."""
        try:
            return func(*args, **kwargs)
        except (click.ClickException, click.exceptions.Exit, click.Abort):
            raise
        except Exception as e:
            error_type = type(e).__name__
            error_msg = str(e)

            if isinstance(e, LoadError):
                logger.error("Command '{cmd}' failed: {err}", cmd=func.__name__, err=error_msg)
                raise InfrastructureFailure(f"{error_type}: {error_msg}") from e

            logger.opt(exception=True).error(
                "Command '{cmd}' failed: {err}",
                cmd=func.__name__,
                err=error_msg,
            )

            BULWARK_DIR.mkdir(parents=True, exist_ok=True)
            with open(ERROR_LOG_FILE, "a", encoding="utf-8") as f:
                f.write("\n" + "=" * 80 + "\n")
                f.write(f"[{datetime.now().isoformat()}] Error in command: {func.__name__}\n")
                f.write("=" * 80 + "\n")
                f.write(f"{error_type}: {error_msg}\n\n")
                f.write(traceback.format_exc())
                f.write("=" * 80 + "\n\n")

            raise InfrastructureFailure(
                f"{error_type}: {error_msg}\n\nFull traceback logged to: {ERROR_LOG_FILE}"
            ) from e

    return wrapper
