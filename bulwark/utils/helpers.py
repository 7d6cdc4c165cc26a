"""Helper utility functions for Bulwark."""

import json
from pathlib import Path
from typing import Any

from bulwark.utils.logging import logger


def split_globs(values) -> list[str]:
    """Flatten repeated and comma-separated glob options into one list."""
    globs = []
    for value in values or ():
        for part in str(value).split(","):
            part = part.strip()
            if part:
                globs.append(part)
    return globs


def load_json_file(file_path: str | Path) -> dict[str, Any]:
    """
    Load and parse a JSON file.

    Raises:
        FileNotFoundError: If file doesn't exist
        json.JSONDecodeError: If file contains invalid JSON
        PermissionError: If file cannot be read
    """
    try:
        with open(file_path, encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        logger.error(f"JSON file not found: {file_path}")
        raise
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON in file {file_path}: {e}")
        raise
    except PermissionError:
        logger.error(f"Permission denied reading file: {file_path}")
        raise


def save_json_file(data: dict[str, Any], file_path: str | Path) -> None:
    """Save data as indented JSON, creating parent directories."""
    path = Path(file_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
        f.write("\n")
