"""Runtime configuration for Bulwark - centralized configuration management."""

import copy
import json
import os
from pathlib import Path
from typing import Any

from bulwark.utils.constants import (
    CONFIG_FILE_NAME,
    DEFAULT_MAX_FILE_SIZE,
    ENV_PREFIX,
    HISTORY_DIR_NAME,
    OUTPUT_DIR_NAME,
)
from bulwark.utils.logging import logger

DEFAULTS = {
    "paths": {
        # Empty string selects the bundled sample knowledge base
        "kb_dir": "",
        "output_dir": OUTPUT_DIR_NAME,
        "history_dir": HISTORY_DIR_NAME,
    },
    "limits": {
        "max_file_size": DEFAULT_MAX_FILE_SIZE,
        # 0 means one worker per available core
        "concurrency": 0,
        "max_signature_length": 2000,
        "max_bounded_repeat": 1000,
        "max_match_chars": 160,
        "max_matches_per_file": 50,
    },
    "timeouts": {
        "matcher_timeout": 2.0,
    },
    "report": {
        "max_rows": 50,
        "snippet_context_lines": 2,
        "max_snippet_chars": 800,
    },
    "scan": {
        "ignore": [
            ".git/**",
            ".hg/**",
            ".svn/**",
            "node_modules/**",
            "bower_components/**",
            "dist/**",
            "build/**",
            "out/**",
            "target/**",
            ".venv/**",
            "venv/**",
            "__pycache__/**",
            ".pytest_cache/**",
            ".mypy_cache/**",
            ".tox/**",
            ".next/**",
            ".nuxt/**",
            "coverage/**",
            f"{OUTPUT_DIR_NAME}/**",
            f"{HISTORY_DIR_NAME}/**",
            "*.min.js",
            "*.map",
            "*.lock",
            "package-lock.json",
        ],
    },
    "context": {
        # Closed vocabulary for cross-cutting manifest conditions
        "known_flags": [
            "blockchain",
            "web-frontend",
            "api-server",
            "database",
            "auth",
            "payments",
            "infrastructure",
            "automation",
            "file-upload",
            "llm-integration",
            "websocket",
        ],
    },
}


def _type_matches(default: Any, value: Any) -> bool:
    if isinstance(default, bool):
        return isinstance(value, bool)
    if isinstance(default, float):
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if isinstance(default, int):
        return isinstance(value, int) and not isinstance(value, bool)
    return isinstance(value, type(default))


def load_runtime_config(root: str = ".") -> dict[str, Any]:
    """
    Load runtime configuration from .bulwark/config.json and environment variables.

    Config priority (highest to lowest):
    1. Environment variables (BULWARK_<SECTION>_<KEY>)
    2. <root>/.bulwark/config.json
    3. Built-in defaults

    CLI flags are applied on top of the returned dict by the commands.

    Args:
        root: Root directory to look for config file

    Returns:
        Configuration dictionary with merged values
    """
    cfg = copy.deepcopy(DEFAULTS)

    path = Path(root) / OUTPUT_DIR_NAME / CONFIG_FILE_NAME
    try:
        if path.exists():
            with open(path, encoding="utf-8") as f:
                user = json.load(f)

            if isinstance(user, dict):
                for section in cfg:
                    if section in user and isinstance(user[section], dict):
                        for key, value in user[section].items():
                            if key in cfg[section] and _type_matches(cfg[section][key], value):
                                cfg[section][key] = value
                            else:
                                logger.warning(f"Ignoring config key {section}.{key} in {path}")
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(f"Could not load config file from {path}: {e}")
        logger.info("Continuing with default configuration")

    for section in cfg:
        for key in cfg[section]:
            env_var = f"{ENV_PREFIX}_{section.upper()}_{key.upper()}"
            if env_var in os.environ:
                value = os.environ[env_var]
                try:
                    default_value = cfg[section][key]
                    if isinstance(default_value, bool):
                        cfg[section][key] = value.strip().lower() in ("1", "true", "yes")
                    elif isinstance(default_value, int):
                        cfg[section][key] = int(value)
                    elif isinstance(default_value, float):
                        cfg[section][key] = float(value)
                    elif isinstance(default_value, list):
                        cfg[section][key] = [v.strip() for v in value.split(",") if v.strip()]
                    else:
                        cfg[section][key] = value
                except (ValueError, AttributeError) as e:
                    logger.warning(f"Invalid value for environment variable {env_var}: '{value}' - {e}")
                    logger.info(f"Using default value: {cfg[section][key]}")

    return cfg
