"""Shared setup for commands: runtime config plus the knowledge base it points at."""

from pathlib import Path
from typing import Any

from bulwark.config_runtime import load_runtime_config
from bulwark.engine import AuditEngine
from bulwark.knowledge_loader import KnowledgeBase, KnowledgeBaseLoader
from bulwark.utils.logging import logger


def load_config_and_kb(root: str, kb_dir: str | None = None) -> tuple[dict[str, Any], KnowledgeBase]:
    """Resolve config for ``root`` and load the selected knowledge base.

    ``--kb`` wins over ``paths.kb_dir`` (config file or BULWARK_PATHS_KB_DIR);
    with neither set the bundled knowledge base is used.
    """
    config = load_runtime_config(root)
    selected = kb_dir or config["paths"]["kb_dir"] or None
    if selected:
        config["paths"]["kb_dir"] = str(Path(selected))
        logger.debug(f"[KB] Using knowledge base at {selected}")
    return config, KnowledgeBaseLoader(selected).load()


def build_engine(root: str, kb_dir: str | None = None) -> AuditEngine:
    config, kb = load_config_and_kb(root, kb_dir)
    return AuditEngine(kb, config)
