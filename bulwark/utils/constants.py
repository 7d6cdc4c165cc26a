"""Centralized constants for Bulwark.

Single source of truth for output locations, environment variable names
and the file-type vocabulary shared by the compiler and the scanner.
"""

from pathlib import Path

# ============================================================================
# OUTPUT DIRECTORIES
# ============================================================================

# Primary output directory, relative to the scanned root
OUTPUT_DIR_NAME = ".bulwark"
HISTORY_DIR_NAME = ".bulwark-history"

REPORT_FILE_NAME = "report.json"
CONFIG_FILE_NAME = "config.json"
ERROR_LOG_NAME = "error.log"

# Fallback used when a command fails before a scan root is known
BULWARK_DIR = Path("./") / OUTPUT_DIR_NAME
ERROR_LOG_FILE = BULWARK_DIR / ERROR_LOG_NAME

# Bundled sample knowledge base
BUNDLED_KB_DIR = Path(__file__).resolve().parent.parent / "knowledge"

# ============================================================================
# FILE PROCESSING
# ============================================================================

# Maximum file size to scan (default: 2MB)
DEFAULT_MAX_FILE_SIZE = 2 * 1024 * 1024

# Bytes inspected when deciding whether a file is binary
BINARY_SNIFF_BYTES = 8192

# Named extension classes usable in a signature's file_types
EXTENSION_CLASSES: dict[str, frozenset[str]] = {
    "javascript": frozenset({".js", ".jsx", ".mjs", ".cjs"}),
    "typescript": frozenset({".ts", ".tsx", ".mts", ".cts"}),
    "web": frozenset({".js", ".jsx", ".mjs", ".cjs", ".ts", ".tsx", ".vue", ".svelte", ".html"}),
    "python": frozenset({".py", ".pyi"}),
    "sql": frozenset({".sql"}),
    "yaml": frozenset({".yml", ".yaml"}),
    "json": frozenset({".json"}),
    "config": frozenset({".yml", ".yaml", ".json", ".toml", ".ini", ".conf", ".env"}),
    "shell": frozenset({".sh", ".bash", ".zsh"}),
    "docker": frozenset({"dockerfile", ".dockerfile"}),
    "solidity": frozenset({".sol"}),
    "rust": frozenset({".rs"}),
    "go": frozenset({".go"}),
    "java": frozenset({".java", ".kt"}),
}

# Comment syntax per extension family, used for in_comment detection
LINE_COMMENT_MARKERS: dict[str, tuple[str, ...]] = {
    "c_like": ("//",),
    "hash": ("#",),
    "sql": ("--",),
}

C_LIKE_EXTENSIONS = frozenset({
    ".js", ".jsx", ".mjs", ".cjs", ".ts", ".tsx", ".mts", ".cts", ".vue", ".svelte",
    ".sol", ".rs", ".go", ".java", ".kt", ".c", ".h", ".cpp", ".cs", ".swift", ".php",
})
HASH_COMMENT_EXTENSIONS = frozenset({
    ".py", ".pyi", ".sh", ".bash", ".zsh", ".yml", ".yaml", ".toml", ".rb", ".env",
    ".conf", ".ini", "dockerfile", ".dockerfile",
})
SQL_EXTENSIONS = frozenset({".sql"})

# Path segments that mark non-production code
PATH_HINT_SEGMENTS: dict[str, frozenset[str]] = {
    "test": frozenset({"test", "tests", "__tests__", "spec", "specs", "e2e"}),
    "fixture": frozenset({"fixture", "fixtures", "testdata"}),
    "mock": frozenset({"mock", "mocks", "__mocks__", "stub", "stubs"}),
    "example": frozenset({"example", "examples", "sample", "samples", "demo"}),
    "vendor": frozenset({"vendor", "third_party", "third-party"}),
    "generated": frozenset({"generated", "gen", "__generated__"}),
    "docs": frozenset({"doc", "docs"}),
}

# ============================================================================
# ENVIRONMENT VARIABLES
# ============================================================================

ENV_PREFIX = "BULWARK"
