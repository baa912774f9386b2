"""Fixed classification sets and scan limits."""

from __future__ import annotations

BINARY_EXTS: frozenset[str] = frozenset(
    {
        ".png",
        ".jpg",
        ".jpeg",
        ".gif",
        ".bmp",
        ".tiff",
        ".ico",
        ".zip",
        ".rar",
        ".7z",
        ".tar",
        ".gz",
        ".pdf",
        ".exe",
        ".dll",
    }
)

NON_IMPORTANT_FILE_EXTS: frozenset[str] = BINARY_EXTS | {".log", ".lock", ".tmp", ".class"}

NON_IMPORTANT_DIRS: frozenset[str] = frozenset(
    {
        "node_modules",
        ".git",
        ".yarn",
        ".pnpm",
        ".cache",
        ".next",
        "dist",
        "build",
        "bin",
        "obj",
        "coverage",
    }
)

# Matched case-sensitively against the directory's own name.
HEAVY_DIR_NAMES: frozenset[str] = frozenset(
    {
        "node_modules",
        ".git",
        ".hg",
        ".svn",
        "dist",
        "build",
        "out",
        "coverage",
        "target",
        "bin",
        "obj",
        ".next",
        ".nuxt",
        ".svelte-kit",
        ".cache",
        ".gradle",
        "Pods",
        "Carthage",
        "DerivedData",
        "Library",
        "Packages",
        ".venv",
        "venv",
        "env",
        "__pycache__",
        ".mypy_cache",
        ".pytest_cache",
        ".dart_tool",
        ".idea",
        ".vscode",
        ".yarn",
        ".pnpm",
    }
)

MAX_FILES_SOFT = 50_000
STAT_CONCURRENCY = 64
COUNT_PROGRESS_EVERY = 500
CHARS_PER_TOKEN = 4

PROGRESS_THROTTLE_MS = 50
PROGRESS_EVERY_N_FILES = 25
