"""Indexability predicate for repository paths.

The same predicate gates both charging (file count) and indexing, so it must
be pure and total: any string maps to a bool, and the same string always maps
to the same bool.

Exclusion tiers:
- EXCLUDED_DIRS: dependency caches and build output, matched on directory
  segments (``src/build/x.ts`` is excluded, ``src/rebuild.ts`` is not)
- EXCLUDED_FILENAMES: lockfiles and VCS/editor metadata, exact basename match
- EXCLUDED_EXTENSIONS: binary, media and archive suffixes
- Environment files (``.env``, ``.env.local``...) except documented templates
- Minified assets and source maps
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

# =============================================================================
# Directories
# =============================================================================

EXCLUDED_DIRS: frozenset[str] = frozenset(
    (
        # VCS internals
        ".git",
        ".svn",
        ".hg",
        # -------------------------------------------------------------------------
        # JavaScript/Node.js ecosystem
        # -------------------------------------------------------------------------
        "node_modules",
        "bower_components",
        ".npm",
        ".yarn",
        ".pnpm-store",
        ".next",  # Next.js build
        ".nuxt",  # Nuxt.js build
        ".svelte-kit",
        ".turbo",  # Turborepo cache
        ".parcel-cache",
        ".vercel",
        ".netlify",
        # -------------------------------------------------------------------------
        # Python ecosystem
        # -------------------------------------------------------------------------
        "__pycache__",
        ".venv",
        "venv",
        ".tox",
        ".nox",
        ".eggs",
        "site-packages",
        ".pytest_cache",
        ".mypy_cache",
        ".ruff_cache",
        # -------------------------------------------------------------------------
        # JVM / Rust / Elixir
        # -------------------------------------------------------------------------
        ".gradle",
        "target",  # Cargo / Maven build output
        "_build",  # Mix build output
        # -------------------------------------------------------------------------
        # Generic build/output directories
        # -------------------------------------------------------------------------
        "dist",
        "build",
        "out",
        "coverage",
        ".nyc_output",
        ".cache",
    )
)

# =============================================================================
# Files
# =============================================================================

EXCLUDED_FILENAMES: frozenset[str] = frozenset(
    (
        # Lock files (large, auto-generated)
        "package-lock.json",
        "yarn.lock",
        "pnpm-lock.yaml",
        "bun.lockb",
        "composer.lock",
        "gemfile.lock",
        "poetry.lock",
        "pipfile.lock",
        "cargo.lock",
        "uv.lock",
        "pdm.lock",
        # Metadata
        ".gitignore",
        ".ds_store",
        "thumbs.db",
    )
)

ENV_TEMPLATE_SUFFIXES: frozenset[str] = frozenset(("example", "sample", "template"))

MINIFIED_SUFFIXES: tuple[str, ...] = (".min.js", ".min.css", ".map")

EXCLUDED_EXTENSIONS: frozenset[str] = frozenset(
    (
        # Images
        ".png",
        ".jpg",
        ".jpeg",
        ".gif",
        ".svg",
        ".ico",
        ".webp",
        ".bmp",
        ".tiff",
        # Fonts
        ".ttf",
        ".otf",
        ".woff",
        ".woff2",
        ".eot",
        # Audio/video
        ".mp3",
        ".mp4",
        ".wav",
        ".ogg",
        ".webm",
        ".avi",
        ".mov",
        # Documents
        ".pdf",
        ".doc",
        ".docx",
        ".xls",
        ".xlsx",
        ".ppt",
        ".pptx",
        # Archives
        ".zip",
        ".tar",
        ".gz",
        ".tgz",
        ".bz2",
        ".7z",
        ".rar",
        ".jar",
        ".war",
        # Native / compiled
        ".exe",
        ".bin",
        ".dll",
        ".so",
        ".dylib",
        ".a",
        ".o",
        ".class",
        ".pyc",
        ".wasm",
        # Databases
        ".sqlite",
        ".sqlite3",
        ".db",
    )
)


def _normalize(path: str) -> str:
    normalized = path.strip().replace("\\", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized.lstrip("/")


def _is_env_file(basename: str) -> bool:
    if basename == ".env":
        return True
    if not basename.startswith(".env."):
        return False
    return basename.rsplit(".", 1)[-1] not in ENV_TEMPLATE_SUFFIXES


@dataclass(frozen=True)
class FileFilter:
    """Immutable indexability predicate.

    Extra exclusions extend the defaults; they never re-include anything.
    """

    extra_extensions: frozenset[str] = field(default_factory=frozenset)
    extra_dirs: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def with_extras(
        cls, extensions: Iterable[str] = (), dirs: Iterable[str] = ()
    ) -> FileFilter:
        return cls(
            extra_extensions=frozenset(
                (e if e.startswith(".") else f".{e}").lower() for e in extensions
            ),
            extra_dirs=frozenset(d.strip("/").lower() for d in dirs),
        )

    def should_index(self, path: str) -> bool:
        if not isinstance(path, str):
            return False
        normalized = _normalize(path)
        if not normalized or normalized.endswith("/"):
            return False

        lowered = normalized.lower()
        *dirs, basename = lowered.split("/")
        if not basename:
            return False

        excluded_dirs = EXCLUDED_DIRS | self.extra_dirs
        if any(segment in excluded_dirs for segment in dirs):
            return False

        if basename in EXCLUDED_FILENAMES or _is_env_file(basename):
            return False

        if basename.endswith(MINIFIED_SUFFIXES):
            return False

        excluded_extensions = EXCLUDED_EXTENSIONS | self.extra_extensions
        return not any(basename.endswith(ext) for ext in excluded_extensions)

    def filter_paths(self, paths: Iterable[str]) -> list[str]:
        """Keep indexable paths, preserving order."""
        return [p for p in paths if self.should_index(p)]


DEFAULT_FILTER = FileFilter()


def should_index(path: str) -> bool:
    """Decide whether ``path`` is eligible for charging and indexing."""
    return DEFAULT_FILTER.should_index(path)


__all__ = [
    "DEFAULT_FILTER",
    "EXCLUDED_DIRS",
    "EXCLUDED_EXTENSIONS",
    "EXCLUDED_FILENAMES",
    "FileFilter",
    "should_index",
]
