"""
File system traversal: walk a project and collect web application source files.

Finds JavaScript and TypeScript sources (.js, .jsx, .mjs, .cjs, .ts, .tsx)
for analysis, skipping dependency, build, VCS, cache and coverage directories.
Test directories are collected; rules decide whether to analyse test files.

Typical usage:
    from pathlib import Path
    from webguard.traversal import find_source_files

    sources = find_source_files(Path("./my-next-app"))

    # Custom ignore set
    sources = find_source_files(Path("./app"), ignore_dirs={"node_modules", "legacy"})
"""

import logging
from pathlib import Path
from typing import Callable, Optional, Set

logger = logging.getLogger(__name__)

SOURCE_EXTENSIONS = frozenset({".js", ".jsx", ".mjs", ".cjs", ".ts", ".tsx"})

# Default directories to ignore during traversal
DEFAULT_IGNORE_DIRS: Set[str] = {
    # Dependency directories
    "node_modules",
    "bower_components",
    "vendor",
    # Build output
    "dist",
    "build",
    "out",
    ".next",
    ".nuxt",
    ".output",
    ".vercel",
    ".turbo",
    # Version control
    ".git",
    ".svn",
    ".hg",
    # IDE and editor directories
    ".vscode",
    ".idea",
    # Cache and coverage
    ".cache",
    ".parcel-cache",
    "coverage",
    ".nyc_output",
}


def is_source_file(path: Path) -> bool:
    """
    Check if a file is a JavaScript/TypeScript source file.

    Type declaration files (.d.ts) carry no runtime code and are skipped.

    Examples:
        >>> is_source_file(Path("app/page.tsx"))
        True
        >>> is_source_file(Path("types/global.d.ts"))
        False
        >>> is_source_file(Path("styles.css"))
        False
    """
    if path.name.endswith(".d.ts"):
        return False
    return path.suffix.lower() in SOURCE_EXTENSIONS


def should_ignore_directory(dir_path: Path, ignore_dirs: Set[str]) -> bool:
    """Check if a directory should be skipped (matched by name only, case-sensitive)."""
    return dir_path.name in ignore_dirs


def _scan_directory(directory: Path) -> list[Path]:
    """Entries of one directory; unreadable directories are logged and yield nothing."""
    try:
        return list(directory.iterdir())
    except PermissionError as e:
        logger.warning("Permission denied accessing directory %s: %s", directory, e)
    except OSError as e:
        logger.warning("Error accessing directory %s: %s", directory, e)
    return []


def find_source_files(
    root: Path,
    ignore_dirs: Optional[Set[str]] = None,
    follow_symlinks: bool = False,
    filter_fn: Optional[Callable[[Path], bool]] = None,
) -> list[Path]:
    """
    Collect web source files under root, depth-first with an explicit stack.

    Args:
        root: Project directory.
        ignore_dirs: Directory names to prune (DEFAULT_IGNORE_DIRS when None).
        follow_symlinks: Descend into and collect symlinked entries.
        filter_fn: Extra predicate a source path must satisfy.

    Returns:
        Matching file paths, sorted.

    Raises:
        FileNotFoundError: root does not exist.
        NotADirectoryError: root is a file.
    """
    ignored = DEFAULT_IGNORE_DIRS if ignore_dirs is None else ignore_dirs
    root = root.resolve()

    if not root.exists():
        logger.error("Root directory does not exist: %s", root)
        raise FileNotFoundError(f"Root directory does not exist: {root}")
    if not root.is_dir():
        logger.error("Root path is not a directory: %s", root)
        raise NotADirectoryError(f"Root path is not a directory: {root}")

    logger.info("Starting traversal from: %s", root)
    logger.debug("Traversal config: follow_symlinks=%s, ignore_dirs=%s", follow_symlinks, sorted(ignored))

    sources: list[Path] = []
    pending = [root]
    skipped_dirs = 0
    while pending:
        for entry in _scan_directory(pending.pop()):
            if entry.is_symlink() and not follow_symlinks:
                continue
            if entry.is_dir():
                if should_ignore_directory(entry, ignored):
                    skipped_dirs += 1
                else:
                    pending.append(entry)
            elif entry.is_file() and is_source_file(entry) and (filter_fn is None or filter_fn(entry)):
                sources.append(entry)

    sources.sort()
    logger.info(
        "Traversal complete: found %d source file(s) in %s (%d directories skipped)",
        len(sources),
        root,
        skipped_dirs,
    )
    return sources
