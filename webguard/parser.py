# Tree-sitter setup: pick the JavaScript, TypeScript or TSX grammar by file extension and parse source.

import logging
from pathlib import Path, PurePosixPath
from typing import Optional

import tree_sitter
import tree_sitter_javascript
import tree_sitter_typescript
from tree_sitter import Language

logger = logging.getLogger(__name__)

_JAVASCRIPT = Language(tree_sitter_javascript.language())
_TYPESCRIPT = Language(tree_sitter_typescript.language_typescript())
_TSX = Language(tree_sitter_typescript.language_tsx())

# .js/.jsx share the JavaScript grammar, which accepts JSX
_LANGUAGES: dict[str, Language] = {
    ".js": _JAVASCRIPT,
    ".jsx": _JAVASCRIPT,
    ".mjs": _JAVASCRIPT,
    ".cjs": _JAVASCRIPT,
    ".ts": _TYPESCRIPT,
    ".mts": _TYPESCRIPT,
    ".cts": _TYPESCRIPT,
    ".tsx": _TSX,
}

SUPPORTED_EXTENSIONS = frozenset(_LANGUAGES)


def get_language(path: str | Path) -> Optional[Language]:
    """Return the grammar for a file path, or None if the extension is not parsed."""
    suffix = PurePosixPath(str(path).replace("\\", "/")).suffix.lower()
    return _LANGUAGES.get(suffix)


def create_parser(path: str | Path = "index.js") -> Optional[tree_sitter.Parser]:
    """Create a Parser configured for the grammar matching `path` (JavaScript by default)."""
    language = get_language(path)
    if language is None:
        return None
    return tree_sitter.Parser(language)


def parse_bytes(
    source: bytes,
    parser: Optional[tree_sitter.Parser] = None,
    path: str | Path = "index.js",
) -> Optional[tree_sitter.Tree]:
    """
    Parse JavaScript/TypeScript source bytes into a syntax tree.

    Args:
        source: UTF-8 encoded source code.
        parser: Optional parser instance; if None, one is created for `path`.
        path: Used to select the grammar when no parser is given.

    Returns:
        The parse tree (check tree.root_node.has_error for ERROR nodes), or
        None when `path` has no supported grammar.
    """
    if parser is None:
        parser = create_parser(path)
        if parser is None:
            logger.debug("No grammar for %s; skipping parse", path)
            return None
    tree = parser.parse(source)
    if tree.root_node.has_error:
        logger.warning("Parse of %s completed with errors: root=%s", path, tree.root_node.type)
    else:
        logger.debug("Parse of %s succeeded: root=%s", path, tree.root_node.type)
    return tree


def parse_source(text: str, path: str | Path = "index.js") -> Optional[tree_sitter.Tree]:
    """Parse source text, choosing the grammar from `path`."""
    return parse_bytes(text.encode("utf-8"), path=path)


def parse_file(path: Path) -> Optional[tree_sitter.Tree]:
    """
    Parse a source file into a syntax tree.

    Returns:
        The parse tree, or None if the file could not be read or has no grammar.
    """
    try:
        source = path.read_bytes()
    except OSError as e:
        logger.error("Failed to read file %s: %s", path, e)
        return None
    tree = parse_bytes(source, path=path)
    if tree is not None:
        logger.info("Parsed file %s: success=%s", path, not tree.root_node.has_error)
    return tree
