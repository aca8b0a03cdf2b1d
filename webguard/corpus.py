# Corpus of source files handed to the rules: path, text, optional syntax tree, plus project metadata.
# Loading helpers read a project directory, parse each file and discover API routes and dependencies.

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Iterable, Optional

from tree_sitter import Node as TSNode
from tree_sitter import Tree

from webguard.parser import parse_bytes
from webguard.traversal import DEFAULT_IGNORE_DIRS, find_source_files

logger = logging.getLogger(__name__)


def _count_nodes(root: TSNode) -> int:
    count = 0
    stack = [root]
    while stack:
        node = stack.pop()
        count += 1
        stack.extend(node.children)
    return count


class SourceFile:
    """
    One file as the rules see it: project-relative path, text, and syntax tree.

    tree is None for files without a supported grammar; rules then fall back
    to text patterns only.
    """

    def __init__(
        self,
        path: str,
        content: str,
        tree: Optional[Tree] = None,
        *,
        has_parse_errors: bool = False,
    ) -> None:
        self.path = path
        self.content = content
        self.tree = tree
        self.has_parse_errors = has_parse_errors
        self._source: Optional[bytes] = None

    @property
    def source(self) -> bytes:
        """UTF-8 bytes of content; tree-sitter offsets index into this."""
        if self._source is None:
            self._source = self.content.encode("utf-8")
        return self._source

    @property
    def root_node(self) -> Optional[TSNode]:
        return self.tree.root_node if self.tree is not None else None

    @property
    def line_count(self) -> int:
        return self.content.count("\n") + 1

    def __repr__(self) -> str:
        return f"SourceFile(path={self.path!r}, parsed={self.tree is not None})"


@dataclass
class ApiRoute:
    """An HTTP entry point discovered in the project (Next.js pages/api or app/**/route)."""

    path: str
    file_path: str
    methods: list[str] = field(default_factory=list)
    has_authentication: bool = False
    has_validation: bool = False


@dataclass
class ProjectMetadata:
    api_routes: list[ApiRoute] = field(default_factory=list)
    dependencies: dict[str, str] = field(default_factory=dict)


class Corpus:
    """
    Read-only snapshot of the files to analyse.

    file_paths may list paths with no loaded content; lookups for those
    return None and rules skip them.
    """

    def __init__(
        self,
        files: Iterable[SourceFile] = (),
        metadata: Optional[ProjectMetadata] = None,
        file_paths: Optional[Iterable[str]] = None,
    ) -> None:
        self._files = {f.path: f for f in files}
        self.file_paths = list(file_paths) if file_paths is not None else list(self._files)
        self.metadata = metadata or ProjectMetadata()

    def get_file(self, path: str) -> Optional[SourceFile]:
        return self._files.get(path)

    def get_content(self, path: str) -> Optional[str]:
        source_file = self._files.get(path)
        return source_file.content if source_file is not None else None

    def get_tree(self, path: str) -> Optional[Tree]:
        source_file = self._files.get(path)
        return source_file.tree if source_file is not None else None

    def __len__(self) -> int:
        return len(self.file_paths)

    def __iter__(self):
        for path in self.file_paths:
            source_file = self._files.get(path)
            if source_file is not None:
                yield source_file


def source_file_from_text(path: str, content: str, parse: bool = True) -> SourceFile:
    """Build a SourceFile from in-memory text, parsing it when a grammar exists for `path`."""
    tree = parse_bytes(content.encode("utf-8"), path=path) if parse else None
    has_errors = tree is not None and tree.root_node.has_error
    return SourceFile(path, content, tree, has_parse_errors=has_errors)


def create_source_file(path: Path, root: Optional[Path] = None) -> Optional[SourceFile]:
    """
    Read and parse one file.

    - Unreadable file: returns None and logs an error.
    - Syntax errors: the tree is still kept with has_parse_errors=True.
    - The SourceFile path is relative to `root` (POSIX separators) when given.
    """
    try:
        raw = path.read_bytes()
    except OSError as e:
        logger.error("Failed to read file %s: %s", path, e)
        return None

    content = raw.decode("utf-8", errors="replace")
    rel = path.relative_to(root).as_posix() if root is not None else path.as_posix()
    tree = parse_bytes(content.encode("utf-8"), path=path)
    has_errors = tree is not None and tree.root_node.has_error
    if tree is not None:
        logger.info(
            "Parsed %s: %d nodes%s",
            rel,
            _count_nodes(tree.root_node),
            " (with parse errors)" if has_errors else "",
        )
    return SourceFile(rel, content, tree, has_parse_errors=has_errors)


_APP_ROUTE_FILE = re.compile(r"(^|/)app/(.*/)?api/(.+/)?route\.(js|ts|mjs)$")
_PAGES_API_FILE = re.compile(r"(^|/)pages/api/.+\.(js|jsx|ts|tsx|mjs)$")
_EXPORTED_METHOD = re.compile(r"export\s+(?:async\s+)?(?:function|const)\s+(GET|POST|PUT|PATCH|DELETE|HEAD|OPTIONS)\b")
_REQ_METHOD = re.compile(r"method\s*===?\s*['\"](GET|POST|PUT|PATCH|DELETE|HEAD|OPTIONS)['\"]")
_AUTH_CHECK = re.compile(
    r"getServerSession|getSession|auth\s*\(|currentUser|withAuth|verifyToken|jwt\.verify|requireAuth|authorization",
    re.I,
)
_VALIDATION = re.compile(r"\.safeParse\s*\(|\.parse\s*\(\s*(?:req|body|await)|zod|yup|joi|validate", re.I)


def _route_url(rel_path: str) -> str:
    posix = PurePosixPath(rel_path)
    parts = list(posix.parts)
    idx = parts.index("api")
    tail = parts[idx:]
    if posix.stem == "route":
        tail = tail[:-1]
    else:
        tail[-1] = posix.stem
        if tail[-1] == "index":
            tail = tail[:-1]
    return "/" + "/".join(tail)


def discover_api_routes(files: Iterable[SourceFile]) -> list[ApiRoute]:
    """Find Next.js API routes (pages/api/* and app/**/api/**/route.*) among loaded files."""
    routes: list[ApiRoute] = []
    for source_file in files:
        rel = source_file.path
        if not (_APP_ROUTE_FILE.search(rel) or _PAGES_API_FILE.search(rel)):
            continue
        content = source_file.content
        methods = sorted(set(_EXPORTED_METHOD.findall(content)) | set(_REQ_METHOD.findall(content)))
        routes.append(
            ApiRoute(
                path=_route_url(rel),
                file_path=rel,
                methods=methods,
                has_authentication=bool(_AUTH_CHECK.search(content)),
                has_validation=bool(_VALIDATION.search(content)),
            )
        )
    return routes


def load_dependencies(root: Path) -> dict[str, str]:
    """Read dependencies and devDependencies from root/package.json; {} if absent or invalid."""
    manifest = root / "package.json"
    if not manifest.is_file():
        return {}
    try:
        data = json.loads(manifest.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("Could not read %s: %s", manifest, e)
        return {}
    deps: dict[str, str] = {}
    for key in ("dependencies", "devDependencies"):
        section = data.get(key) or {}
        if isinstance(section, dict):
            deps.update({str(k): str(v) for k, v in section.items()})
    return deps


def load_project_metadata(root: Path, files: Iterable[SourceFile]) -> ProjectMetadata:
    return ProjectMetadata(api_routes=discover_api_routes(files), dependencies=load_dependencies(root))


def load_corpus(root: Path, ignore_dirs: Optional[set[str]] = None) -> Corpus:
    """
    Discover, read and parse every source file under root.

    Unreadable files are skipped (logged); files with syntax errors keep
    their partial tree.
    """
    root = root.resolve()
    paths = find_source_files(root, ignore_dirs=ignore_dirs if ignore_dirs is not None else DEFAULT_IGNORE_DIRS)
    files = [sf for sf in (create_source_file(p, root) for p in paths) if sf is not None]
    metadata = load_project_metadata(root, files)
    logger.info(
        "Loaded %d file(s), %d API route(s), %d dependencies",
        len(files),
        len(metadata.api_routes),
        len(metadata.dependencies),
    )
    return Corpus(files, metadata)
