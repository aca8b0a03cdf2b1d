"""Tests for SourceFile, Corpus and project loading."""

import json
import logging

from webguard.corpus import (
    Corpus,
    SourceFile,
    discover_api_routes,
    load_corpus,
    load_dependencies,
    source_file_from_text,
)


def test_source_file_from_text_parses_supported_files():
    """Supported extensions get a tree; others stay text-only."""
    parsed = source_file_from_text("src/app.ts", "const x: number = 1;\n")
    assert parsed.tree is not None
    assert parsed.root_node.type == "program"
    assert not parsed.has_parse_errors

    plain = source_file_from_text("styles/site.css", "body { color: red }")
    assert plain.tree is None
    assert plain.root_node is None


def test_source_file_bytes_and_line_count():
    """source is the UTF-8 encoding of content; line_count counts newlines + 1."""
    sf = SourceFile("a.js", "const s = 'é';\nfoo()\n")
    assert sf.source == "const s = 'é';\nfoo()\n".encode("utf-8")
    assert sf.line_count == 3


def test_corpus_lookups_for_missing_paths():
    """Paths listed without content return None and are skipped on iteration."""
    a = source_file_from_text("a.js", "x()")
    corpus = Corpus([a], file_paths=["a.js", "missing.js"])
    assert len(corpus) == 2
    assert corpus.get_content("a.js") == "x()"
    assert corpus.get_content("missing.js") is None
    assert corpus.get_tree("missing.js") is None
    assert [sf.path for sf in corpus] == ["a.js"]


def test_discover_api_routes():
    """Next.js pages/api and app router route files become ApiRoutes."""
    files = [
        source_file_from_text(
            "pages/api/users/index.ts",
            "import { getServerSession } from 'next-auth'\n"
            "export default async function handler(req, res) {\n"
            "  const session = await getServerSession(req, res)\n"
            "  if (req.method === 'POST') {}\n"
            "}\n",
        ),
        source_file_from_text(
            "app/api/orders/route.ts",
            "import { z } from 'zod'\nexport async function GET() {}\nexport async function POST(req) {}\n",
        ),
        source_file_from_text("components/Button.tsx", "export const Button = () => null"),
    ]
    routes = {r.path: r for r in discover_api_routes(files)}
    assert set(routes) == {"/api/users", "/api/orders"}

    users = routes["/api/users"]
    assert users.file_path == "pages/api/users/index.ts"
    assert users.methods == ["POST"]
    assert users.has_authentication
    assert not users.has_validation

    orders = routes["/api/orders"]
    assert orders.methods == ["GET", "POST"]
    assert orders.has_validation
    assert not orders.has_authentication


def test_load_dependencies(tmp_path):
    """dependencies and devDependencies are merged; a broken manifest yields {}."""
    (tmp_path / "package.json").write_text(
        json.dumps({"dependencies": {"next": "14.0.0"}, "devDependencies": {"jest": "^29"}})
    )
    assert load_dependencies(tmp_path) == {"next": "14.0.0", "jest": "^29"}

    (tmp_path / "package.json").write_text("{ not json")
    assert load_dependencies(tmp_path) == {}
    assert load_dependencies(tmp_path / "nowhere") == {}


def test_load_corpus(tmp_path, caplog):
    """load_corpus() reads, parses and relativises every source file under root."""
    (tmp_path / "pages" / "api").mkdir(parents=True)
    (tmp_path / "node_modules" / "lib").mkdir(parents=True)
    (tmp_path / "pages" / "index.jsx").write_text("export default function Home() { return <main /> }\n")
    (tmp_path / "pages" / "api" / "hello.js").write_text("export default function handler(req, res) {}\n")
    (tmp_path / "node_modules" / "lib" / "index.js").write_text("eval(x)\n")
    (tmp_path / "package.json").write_text(json.dumps({"dependencies": {"react": "18.2.0"}}))

    with caplog.at_level(logging.INFO):
        corpus = load_corpus(tmp_path)

    assert sorted(corpus.file_paths) == ["pages/api/hello.js", "pages/index.jsx"]
    assert corpus.get_tree("pages/index.jsx") is not None
    assert [r.path for r in corpus.metadata.api_routes] == ["/api/hello"]
    assert corpus.metadata.dependencies == {"react": "18.2.0"}
    assert "Loaded 2 file(s)" in caplog.text
