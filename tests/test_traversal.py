"""Tests for web source discovery."""

import logging
from pathlib import Path

import pytest

from webguard.traversal import (
    DEFAULT_IGNORE_DIRS,
    find_source_files,
    is_source_file,
    should_ignore_directory,
)


class TestFileTypeChecks:
    """Extension-based source detection."""

    def test_is_source_file_accepts_web_extensions(self):
        """is_source_file() accepts JavaScript and TypeScript sources."""
        for name in ("index.js", "Button.jsx", "server.mjs", "legacy.cjs", "api.ts", "page.tsx"):
            assert is_source_file(Path("src") / name), name

    def test_is_source_file_case_insensitive(self):
        """Extension matching ignores case."""
        assert is_source_file(Path("MAIN.JS"))
        assert is_source_file(Path("App.TSX"))

    def test_is_source_file_rejects_declarations_and_assets(self):
        """Type declarations, styles and docs are not analysed."""
        assert not is_source_file(Path("types/global.d.ts"))
        assert not is_source_file(Path("styles.css"))
        assert not is_source_file(Path("README.md"))
        assert not is_source_file(Path("package.json"))


class TestDirectoryFiltering:
    """Pruning of dependency and build directories."""

    def test_should_ignore_directory_recognizes_ignored_dirs(self):
        """Directories are matched by their final name component."""
        ignore_set = {"node_modules", ".next", "dist"}
        assert should_ignore_directory(Path("node_modules"), ignore_set)
        assert should_ignore_directory(Path("app/.next"), ignore_set)
        assert not should_ignore_directory(Path("src"), ignore_set)

    def test_should_ignore_directory_case_sensitive(self):
        """Name matching is exact, including case."""
        assert should_ignore_directory(Path("dist"), {"dist"})
        assert not should_ignore_directory(Path("Dist"), {"dist"})

    def test_default_ignore_dirs_includes_common_patterns(self):
        """DEFAULT_IGNORE_DIRS covers dependencies, build output, VCS and coverage."""
        for name in ("node_modules", ".next", "dist", "build", ".git", "coverage"):
            assert name in DEFAULT_IGNORE_DIRS
        assert "__tests__" not in DEFAULT_IGNORE_DIRS


class TestTraversal:
    """Walking a small Next.js-style project."""

    @pytest.fixture
    def temp_project(self, tmp_path):
        """
        tmp_path/
          app/page.tsx
          pages/api/users.ts
          lib/db.js
          lib/types.d.ts          (declaration, skipped)
          node_modules/x/index.js (ignored)
          .next/server/chunk.js   (ignored)
          __tests__/db.test.js    (collected; rules skip test files)
          README.md
        """
        for d in ("app", "pages/api", "lib", "node_modules/x", ".next/server", "__tests__"):
            (tmp_path / d).mkdir(parents=True)
        (tmp_path / "app" / "page.tsx").write_text("export default function Page() { return null }")
        (tmp_path / "pages" / "api" / "users.ts").write_text("export default function handler() {}")
        (tmp_path / "lib" / "db.js").write_text("module.exports = {}")
        (tmp_path / "lib" / "types.d.ts").write_text("declare const x: number")
        (tmp_path / "node_modules" / "x" / "index.js").write_text("eval(x)")
        (tmp_path / ".next" / "server" / "chunk.js").write_text("eval(x)")
        (tmp_path / "__tests__" / "db.test.js").write_text("test('x', () => {})")
        (tmp_path / "README.md").write_text("# Project")
        return tmp_path

    def test_find_source_files_collects_sources(self, temp_project):
        """find_source_files() returns sources outside ignored directories."""
        names = {f.name for f in find_source_files(temp_project)}
        assert names == {"page.tsx", "users.ts", "db.js", "db.test.js"}

    def test_find_source_files_custom_ignore_dirs(self, temp_project):
        """A custom ignore set replaces the default one."""
        names = {f.name for f in find_source_files(temp_project, ignore_dirs={".next", "__tests__"})}
        assert "index.js" in names
        assert "chunk.js" not in names
        assert "db.test.js" not in names

    def test_find_source_files_with_filter_function(self, temp_project):
        """filter_fn narrows the collected sources."""
        files = find_source_files(temp_project, filter_fn=lambda p: p.suffix == ".ts")
        assert [f.name for f in files] == ["users.ts"]

    def test_find_source_files_returns_sorted_results(self, temp_project):
        """Output order does not depend on directory listing order."""
        files = find_source_files(temp_project)
        assert files == sorted(files)

    def test_find_source_files_nonexistent_directory(self):
        """A missing root is an error."""
        with pytest.raises(FileNotFoundError):
            find_source_files(Path("/nonexistent/directory"))

    def test_find_source_files_on_file_not_directory(self, tmp_path):
        """A file root is an error; callers handle single files themselves."""
        file_path = tmp_path / "index.js"
        file_path.write_text("console.log(1)")
        with pytest.raises(NotADirectoryError):
            find_source_files(file_path)

    def test_find_source_files_logs_progress(self, temp_project, caplog):
        """Start and completion are logged with the pruned directory count."""
        with caplog.at_level(logging.INFO):
            find_source_files(temp_project)
        assert "Starting traversal" in caplog.text
        assert "Traversal complete" in caplog.text
        assert "(2 directories skipped)" in caplog.text


def test_nested_directories(tmp_path):
    """Feature folders several levels deep are walked."""
    nested = tmp_path / "src" / "features" / "auth" / "components"
    nested.mkdir(parents=True)
    (nested / "LoginForm.tsx").write_text("export const LoginForm = () => null")
    files = find_source_files(tmp_path)
    assert [f.name for f in files] == ["LoginForm.tsx"]
