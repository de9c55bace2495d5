# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Tests for tsconfig parsing, source file selection and project loading."""

import json
from pathlib import Path

import pytest

from semantic_index.project import (
    ProjectLoadError,
    language_for_path,
    load_project,
    parse_source,
    read_tsconfig,
    select_source_files,
)


def _rel(root: Path, paths):
    return sorted(p.relative_to(root.resolve()).as_posix() for p in paths)


def _write(root: Path, rel: str, text: str = "export {};\n") -> None:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)


class TestReadTsconfig:
    def test_comments_and_trailing_commas(self, tmp_path: Path):
        config_path = tmp_path / "tsconfig.json"
        config_path.write_text(
            """{
  // compiler settings
  "compilerOptions": {
    "outDir": "build", /* emitted files */
    "paths": {"@app/*": ["src/*"]},
  },
  "include": ["src/**/*.ts",],
}
"""
        )

        data = read_tsconfig(config_path)

        assert data["compilerOptions"]["outDir"] == "build"
        # Comment markers inside strings are preserved
        assert data["compilerOptions"]["paths"] == {"@app/*": ["src/*"]}
        assert data["include"] == ["src/**/*.ts"]

    def test_malformed_json_raises(self, tmp_path: Path):
        config_path = tmp_path / "tsconfig.json"
        config_path.write_text('{"include": [')

        with pytest.raises(ProjectLoadError, match="Malformed"):
            read_tsconfig(config_path)

    def test_non_object_raises(self, tmp_path: Path):
        config_path = tmp_path / "tsconfig.json"
        config_path.write_text("[1, 2]")

        with pytest.raises(ProjectLoadError):
            read_tsconfig(config_path)


class TestSelectSourceFiles:
    def test_default_include_skips_node_modules_and_js(self, tmp_path: Path):
        _write(tmp_path, "index.ts")
        _write(tmp_path, "lib/util.tsx")
        _write(tmp_path, "lib/legacy.js")
        _write(tmp_path, "node_modules/pkg/index.ts")
        _write(tmp_path, "README.md", "# readme")

        selected = select_source_files(tmp_path, {})

        assert _rel(tmp_path, selected) == ["index.ts", "lib/util.tsx"]

    def test_allow_js_adds_javascript(self, tmp_path: Path):
        _write(tmp_path, "index.ts")
        _write(tmp_path, "lib/legacy.js")

        selected = select_source_files(tmp_path, {"compilerOptions": {"allowJs": True}})

        assert _rel(tmp_path, selected) == ["index.ts", "lib/legacy.js"]

    def test_include_directory_and_out_dir_excluded(self, tmp_path: Path):
        _write(tmp_path, "src/a.ts")
        _write(tmp_path, "src/nested/b.ts")
        _write(tmp_path, "test/a.test.ts")
        _write(tmp_path, "src/out/generated.ts")

        selected = select_source_files(
            tmp_path, {"include": ["src"], "compilerOptions": {"outDir": "src/out"}}
        )

        assert _rel(tmp_path, selected) == ["src/a.ts", "src/nested/b.ts"]

    def test_explicit_exclude_glob(self, tmp_path: Path):
        _write(tmp_path, "src/a.ts")
        _write(tmp_path, "src/a.spec.ts")
        _write(tmp_path, "src/deep/b.spec.ts")

        selected = select_source_files(
            tmp_path, {"include": ["src/**/*"], "exclude": ["**/*.spec.ts"]}
        )

        assert _rel(tmp_path, selected) == ["src/a.ts"]

    def test_patterns_are_anchored_at_project_root(self, tmp_path: Path):
        _write(tmp_path, "dist/bundle.ts")
        _write(tmp_path, "src/dist/kept.ts")
        _write(tmp_path, "src/main.ts")

        selected = select_source_files(tmp_path, {"exclude": ["dist"]})

        assert _rel(tmp_path, selected) == ["src/dist/kept.ts", "src/main.ts"]

    def test_dot_slash_include_and_double_star_segments(self, tmp_path: Path):
        _write(tmp_path, "src/a.ts")
        _write(tmp_path, "src/feature/deep/widget.ts")
        _write(tmp_path, "src/feature/deep/widget.test.ts")
        _write(tmp_path, "other/feature/x.ts")

        selected = select_source_files(
            tmp_path,
            {"include": ["./src/**/feature/**/*.ts"], "exclude": ["./src/**/*.test.ts"]},
        )

        assert _rel(tmp_path, selected) == ["src/feature/deep/widget.ts"]

    def test_files_without_include(self, tmp_path: Path):
        _write(tmp_path, "main.ts")
        _write(tmp_path, "other.ts")

        selected = select_source_files(tmp_path, {"files": ["main.ts", "missing.ts"]})

        assert _rel(tmp_path, selected) == ["main.ts"]


class TestLoadProject:
    def test_loads_selected_files(self, ts_project: Path):
        handle = load_project(str(ts_project))

        assert handle.file_count == 3
        names = sorted(Path(sf.path).name for sf in handle.get_source_files())
        assert names == ["app.ts", "logger.ts", "user-service.ts"]
        assert handle.config_path == ts_project.resolve() / "tsconfig.json"

    def test_get_source_file_by_relative_path(self, ts_project: Path):
        handle = load_project(str(ts_project))

        source_file = handle.get_source_file("src/logger.ts")

        assert source_file is not None
        assert source_file.language == "typescript"
        assert "class Logger" in source_file.text
        assert handle.get_source_file("dist/app.js") is None

    def test_missing_tsconfig_raises(self, tmp_path: Path):
        _write(tmp_path, "index.ts")

        with pytest.raises(ProjectLoadError, match="tsconfig.json not found"):
            load_project(str(tmp_path))

    def test_missing_directory_raises(self, tmp_path: Path):
        with pytest.raises(ProjectLoadError, match="not found"):
            load_project(str(tmp_path / "nope"))

    def test_syntax_errors_do_not_fail_load(self, tmp_path: Path):
        (tmp_path / "tsconfig.json").write_text(json.dumps({}))
        _write(tmp_path, "broken.ts", "export class {{{ \n")

        handle = load_project(str(tmp_path))

        assert handle.file_count == 1
        assert handle.get_source_files()[0].has_syntax_errors

    def test_latin1_fallback(self, tmp_path: Path):
        (tmp_path / "tsconfig.json").write_text("{}")
        (tmp_path / "legacy.ts").write_bytes(b'export const name = "caf\xe9";\n')

        handle = load_project(str(tmp_path))

        assert "café" in handle.get_source_files()[0].text


class TestParseSource:
    def test_positions_are_one_based(self):
        source_file = parse_source("a.ts", "const x = 1;\nfunction foo() {}\n")

        function_node = source_file.root_node.named_children[1]
        assert function_node.type == "function_declaration"
        assert source_file.position(function_node) == (2, 1)
        assert source_file.end_line(function_node) == 2
        assert source_file.line_text(2) == "function foo() {}"

    def test_language_for_path(self):
        assert language_for_path("a.ts") == "typescript"
        assert language_for_path("a.tsx") == "tsx"
        assert language_for_path("a.mjs") == "javascript"
        assert language_for_path("a.py") is None

    def test_rejects_unknown_extension(self):
        with pytest.raises(ValueError):
            parse_source("notes.txt", "hello")
