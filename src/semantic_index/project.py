# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""In-memory parsed representation of a TypeScript/JavaScript project.

load_project() reads a project's tsconfig.json, selects its source files the way
the TypeScript compiler does (files/include/exclude, allowJs) and parses every
file with tree-sitter. The resulting ProjectHandle is what ProjectCache stores.

File reading follows the analyzer pipeline conventions:
- UTF-8 with latin-1 fallback
- Files above MAX_FILE_SIZE_BYTES are skipped with a warning
- Syntax errors never fail a load (tree-sitter yields ERROR nodes instead)
"""

import functools
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

import tree_sitter_javascript
import tree_sitter_typescript
from pathspec import PathSpec
from tree_sitter import Language, Node, Parser, Tree

logger = logging.getLogger(__name__)

TSCONFIG_FILENAME = "tsconfig.json"
MAX_FILE_SIZE_BYTES = 10 * 1024 * 1024

TS_EXTENSIONS = {".ts": "typescript", ".mts": "typescript", ".cts": "typescript", ".tsx": "tsx"}
JS_EXTENSIONS = {
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
}

DEFAULT_INCLUDE = ["**/*"]
DEFAULT_EXCLUDE = ["node_modules", "bower_components", "jspm_packages"]

# Pruned at any depth, whatever the tsconfig says
_ALWAYS_SKIPPED_DIRS = {"node_modules", "bower_components", "jspm_packages", ".git"}


class ProjectLoadError(Exception):
    """Raised when a project cannot be loaded (missing or malformed manifest)."""

    pass


@functools.lru_cache(maxsize=None)
def get_language(name: str) -> Language:
    """Return the tree-sitter grammar for "typescript", "tsx" or "javascript"."""
    if name == "typescript":
        return Language(tree_sitter_typescript.language_typescript())
    if name == "tsx":
        return Language(tree_sitter_typescript.language_tsx())
    if name == "javascript":
        return Language(tree_sitter_javascript.language())
    raise ValueError(f"Unsupported language: {name}")


def language_for_path(file_path: str) -> Optional[str]:
    """Map a file name to its grammar name, or None for non TS/JS files."""
    suffix = Path(file_path).suffix.lower()
    return TS_EXTENSIONS.get(suffix) or JS_EXTENSIONS.get(suffix)


@dataclass
class SourceFile:
    """A parsed source file. Positions reported by this class are 1-based."""

    path: str
    text: str
    language: str
    tree: Tree = field(repr=False)
    _source: bytes = field(repr=False, default=b"")
    _lines: List[str] = field(repr=False, default_factory=list)

    def __post_init__(self) -> None:
        if not self._source:
            self._source = self.text.encode("utf-8")
        self._lines = self.text.splitlines()

    @property
    def root_node(self) -> Node:
        return self.tree.root_node

    @property
    def has_syntax_errors(self) -> bool:
        return self.tree.root_node.has_error

    def walk(self) -> Iterator[Node]:
        """Yield every node of the syntax tree in document order."""
        stack = [self.tree.root_node]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def node_text(self, node: Node) -> str:
        return self._source[node.start_byte : node.end_byte].decode("utf-8", errors="replace")

    def position(self, node: Node) -> Tuple[int, int]:
        """Return (line, column) of the node start."""
        row, column = node.start_point[0], node.start_point[1]
        return row + 1, column + 1

    def end_line(self, node: Node) -> int:
        return node.end_point[0] + 1

    def line_text(self, line: int) -> str:
        if 0 < line <= len(self._lines):
            return self._lines[line - 1]
        return ""


class ProjectHandle:
    """All source files of a project, parsed and held in memory."""

    def __init__(self, root: Path, source_files: List[SourceFile], config_path: Path):
        self.root = root
        self.config_path = config_path
        self._files: Dict[str, SourceFile] = {sf.path: sf for sf in source_files}

    @property
    def source_files(self) -> List[SourceFile]:
        return list(self._files.values())

    @property
    def file_count(self) -> int:
        return len(self._files)

    def get_source_files(self) -> List[SourceFile]:
        return self.source_files

    def get_source_file(self, file_path: str) -> Optional[SourceFile]:
        """Look up a file by absolute path or path relative to the project root."""
        candidate = Path(file_path)
        if not candidate.is_absolute():
            candidate = self.root / candidate
        return self._files.get(str(candidate.resolve()))

    def __repr__(self) -> str:
        return f"ProjectHandle(root={str(self.root)!r}, files={self.file_count})"


def parse_source(file_path: str, text: str, language: Optional[str] = None) -> SourceFile:
    """Parse source text without touching disk.

    Raises:
        ValueError: If the language cannot be derived from file_path.
    """
    language = language or language_for_path(file_path)
    if language is None:
        raise ValueError(f"Not a TypeScript/JavaScript file: {file_path}")
    parser = Parser(get_language(language))
    source = text.encode("utf-8")
    tree = parser.parse(source)
    return SourceFile(path=file_path, text=text, language=language, tree=tree, _source=source)


def load_project(root: str) -> ProjectHandle:
    """Parse every source file selected by <root>/tsconfig.json.

    Raises:
        ProjectLoadError: If root is not a directory or tsconfig.json is
            missing or malformed.
    """
    root_path = Path(root).resolve()
    if not root_path.is_dir():
        raise ProjectLoadError(f"Project directory not found: {root_path}")

    config_path = root_path / TSCONFIG_FILENAME
    if not config_path.is_file():
        raise ProjectLoadError(f"{TSCONFIG_FILENAME} not found in {root_path}")

    tsconfig = read_tsconfig(config_path)
    file_paths = select_source_files(root_path, tsconfig)

    parsers: Dict[str, Parser] = {}
    source_files = []
    for file_path in file_paths:
        text = _read_file(file_path)
        if text is None:
            continue
        language = language_for_path(str(file_path))
        assert language is not None
        if language not in parsers:
            parsers[language] = Parser(get_language(language))
        source = text.encode("utf-8")
        tree = parsers[language].parse(source)
        source_files.append(
            SourceFile(
                path=str(file_path), text=text, language=language, tree=tree, _source=source
            )
        )

    logger.debug(f"Parsed {len(source_files)} source files under {root_path}")
    return ProjectHandle(root_path, source_files, config_path)


def read_tsconfig(config_path: Path) -> Dict[str, Any]:
    """Read a tsconfig file, tolerating comments and trailing commas.

    Raises:
        ProjectLoadError: If the file cannot be read or is not a JSON object.
    """
    try:
        raw = config_path.read_text(encoding="utf-8-sig")
    except OSError as e:
        raise ProjectLoadError(f"Cannot read {config_path}: {e}") from e

    try:
        data = json.loads(_strip_trailing_commas(_strip_json_comments(raw)))
    except json.JSONDecodeError as e:
        raise ProjectLoadError(f"Malformed {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ProjectLoadError(f"Malformed {config_path}: expected a JSON object")
    return data


def select_source_files(root: Path, tsconfig: Dict[str, Any]) -> List[Path]:
    """Resolve files/include/exclude of a tsconfig to a sorted list of paths."""
    compiler_options = tsconfig.get("compilerOptions") or {}
    extensions = set(TS_EXTENSIONS)
    if compiler_options.get("allowJs"):
        extensions |= set(JS_EXTENSIONS)

    explicit_files = tsconfig.get("files")
    include = tsconfig.get("include")
    if include is None:
        include = [] if explicit_files else DEFAULT_INCLUDE
    exclude = tsconfig.get("exclude")
    if exclude is None:
        exclude = list(DEFAULT_EXCLUDE)
        out_dir = compiler_options.get("outDir")
        if out_dir:
            exclude.append(out_dir)

    include_spec = _build_spec(_include_pattern(p) for p in include if isinstance(p, str))
    exclude_spec = _build_spec(
        _anchor(p) for p in exclude if isinstance(p, str) and _normalize_pattern(p)
    )

    selected = set()
    for name in explicit_files or []:
        path = (root / name).resolve()
        if path.is_file():
            selected.add(path)
        else:
            logger.warning(f"File listed in {TSCONFIG_FILENAME} not found: {path}")

    if include_spec is not None:
        for dirpath, dirnames, filenames in os.walk(root):
            rel_dir = Path(dirpath).relative_to(root).as_posix()
            kept_dirs = []
            for d in dirnames:
                rel = d if rel_dir == "." else f"{rel_dir}/{d}"
                if d in _ALWAYS_SKIPPED_DIRS or _matches(exclude_spec, rel):
                    continue
                kept_dirs.append(d)
            dirnames[:] = kept_dirs

            for filename in filenames:
                if not _has_extension(filename, extensions):
                    continue
                rel = filename if rel_dir == "." else f"{rel_dir}/{filename}"
                if _matches(exclude_spec, rel):
                    continue
                if include_spec.match_file(rel):
                    selected.add((Path(dirpath) / filename).resolve())

    return sorted(selected)


def _has_extension(filename: str, extensions: set) -> bool:
    return Path(filename).suffix.lower() in extensions


def _normalize_pattern(pattern: str) -> str:
    pattern = pattern.replace("\\", "/")
    if pattern == ".":
        return ""
    while pattern.startswith("./"):
        pattern = pattern[2:]
    return pattern.rstrip("/")


def _anchor(pattern: str) -> str:
    """tsconfig globs are relative to the project root, never floating."""
    return "/" + _normalize_pattern(pattern)


def _include_pattern(pattern: str) -> str:
    pattern = _normalize_pattern(pattern)
    last = pattern.rsplit("/", 1)[-1]
    # A bare directory name includes everything below it
    if "*" not in last and "?" not in last and "." not in last:
        pattern = f"{pattern}/**/*" if pattern else "**/*"
    return _anchor(pattern)


def _build_spec(lines: Iterable[str]) -> Optional[PathSpec]:
    line_list = list(lines)
    if not line_list:
        return None
    return PathSpec.from_lines("gitwildmatch", line_list)


def _matches(spec: Optional[PathSpec], rel_path: str) -> bool:
    return spec is not None and spec.match_file(rel_path)


def _read_file(file_path: Path) -> Optional[str]:
    """Read a source file, or return None if it should be skipped."""
    try:
        size = file_path.stat().st_size
        if size > MAX_FILE_SIZE_BYTES:
            logger.warning(
                f"Skipping {file_path}: {size} bytes exceeds limit ({MAX_FILE_SIZE_BYTES})"
            )
            return None
        try:
            return file_path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            logger.warning(f"File {file_path} is not UTF-8, using latin-1 fallback encoding")
            return file_path.read_text(encoding="latin-1")
    except OSError as e:
        logger.warning(f"Skipping unreadable file {file_path}: {e}")
        return None


def _strip_json_comments(text: str) -> str:
    out = []
    i = 0
    in_string = False
    while i < len(text):
        ch = text[i]
        if in_string:
            out.append(ch)
            if ch == "\\" and i + 1 < len(text):
                out.append(text[i + 1])
                i += 2
                continue
            if ch == '"':
                in_string = False
            i += 1
        elif ch == '"':
            in_string = True
            out.append(ch)
            i += 1
        elif text.startswith("//", i):
            end = text.find("\n", i)
            i = len(text) if end == -1 else end
        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            i = len(text) if end == -1 else end + 2
        else:
            out.append(ch)
            i += 1
    return "".join(out)


def _strip_trailing_commas(text: str) -> str:
    out = []
    i = 0
    in_string = False
    while i < len(text):
        ch = text[i]
        if in_string:
            out.append(ch)
            if ch == "\\" and i + 1 < len(text):
                out.append(text[i + 1])
                i += 2
                continue
            if ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
            out.append(ch)
        elif ch == ",":
            j = i + 1
            while j < len(text) and text[j].isspace():
                j += 1
            if j >= len(text) or text[j] not in "}]":
                out.append(ch)
        else:
            out.append(ch)
        i += 1
    return "".join(out)
