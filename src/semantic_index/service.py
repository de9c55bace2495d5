# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""SemanticAnalysisService - Business logic layer for the MCP server.

This module is the composition root: it owns the one ProjectCache and the one
PythonBridge of the process and merges their results.

Key Responsibilities:
- Symbol search across TS/JS (cached project handle) and Python (bridge)
- Reference search across both languages
- Python complexity analysis and syntax-aware chunking
- Cache statistics and deterministic shutdown
"""

import fnmatch
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

from semantic_index.analyzers.errors import AnalysisCancelledError, AnalysisError
from semantic_index.analyzers.python_bridge import PythonBridge
from semantic_index.analyzers.transport import CancellationToken
from semantic_index.analyzers.typescript_analyzer import (
    find_declarations,
    find_identifier_references,
    preview,
    reference_context,
)
from semantic_index.chunking import chunk_code
from semantic_index.config import Config
from semantic_index.models import (
    CodeChunk,
    PythonComplexity,
    ReferenceMatch,
    ReferenceSummary,
    SymbolMatch,
)
from semantic_index.project import ProjectHandle, ProjectLoadError
from semantic_index.project_cache import ProjectCache

logger = logging.getLogger(__name__)

SYMBOL_TYPES = ("all", "function", "class", "interface", "variable", "type")

# Directories never searched for Python files
_PYTHON_SKIPPED_DIRS = {"node_modules", ".git", "venv", ".venv", "__pycache__"}
# Path fragments never searched for TS/JS declarations
_TS_SKIPPED_FRAGMENTS = ("node_modules", ".git")

T = TypeVar("T")


class SymbolSearchResult:
    """Result of a symbol search."""

    def __init__(self, symbols: List[SymbolMatch], query: str):
        self.symbols = symbols
        self.summary = self._summarize(symbols, query)

    @staticmethod
    def _summarize(symbols: List[SymbolMatch], query: str) -> str:
        if not symbols:
            return f'No symbols found matching "{query}"'

        by_kind: Dict[str, int] = {}
        for symbol in symbols:
            by_kind[symbol.kind] = by_kind.get(symbol.kind, 0) + 1

        parts = ", ".join(
            f"{count} {kind}{'s' if count > 1 else ''}" for kind, count in by_kind.items()
        )
        return f"Found {len(symbols)} symbols: {parts}"

    def to_dict(self) -> Dict[str, Any]:
        return {"symbols": [s.to_dict() for s in self.symbols], "summary": self.summary}


class ReferenceSearchResult:
    """Result of a reference search."""

    def __init__(self, references: List[ReferenceMatch]):
        self.references = references
        self.summary = ReferenceSummary.from_references(references)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "references": [r.to_dict() for r in self.references],
            "summary": self.summary.to_dict(),
        }


class SemanticAnalysisService:
    """Coordinates the project cache and the Python bridge.

    Usage:
        service = SemanticAnalysisService(Config())
        result = service.find_symbol("UserService", "/path/to/project")
        ...
        service.shutdown()
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        project_cache: Optional[ProjectCache] = None,
        python_bridge: Optional[PythonBridge] = None,
    ):
        """Initialize the service.

        Args:
            config: Configuration object. If None, loads from default location.
            project_cache: Shared project cache. If None, one is built from config.
            python_bridge: Shared Python bridge. If None, one is built from config.
        """
        if config is None:
            config = Config()
        self.config = config

        if project_cache is None:
            project_cache = ProjectCache(config)
        self.project_cache = project_cache

        if python_bridge is None:
            python_bridge = PythonBridge(config)
        self.python_bridge = python_bridge

        logger.info("SemanticAnalysisService initialized")

    def _resolve_project(self, project_path: str) -> Optional[ProjectHandle]:
        """Return the cached project, or None when it has no TS/JS manifest."""
        if not Path(project_path).is_dir():
            raise FileNotFoundError(f"Project directory not found: {project_path}")
        try:
            return self.project_cache.get_or_create(project_path)
        except ProjectLoadError as e:
            logger.warning(f"Skipping TypeScript/JavaScript analysis: {e}")
            return None

    def _collect_python_files(self, project_path: str) -> List[Path]:
        root = Path(project_path).resolve()
        files = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(d for d in dirnames if d not in _PYTHON_SKIPPED_DIRS)
            for filename in sorted(filenames):
                if not filename.endswith(".py"):
                    continue
                path = Path(dirpath) / filename
                rel = path.relative_to(root).as_posix()
                if any(fnmatch.fnmatch(rel, p) for p in self.config.ignore_patterns):
                    continue
                files.append(path)
        return files

    def _map_python_files(
        self,
        files: Sequence[Path],
        analyze: Callable[[str], T],
        cancel: Optional[CancellationToken],
    ) -> List[Tuple[Path, T]]:
        """Run analyze over each file's text concurrently, in file order.

        Per-file failures are logged and skipped; cancellation propagates.
        """
        if not files:
            return []

        def task(path: Path) -> T:
            if cancel is not None and cancel.is_set():
                raise AnalysisCancelledError()
            text = path.read_text(encoding="utf-8", errors="replace")
            return analyze(text)

        results: List[Tuple[Path, T]] = []
        workers = min(self.config.python_max_workers, len(files))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [(path, executor.submit(task, path)) for path in files]
            for path, future in futures:
                try:
                    results.append((path, future.result()))
                except AnalysisCancelledError:
                    for _, pending in futures:
                        pending.cancel()
                    raise
                except (AnalysisError, OSError) as e:
                    logger.warning(f"Error parsing Python file {path}: {e}")
        return results

    def find_symbol(
        self,
        symbol_name: str,
        project_path: str,
        symbol_type: str = "all",
        max_results: int = 100,
        exclude_patterns: Sequence[str] = (),
        cancel: Optional[CancellationToken] = None,
    ) -> SymbolSearchResult:
        """Find declarations whose name contains symbol_name.

        Raises:
            ValueError: If symbol_type is unknown.
            FileNotFoundError: If project_path is not a directory.
            AnalysisCancelledError: If cancel is set.
        """
        if symbol_type not in SYMBOL_TYPES:
            raise ValueError(f"Unknown symbol type: {symbol_type}")

        symbols: List[SymbolMatch] = []

        project = self._resolve_project(project_path)
        if project is not None:
            for source_file in project.get_source_files():
                if len(symbols) >= max_results:
                    break
                file_path = source_file.path
                if any(fragment in file_path for fragment in _TS_SKIPPED_FRAGMENTS):
                    continue
                if any(pattern in file_path for pattern in exclude_patterns):
                    continue
                for match in find_declarations(source_file, symbol_name, symbol_type):
                    if len(symbols) >= max_results:
                        break
                    line, column = source_file.position(match.node)
                    symbols.append(
                        SymbolMatch(
                            name=match.name,
                            kind=match.kind,
                            file_path=file_path,
                            line=line,
                            column=column,
                            preview=preview(source_file, match.node),
                        )
                    )

        if len(symbols) >= max_results:
            return self._symbol_result(symbols, symbol_name)

        python_files = [
            path
            for path in self._collect_python_files(project_path)
            if not any(pattern in str(path) for pattern in exclude_patterns)
        ]
        analyzed = self._map_python_files(
            python_files,
            lambda text: self.python_bridge.find_symbols(text, cancel=cancel),
            cancel,
        )
        for path, python_symbols in analyzed:
            if len(symbols) >= max_results:
                break
            for py_symbol in python_symbols:
                if len(symbols) >= max_results:
                    break
                if symbol_name not in py_symbol.name:
                    continue
                if symbol_type not in ("all", py_symbol.kind):
                    continue
                symbols.append(
                    SymbolMatch(
                        name=py_symbol.name,
                        kind=py_symbol.kind,
                        file_path=str(path),
                        line=py_symbol.line,
                        column=py_symbol.column,
                        preview=(py_symbol.docstring or "")[:100]
                        or f"{py_symbol.kind} {py_symbol.name}",
                    )
                )

        return self._symbol_result(symbols, symbol_name)

    @staticmethod
    def _symbol_result(symbols: List[SymbolMatch], symbol_name: str) -> SymbolSearchResult:
        result = SymbolSearchResult(symbols, symbol_name)
        logger.debug(f"find_symbol({symbol_name!r}): {result.summary}")
        return result

    def find_references(
        self,
        symbol_name: str,
        project_path: str,
        max_references: int = 500,
        cancel: Optional[CancellationToken] = None,
    ) -> ReferenceSearchResult:
        """Find every identifier spelled symbol_name, definitions flagged.

        Raises:
            FileNotFoundError: If project_path is not a directory.
            AnalysisCancelledError: If cancel is set.
        """
        references: List[ReferenceMatch] = []

        project = self._resolve_project(project_path)
        if project is not None:
            for source_file in project.get_source_files():
                if len(references) >= max_references:
                    break
                if any(fragment in source_file.path for fragment in _TS_SKIPPED_FRAGMENTS):
                    continue
                for ref in find_identifier_references(source_file, symbol_name):
                    if len(references) >= max_references:
                        break
                    line, column = source_file.position(ref.node)
                    references.append(
                        ReferenceMatch(
                            file_path=source_file.path,
                            line=line,
                            column=column,
                            text=reference_context(source_file, ref.node),
                            is_definition=ref.is_definition,
                        )
                    )

        if len(references) >= max_references:
            return ReferenceSearchResult(references)

        analyzed = self._map_python_files(
            self._collect_python_files(project_path),
            lambda text: self.python_bridge.find_references(text, symbol_name, cancel=cancel),
            cancel,
        )
        for path, python_refs in analyzed:
            if len(references) >= max_references:
                break
            for py_ref in python_refs:
                if len(references) >= max_references:
                    break
                references.append(
                    ReferenceMatch(
                        file_path=str(path),
                        line=py_ref.line,
                        column=py_ref.column + 1,
                        text=py_ref.text[:100],
                        is_definition=py_ref.is_definition,
                    )
                )

        return ReferenceSearchResult(references)

    def analyze_python_complexity(
        self, source: str, cancel: Optional[CancellationToken] = None
    ) -> PythonComplexity:
        return self.python_bridge.analyze_complexity(source, cancel=cancel)

    def chunk_code(
        self,
        file_path: str,
        content: str,
        chunk_size: int = 512,
        chunk_overlap: int = 50,
        cancel: Optional[CancellationToken] = None,
    ) -> List[CodeChunk]:
        return chunk_code(
            file_path,
            content,
            self.python_bridge,
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
            cancel=cancel,
        )

    def get_cache_statistics(self) -> Dict[str, Any]:
        """Project cache statistics plus the Python result cache size."""
        stats = self.project_cache.get_statistics().to_dict()
        stats["pythonResultCacheSize"] = self.python_bridge.cached_result_count
        return stats

    def shutdown(self) -> None:
        """Drop cached projects and release Python bridge resources."""
        logger.info("SemanticAnalysisService shutting down...")
        self.project_cache.clear()
        self.python_bridge.shutdown()
        logger.info("SemanticAnalysisService shutdown complete")
