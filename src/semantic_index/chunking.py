# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Syntax-aware chunking of source files.

Strategy by file type:
- TS/JS: one chunk per top-level declaration (tree-sitter)
- Python: one chunk per function/class span (Python bridge)
- Anything else, or when no declaration is found: recursive text splitting
  on paragraph, line and word boundaries with overlap
"""

import logging
from pathlib import Path
from typing import List, Optional, Sequence

from semantic_index.analyzers.errors import AnalysisCancelledError, AnalysisError
from semantic_index.analyzers.python_bridge import PythonBridge
from semantic_index.analyzers.transport import CancellationToken
from semantic_index.analyzers.typescript_analyzer import top_level_chunks
from semantic_index.models import CodeChunk, SymbolKind
from semantic_index.project import language_for_path, parse_source

logger = logging.getLogger(__name__)

DEFAULT_SEPARATORS = ("\n\n", "\n", " ")


def split_text(
    text: str,
    chunk_size: int = 512,
    chunk_overlap: int = 50,
    separators: Sequence[str] = DEFAULT_SEPARATORS,
) -> List[str]:
    """Split text into pieces of at most chunk_size characters.

    Tries each separator in turn, recursing into pieces that are still too
    large, and falls back to splitting on characters.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    chunk_overlap = max(0, min(chunk_overlap, chunk_size - 1))
    return _split(text, list(separators) + [""], chunk_size, chunk_overlap)


def _split(text: str, separators: List[str], chunk_size: int, chunk_overlap: int) -> List[str]:
    separator = separators[-1]
    remaining: List[str] = []
    for i, candidate in enumerate(separators):
        if candidate == "" or candidate in text:
            separator = candidate
            remaining = separators[i + 1 :]
            break

    pieces = [p for p in (text.split(separator) if separator else list(text)) if p]

    results: List[str] = []
    fitting: List[str] = []
    for piece in pieces:
        if len(piece) <= chunk_size:
            fitting.append(piece)
            continue
        if fitting:
            results.extend(_merge(fitting, separator, chunk_size, chunk_overlap))
            fitting = []
        if remaining:
            results.extend(_split(piece, remaining, chunk_size, chunk_overlap))
        else:
            results.append(piece)
    if fitting:
        results.extend(_merge(fitting, separator, chunk_size, chunk_overlap))
    return results


def _merge(pieces: List[str], separator: str, chunk_size: int, chunk_overlap: int) -> List[str]:
    """Join small pieces into chunks, carrying up to chunk_overlap chars forward."""
    sep_len = len(separator)
    chunks: List[str] = []
    current: List[str] = []
    total = 0
    for piece in pieces:
        if current and total + len(piece) + sep_len > chunk_size:
            chunks.append(separator.join(current))
            while current and (total > chunk_overlap or total + len(piece) + sep_len > chunk_size):
                total -= len(current[0]) + (sep_len if len(current) > 1 else 0)
                current.pop(0)
        current.append(piece)
        total += len(piece) + (sep_len if len(current) > 1 else 0)
    if current:
        chunks.append(separator.join(current))
    return chunks


def _text_chunks(content: str, chunk_size: int, chunk_overlap: int) -> List[CodeChunk]:
    return [
        CodeChunk(text=text, start_line=0, end_line=0, type="text-chunk", name=f"chunk-{i}")
        for i, text in enumerate(split_text(content, chunk_size, chunk_overlap))
    ]


def _python_chunks(
    content: str, bridge: PythonBridge, cancel: Optional[CancellationToken]
) -> List[CodeChunk]:
    lines = content.split("\n")
    chunks = []
    for symbol in bridge.find_symbols(content, cancel=cancel):
        if symbol.kind not in (SymbolKind.FUNCTION, SymbolKind.CLASS):
            continue
        if not symbol.end_line or symbol.end_line <= 0:
            continue
        chunks.append(
            CodeChunk(
                text="\n".join(lines[symbol.line - 1 : symbol.end_line]),
                start_line=symbol.line,
                end_line=symbol.end_line,
                type=symbol.kind,
                name=symbol.name,
            )
        )
    return chunks


def chunk_code(
    file_path: str,
    content: str,
    bridge: PythonBridge,
    chunk_size: int = 512,
    chunk_overlap: int = 50,
    cancel: Optional[CancellationToken] = None,
) -> List[CodeChunk]:
    """Chunk a file's content along its declarations.

    Never fails on malformed input: unexpected errors produce a single
    chunk holding the whole file.

    Raises:
        AnalysisCancelledError: If cancel is set.
    """
    try:
        if language_for_path(file_path) is not None:
            source_file = parse_source(file_path, content)
            chunks = list(top_level_chunks(source_file))
            if chunks:
                return chunks

        elif Path(file_path).suffix.lower() == ".py":
            try:
                chunks = _python_chunks(content, bridge, cancel)
                if chunks:
                    return chunks
            except AnalysisCancelledError:
                raise
            except AnalysisError as e:
                logger.warning(
                    f"Python parsing failed for {file_path}, falling back to text chunking: {e}"
                )

        return _text_chunks(content, chunk_size, chunk_overlap)

    except AnalysisCancelledError:
        raise
    except Exception as e:
        logger.error(f"Error chunking {file_path}: {e}")
        return [
            CodeChunk(
                text=content,
                start_line=1,
                end_line=len(content.split("\n")),
                type="file",
                name="full-file",
            )
        ]
