# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Core data models for the semantic index.

This module defines the data structures shared by the caching layer,
the Python bridge and the service:
- CachedProjectEntry: A parsed project held by the ProjectCache
- ProjectCacheStatistics: Snapshot of ProjectCache usage
- PythonSymbol / PythonComplexity / PythonReference: Python bridge results
- SymbolMatch / ReferenceMatch / ReferenceSummary: Merged cross-language results
- CodeChunk: A syntax-aware slice of a source file

to_dict() produces the camelCase wire shape returned to tool callers.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional

if TYPE_CHECKING:
    from semantic_index.project import ProjectHandle


class SymbolKind:
    """Kinds of symbols reported by the analyzers.

    Design: Using class constants (not Enum) for JSON-compatible strings.
    """

    FUNCTION = "function"
    CLASS = "class"
    VARIABLE = "variable"
    IMPORT = "import"
    INTERFACE = "interface"
    TYPE = "type"


class ReferenceKind:
    """Binding kinds for Python references."""

    FUNCTION = "function"
    CLASS = "class"
    VARIABLE = "variable"
    PARAMETER = "parameter"
    IMPORT = "import"
    USAGE = "usage"


@dataclass
class CachedProjectEntry:
    """A parsed project held by the ProjectCache.

    estimated_memory_mb is fixed at creation; only last_access_time and
    hit_count change afterwards.
    """

    key: str
    handle: "ProjectHandle"
    last_access_time: float
    file_count: int
    estimated_memory_mb: float
    hit_count: int = 0
    created_at: float = 0.0


@dataclass
class ProjectCacheEntryInfo:
    """Per-project row of ProjectCacheStatistics."""

    path: str
    files: int
    memory_mb: float
    age_seconds: float
    hits: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "files": self.files,
            "memoryMB": self.memory_mb,
            "age": self.age_seconds,
            "hits": self.hits,
        }


@dataclass
class ProjectCacheStatistics:
    """Snapshot of ProjectCache usage."""

    size: int
    total_memory_mb: float
    total_hits: int
    total_misses: int
    evictions: int
    projects: List[ProjectCacheEntryInfo] = field(default_factory=list)

    @property
    def hit_rate(self) -> float:
        """Hit rate as a fraction (0.0-1.0), or 0.0 before any lookup."""
        total = self.total_hits + self.total_misses
        if total == 0:
            return 0.0
        return self.total_hits / total

    def to_dict(self) -> Dict[str, Any]:
        return {
            "size": self.size,
            "totalMemoryMB": self.total_memory_mb,
            "hitRate": self.hit_rate,
            "totalHits": self.total_hits,
            "totalMisses": self.total_misses,
            "evictions": self.evictions,
            "projects": [p.to_dict() for p in self.projects],
        }


@dataclass
class PythonSymbol:
    """A declaration found in Python source.

    end_line and docstring are only set for functions and classes.
    """

    name: str
    kind: str
    line: int
    column: int
    end_line: Optional[int] = None
    docstring: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "name": self.name,
            "kind": self.kind,
            "line": self.line,
            "column": self.column,
        }
        if self.end_line is not None:
            result["endLine"] = self.end_line
        if self.docstring is not None:
            result["docstring"] = self.docstring
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PythonSymbol":
        return cls(
            name=data["name"],
            kind=data["kind"],
            line=data.get("line", 0),
            column=data.get("column", 0),
            end_line=data.get("endLine"),
            docstring=data.get("docstring"),
        )


@dataclass
class FunctionComplexity:
    name: str
    complexity: int
    line: int

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "complexity": self.complexity, "line": self.line}


@dataclass
class ClassSummary:
    name: str
    methods: int
    line: int

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "methods": self.methods, "line": self.line}


@dataclass
class PythonComplexity:
    """Cyclomatic complexity of a Python module and its functions."""

    cyclomatic_complexity: int = 1
    functions: List[FunctionComplexity] = field(default_factory=list)
    classes: List[ClassSummary] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cyclomaticComplexity": self.cyclomatic_complexity,
            "functions": [f.to_dict() for f in self.functions],
            "classes": [c.to_dict() for c in self.classes],
        }


@dataclass
class PythonReference:
    """One occurrence of an identifier in Python source.

    column is 0-based, as reported by the ast module.
    """

    name: str
    kind: str
    line: int
    column: int
    is_definition: bool
    text: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind,
            "line": self.line,
            "column": self.column,
            "isDefinition": self.is_definition,
            "text": self.text,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PythonReference":
        return cls(
            name=data["name"],
            kind=data.get("kind", ReferenceKind.USAGE),
            line=data.get("line", 0),
            column=data.get("column", 0),
            is_definition=bool(data.get("isDefinition", False)),
            text=data.get("text", ""),
        )


@dataclass
class SymbolMatch:
    """A symbol definition found while searching a project."""

    name: str
    kind: str
    file_path: str
    line: int
    column: int
    preview: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind,
            "filePath": self.file_path,
            "line": self.line,
            "column": self.column,
            "preview": self.preview,
        }


@dataclass
class ReferenceMatch:
    """A reference found while searching a project. Columns are 1-based."""

    file_path: str
    line: int
    column: int
    text: str
    is_definition: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filePath": self.file_path,
            "line": self.line,
            "column": self.column,
            "text": self.text,
            "isDefinition": self.is_definition,
        }


@dataclass
class ReferenceSummary:
    total_references: int
    files_count: int
    definitions: int
    usages: int

    @classmethod
    def from_references(cls, references: List[ReferenceMatch]) -> "ReferenceSummary":
        definitions = sum(1 for r in references if r.is_definition)
        return cls(
            total_references=len(references),
            files_count=len({r.file_path for r in references}),
            definitions=definitions,
            usages=len(references) - definitions,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalReferences": self.total_references,
            "filesCount": self.files_count,
            "definitions": self.definitions,
            "usages": self.usages,
        }


@dataclass
class CodeChunk:
    """A slice of a source file with its line span and declaration type."""

    text: str
    start_line: int
    end_line: int
    type: str
    name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {
            "startLine": self.start_line,
            "endLine": self.end_line,
            "type": self.type,
        }
        if self.name is not None:
            metadata["name"] = self.name
        return {"text": self.text, "metadata": metadata}
