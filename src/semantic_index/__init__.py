# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Semantic code index: cached TS/JS projects and a sandboxed Python analyzer."""

from .analyzers import (
    AnalysisCancelledError,
    AnalysisError,
    AnalysisTimeoutError,
    PythonBridge,
    PythonNotFoundError,
)
from .config import Config, ConfigurationError
from .models import CodeChunk, ProjectCacheStatistics, ReferenceMatch, SymbolMatch
from .project import ProjectHandle, ProjectLoadError, load_project
from .project_cache import ProjectCache
from .service import ReferenceSearchResult, SemanticAnalysisService, SymbolSearchResult

__version__ = "0.1.0"

__all__ = [
    "AnalysisCancelledError",
    "AnalysisError",
    "AnalysisTimeoutError",
    "CodeChunk",
    "Config",
    "ConfigurationError",
    "ProjectCache",
    "ProjectCacheStatistics",
    "ProjectHandle",
    "ProjectLoadError",
    "PythonBridge",
    "PythonNotFoundError",
    "ReferenceMatch",
    "ReferenceSearchResult",
    "SemanticAnalysisService",
    "SymbolMatch",
    "SymbolSearchResult",
    "load_project",
]

# Conditional import for MCP server (requires the mcp package)
try:
    from .mcp_server import SemanticIndexMCPServer

    __all__.append("SemanticIndexMCPServer")
except ImportError:
    pass
