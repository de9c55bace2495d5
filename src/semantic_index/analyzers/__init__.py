# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Language analyzers: tree-sitter queries for TS/JS and the Python bridge."""

from .errors import (
    AnalysisCancelledError,
    AnalysisError,
    AnalysisTimeoutError,
    PythonNotFoundError,
)
from .python_bridge import PythonBridge
from .transport import InProcessTransport, SubprocessTransport, create_transport

__all__ = [
    "AnalysisCancelledError",
    "AnalysisError",
    "AnalysisTimeoutError",
    "InProcessTransport",
    "PythonBridge",
    "PythonNotFoundError",
    "SubprocessTransport",
    "create_transport",
]
