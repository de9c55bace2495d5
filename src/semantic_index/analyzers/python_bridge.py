# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Symbol, complexity and reference queries for Python source text.

PythonBridge sends each query through an AnalyzerTransport (by default a
child interpreter running the staged analyzer script) and memoizes the
payload by content hash, so repeated queries over identical text never spawn
a second process while the cached result is fresh.

Error handling:
- Environment errors (no interpreter) surface as PythonNotFoundError
- Parse errors surface with the interpreter's own message
- Timeouts and cancellations have their own error types
- Failed queries are never cached and never retried
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

from semantic_index.analyzers.errors import AnalysisCancelledError
from semantic_index.analyzers.result_cache import ResultCache, make_cache_key
from semantic_index.analyzers.transport import (
    AnalyzerTransport,
    CancellationToken,
    create_transport,
)
from semantic_index.config import Config
from semantic_index.models import (
    ClassSummary,
    FunctionComplexity,
    PythonComplexity,
    PythonReference,
    PythonSymbol,
)

logger = logging.getLogger(__name__)


class PythonBridge:
    """Memoizing front end to the Python analyzer.

    Usage:
        bridge = PythonBridge(config)
        symbols = bridge.find_symbols(source)
        ...
        bridge.shutdown()
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        transport: Optional[AnalyzerTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the bridge.

        Args:
            config: Supplies cache sizing and transport settings.
            transport: Overrides the transport built from config.
            clock: Time source for result-cache freshness checks.
        """
        if config is None:
            config = Config.from_dict({})
        self.transport = transport if transport is not None else create_transport(config)
        self._cache = ResultCache(
            ttl_seconds=config.result_cache_ttl_seconds,
            max_entries=config.result_cache_max_entries,
            clock=clock,
        )

    def execute_python(
        self,
        source: str,
        action: str,
        args: Sequence[str] = (),
        cancel: Optional[CancellationToken] = None,
    ) -> Dict[str, Any]:
        """Run one analysis action, answering from the result cache when fresh.

        Raises:
            AnalysisCancelledError: If cancel is already set.
            AnalysisError: If the analysis fails (see transport for subclasses).
        """
        if cancel is not None and cancel.is_set():
            raise AnalysisCancelledError()

        key = make_cache_key(source, action, args)
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug(f"Result cache hit: {action}")
            return cached

        result = self.transport.run(source, action, args, cancel)
        self._cache.put(key, result)
        return result

    def find_symbols(
        self, source: str, cancel: Optional[CancellationToken] = None
    ) -> List[PythonSymbol]:
        """List function, class, variable and import declarations."""
        result = self.execute_python(source, "symbols", cancel=cancel)
        return [PythonSymbol.from_dict(s) for s in result.get("symbols") or []]

    def analyze_complexity(
        self, source: str, cancel: Optional[CancellationToken] = None
    ) -> PythonComplexity:
        """Compute per-function cyclomatic complexity and per-class method counts."""
        result = self.execute_python(source, "complexity", cancel=cancel)
        return PythonComplexity(
            cyclomatic_complexity=result.get("cyclomaticComplexity") or 1,
            functions=[
                FunctionComplexity(name=f["name"], complexity=f["complexity"], line=f["line"])
                for f in result.get("functions") or []
            ],
            classes=[
                ClassSummary(name=c["name"], methods=c["methods"], line=c["line"])
                for c in result.get("classes") or []
            ],
        )

    def find_references(
        self,
        source: str,
        symbol_name: str,
        cancel: Optional[CancellationToken] = None,
    ) -> List[PythonReference]:
        """Find every definition and usage of symbol_name."""
        result = self.execute_python(source, "references", [symbol_name], cancel=cancel)
        return [PythonReference.from_dict(r) for r in result.get("references") or []]

    @staticmethod
    def is_python_file(file_path: str) -> bool:
        return file_path.endswith(".py")

    @property
    def cached_result_count(self) -> int:
        return len(self._cache)

    def cleanup(self) -> None:
        """Remove the staged script, clear results and forget the interpreter."""
        self.transport.close()
        self._cache.clear()
        logger.debug("Python bridge cleaned up")

    def shutdown(self) -> None:
        """Release bridge resources. Called by the host at the end of its lifecycle."""
        self.cleanup()
