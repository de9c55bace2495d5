# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""MCP Server Protocol Layer for the semantic index.

This module only translates MCP tool calls into SemanticAnalysisService calls
and formats the results. All analysis and caching lives in the service.
"""

import argparse
import atexit
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import Context, FastMCP
from mcp.server.session import ServerSession

from semantic_index.analyzers.errors import PythonNotFoundError
from semantic_index.config import Config
from semantic_index.logging_setup import DEFAULT_LOG_DIR, setup_logging
from semantic_index.service import SemanticAnalysisService

logger = logging.getLogger(__name__)

SERVER_NAME = "semantic-index"


class SemanticIndexMCPServer:
    """MCP Protocol Layer for the semantic index.

    Responsibilities:
    - Initialize MCP server and register tools
    - Translate MCP requests to service calls
    - Format service responses as MCP tool results
    - Handle MCP server lifecycle (startup, shutdown)
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        service: Optional[SemanticAnalysisService] = None,
    ):
        """Initialize MCP server.

        Args:
            config: Configuration object. If None, loads from default location.
            service: Service layer instance. If None, creates default service.
        """
        if config is None:
            config = Config()
        self.config = config

        if service is None:
            service = SemanticAnalysisService(config=config)
        self.service = service

        self._shutdown_called = False

        self.mcp = FastMCP(name=SERVER_NAME)
        self._register_tools()

        logger.info("SemanticIndexMCPServer initialized")

    def _register_tools(self) -> None:
        """Register MCP tools with the server."""

        @self.mcp.tool()
        async def find_symbol(
            symbol_name: str,
            project_path: str,
            ctx: Context[ServerSession, None],
            symbol_type: str = "all",
            max_results: int = 100,
            exclude_patterns: Optional[List[str]] = None,
        ) -> Dict[str, Any]:
            """Find function, class, interface, variable and type declarations by name.

            Searches TypeScript/JavaScript files of the project's tsconfig.json and
            every Python file under project_path. Matches names containing symbol_name.

            Args:
                symbol_name: Name (or part of a name) to search for
                project_path: Root directory of the project
                ctx: MCP context for logging and progress
                symbol_type: all, function, class, interface, variable or type
                max_results: Maximum number of symbols returned
                exclude_patterns: Path fragments to skip

            Returns:
                Dictionary with:
                - symbols: name, kind, filePath, line, column, preview
                - summary: Human-readable counts by kind
            """
            await ctx.info(f"Finding symbol {symbol_name!r} in {project_path}")

            try:
                result = self.service.find_symbol(
                    symbol_name,
                    project_path,
                    symbol_type=symbol_type,
                    max_results=max_results,
                    exclude_patterns=exclude_patterns or (),
                )
                await ctx.info(result.summary)
                return result.to_dict()

            except FileNotFoundError:
                await ctx.error(f"Project not found: {project_path}")
                raise
            except Exception as e:
                await ctx.error(f"Error finding symbol {symbol_name!r}: {e}")
                raise

        @self.mcp.tool()
        async def find_references(
            symbol_name: str,
            project_path: str,
            ctx: Context[ServerSession, None],
            max_references: int = 500,
        ) -> Dict[str, Any]:
            """Find all references to a symbol, definitions included.

            Args:
                symbol_name: Exact identifier to look for
                project_path: Root directory of the project
                ctx: MCP context for logging and progress
                max_references: Maximum number of references returned

            Returns:
                Dictionary with:
                - references: filePath, line, column, text, isDefinition
                - summary: totalReferences, filesCount, definitions, usages
            """
            await ctx.info(f"Finding references to {symbol_name!r} in {project_path}")

            try:
                result = self.service.find_references(
                    symbol_name, project_path, max_references=max_references
                )
                await ctx.info(
                    f"Found {result.summary.total_references} references "
                    f"in {result.summary.files_count} files"
                )
                return result.to_dict()

            except FileNotFoundError:
                await ctx.error(f"Project not found: {project_path}")
                raise
            except Exception as e:
                await ctx.error(f"Error finding references to {symbol_name!r}: {e}")
                raise

        @self.mcp.tool()
        async def analyze_python_complexity(
            source: str,
            ctx: Context[ServerSession, None],
        ) -> Dict[str, Any]:
            """Compute cyclomatic complexity of Python source.

            Args:
                source: Python source text
                ctx: MCP context for logging and progress

            Returns:
                Dictionary with cyclomaticComplexity, functions and classes.
            """
            try:
                return self.service.analyze_python_complexity(source).to_dict()

            except PythonNotFoundError as e:
                await ctx.error(str(e))
                raise
            except Exception as e:
                await ctx.error(f"Error analyzing Python complexity: {e}")
                raise

        @self.mcp.tool()
        async def chunk_code(
            file_path: str,
            content: str,
            ctx: Context[ServerSession, None],
            chunk_size: int = 512,
            chunk_overlap: int = 50,
        ) -> Dict[str, Any]:
            """Split a source file into chunks along its declarations.

            Args:
                file_path: Path used to pick the language (by extension)
                content: Text of the file
                ctx: MCP context for logging and progress
                chunk_size: Maximum characters per chunk for plain-text splitting
                chunk_overlap: Characters carried between plain-text chunks

            Returns:
                Dictionary with:
                - chunks: text and metadata (startLine, endLine, type, name)
            """
            chunks = self.service.chunk_code(
                file_path, content, chunk_size=chunk_size, chunk_overlap=chunk_overlap
            )
            await ctx.info(f"Split {file_path} into {len(chunks)} chunks")
            return {"chunks": [c.to_dict() for c in chunks]}

        @self.mcp.tool()
        async def get_cache_statistics(
            ctx: Context[ServerSession, None],
        ) -> Dict[str, Any]:
            """Report project cache and Python result cache usage."""
            stats = self.service.get_cache_statistics()
            await ctx.info(
                f"{stats['size']} cached projects, "
                f"{stats['totalMemoryMB']:.1f}MB estimated"
            )
            return stats

        logger.info(
            "MCP tools registered: find_symbol, find_references, "
            "analyze_python_complexity, chunk_code, get_cache_statistics"
        )

    def run(self, transport: str = "stdio") -> None:
        """Run the MCP server.

        Args:
            transport: Transport type to use. Options:
                - "stdio": Standard input/output (default)
                - "streamable-http": HTTP transport
                - "sse": Server-sent events transport
        """
        logger.info(f"Starting MCP server with {transport} transport")
        self.mcp.run(transport=transport)  # type: ignore[arg-type]

    def shutdown(self) -> None:
        """Shutdown the MCP server and cleanup resources.

        Safe to call more than once; only the first call reaches the service.
        """
        if self._shutdown_called:
            return
        self._shutdown_called = True
        logger.info("Shutting down MCP server")
        self.service.shutdown()


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed arguments namespace.
    """
    parser = argparse.ArgumentParser(
        description="Semantic Index MCP Server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a YAML configuration file. Default: ./.semantic_index.yml",
    )
    parser.add_argument(
        "--transport",
        type=str,
        choices=["stdio", "streamable-http", "sse"],
        default="stdio",
        help="Transport type for MCP server. Default: stdio",
    )
    parser.add_argument(
        "--log-dir",
        type=Path,
        default=None,
        help=f"Directory for JSON log files. Default: {DEFAULT_LOG_DIR}",
    )
    return parser.parse_args(argv)


def main() -> None:
    """Main entry point for MCP server."""
    args = parse_args()

    log_file = setup_logging(log_dir=args.log_dir)

    server = SemanticIndexMCPServer(config=Config(args.config))
    atexit.register(server.shutdown)
    logger.info(f"Starting MCP server, logging to {log_file}")
    server.run(transport=args.transport)


if __name__ == "__main__":
    main()
