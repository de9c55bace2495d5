# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Tests for MCP Server Protocol Layer."""

from pathlib import Path
from unittest.mock import AsyncMock, Mock, patch

import pytest

# Skip tests if mcp package not available
pytest.importorskip("mcp", reason="MCP package not installed")

from semantic_index.config import Config  # noqa: E402
from semantic_index.mcp_server import SemanticIndexMCPServer, parse_args  # noqa: E402
from semantic_index.service import SemanticAnalysisService  # noqa: E402

TOOL_NAMES = {
    "find_symbol",
    "find_references",
    "analyze_python_complexity",
    "chunk_code",
    "get_cache_statistics",
}


@pytest.fixture
def server():
    config = Config.from_dict({"python_transport": "in_process"})
    server = SemanticIndexMCPServer(config=config)
    yield server
    server.shutdown()


@pytest.fixture
def ctx():
    mock_ctx = AsyncMock()
    mock_ctx.info = AsyncMock()
    mock_ctx.error = AsyncMock()
    return mock_ctx


def _tool(server, name):
    return server.mcp._tool_manager._tools[name]


class TestSemanticIndexMCPServer:
    def test_server_initialization(self, server):
        assert server.mcp is not None
        assert server.service is not None
        assert server.mcp.name == "semantic-index"

    def test_custom_service(self):
        config = Config.from_dict({})
        service = SemanticAnalysisService(config=config)

        server = SemanticIndexMCPServer(config=config, service=service)

        assert server.config is config
        assert server.service is service

    def test_tools_are_registered(self, server):
        assert TOOL_NAMES <= set(server.mcp._tool_manager._tools)

    def test_shutdown_delegates_to_service(self):
        service = Mock(spec=SemanticAnalysisService)
        server = SemanticIndexMCPServer(config=Config.from_dict({}), service=service)

        server.shutdown()

        service.shutdown.assert_called_once()


class TestToolHandlers:
    @pytest.mark.asyncio
    async def test_find_symbol(self, server, ctx, ts_project: Path):
        result = await _tool(server, "find_symbol").fn(
            symbol_name="UserService", project_path=str(ts_project), ctx=ctx
        )

        names = [s["name"] for s in result["symbols"]]
        assert "UserService" in names
        assert result["summary"].startswith("Found")
        assert {"name", "kind", "filePath", "line", "column", "preview"} <= set(
            result["symbols"][0]
        )
        ctx.info.assert_called()

    @pytest.mark.asyncio
    async def test_find_symbol_missing_project(self, server, ctx, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            await _tool(server, "find_symbol").fn(
                symbol_name="x", project_path=str(tmp_path / "missing"), ctx=ctx
            )
        ctx.error.assert_called()

    @pytest.mark.asyncio
    async def test_find_references(self, server, ctx, ts_project: Path):
        result = await _tool(server, "find_references").fn(
            symbol_name="Logger", project_path=str(ts_project), ctx=ctx
        )

        assert result["summary"]["totalReferences"] == len(result["references"])
        assert result["summary"]["definitions"] >= 1

    @pytest.mark.asyncio
    async def test_find_references_unexpected_error(self, server, ctx):
        with patch.object(server.service, "find_references", side_effect=RuntimeError("boom")):
            with pytest.raises(RuntimeError):
                await _tool(server, "find_references").fn(
                    symbol_name="x", project_path="/tmp", ctx=ctx
                )
        ctx.error.assert_called()

    @pytest.mark.asyncio
    async def test_analyze_python_complexity(self, server, ctx):
        result = await _tool(server, "analyze_python_complexity").fn(
            source="def f(x):\n    if x:\n        return 1\n", ctx=ctx
        )

        assert result["cyclomaticComplexity"] == 3
        assert result["functions"] == [{"name": "f", "complexity": 2, "line": 1}]

    @pytest.mark.asyncio
    async def test_chunk_code(self, server, ctx):
        result = await _tool(server, "chunk_code").fn(
            file_path="a.ts", content="export function a() {}\n", ctx=ctx
        )

        assert result["chunks"] == [
            {
                "text": "export function a() {}",
                "metadata": {
                    "startLine": 1,
                    "endLine": 1,
                    "type": "FunctionDeclaration",
                    "name": "a",
                },
            }
        ]

    @pytest.mark.asyncio
    async def test_get_cache_statistics(self, server, ctx, ts_project: Path):
        await _tool(server, "find_symbol").fn(
            symbol_name="User", project_path=str(ts_project), ctx=ctx
        )

        stats = await _tool(server, "get_cache_statistics").fn(ctx=ctx)

        assert stats["size"] == 1
        assert stats["projects"][0]["files"] == 3


class TestParseArgs:
    def test_defaults(self):
        args = parse_args([])

        assert args.config is None
        assert args.transport == "stdio"
        assert args.log_dir is None

    def test_all_options(self, tmp_path: Path):
        args = parse_args(
            [
                "--config",
                str(tmp_path / "c.yml"),
                "--transport",
                "sse",
                "--log-dir",
                str(tmp_path),
            ]
        )

        assert args.config == tmp_path / "c.yml"
        assert args.transport == "sse"
        assert args.log_dir == tmp_path


class TestServerShutdown:
    def test_shutdown_is_idempotent(self):
        service = Mock(spec=SemanticAnalysisService)
        server = SemanticIndexMCPServer(config=Config.from_dict({}), service=service)
        assert not server._shutdown_called

        server.shutdown()
        server.shutdown()
        server.shutdown()

        assert server._shutdown_called
        service.shutdown.assert_called_once()
