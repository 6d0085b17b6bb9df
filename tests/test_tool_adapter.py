"""Tests for tool-name prefixing and the per-turn tool catalog."""
from unittest.mock import AsyncMock, MagicMock

import pytest

from mcp_chat.mcp.config import MCPServerConfig
from mcp_chat.mcp.models import MCPTool
from mcp_chat.mcp.tool_adapter import (
    ToolCatalog,
    ToolResolutionError,
    build_tool_catalog,
    prefix_tool_name,
    split_tool_name,
    to_function_declaration,
)


class TestNaming:

    @pytest.mark.parametrize("server_id, tool_name", [
        ("files", "read"),
        ("my-server", "list_dir"),
        ("a_b", "_private"),
        ("git", "log__graph"),
    ])
    def test_round_trip(self, server_id, tool_name):
        assert split_tool_name(prefix_tool_name(server_id, tool_name)) == (server_id, tool_name)

    def test_prefixed_form(self):
        assert prefix_tool_name("files", "read") == "files__read"

    @pytest.mark.parametrize("name", ["read", "__read", "files__"])
    def test_unprefixed_names_fail(self, name):
        with pytest.raises(ToolResolutionError):
            split_tool_name(name)


class TestFunctionDeclaration:

    def test_schema_properties_and_required(self):
        tool = MCPTool(
            name="read",
            description="Read a file",
            input_schema={
                "type": "object",
                "properties": {"path": {"type": "string"}},
                "required": ["path"],
                "additionalProperties": False,
            },
        )

        declaration = to_function_declaration("files__read", tool)

        assert declaration == {
            "type": "function",
            "function": {
                "name": "files__read",
                "description": "Read a file",
                "parameters": {
                    "type": "object",
                    "properties": {"path": {"type": "string"}},
                    "required": ["path"],
                },
            },
        }

    def test_missing_description_and_schema(self):
        declaration = to_function_declaration("files__ping", MCPTool(name="ping"))

        assert declaration["function"]["description"] == "Tool: files__ping"
        assert declaration["function"]["parameters"] == {"type": "object", "properties": {}}


class TestToolCatalog:

    def test_resolve_known_tool(self):
        catalog = ToolCatalog()
        catalog.add("files", "File Server", MCPTool(name="read"))

        route = catalog.resolve("files__read")

        assert (route.server_id, route.server_name, route.tool_name) == ("files", "File Server", "read")

    def test_resolve_unlisted_tool_on_known_server(self):
        catalog = ToolCatalog()
        catalog.add("files", "File Server", MCPTool(name="read"))

        assert catalog.resolve("files__write").tool_name == "write"

    def test_resolve_unknown_server(self):
        catalog = ToolCatalog()
        catalog.add("files", "File Server", MCPTool(name="read"))

        with pytest.raises(ToolResolutionError):
            catalog.resolve("web__fetch")

    @pytest.mark.asyncio
    async def test_build_skips_failing_servers(self):
        manager = MagicMock()
        manager.get_connected_server_ids.return_value = ["files", "broken"]
        manager.get_server_config.return_value = MCPServerConfig(
            id="files", name="File Server", transport="stdio", command="uvx"
        )

        async def list_tools(server_id):
            if server_id == "broken":
                raise RuntimeError("listing failed")
            return [MCPTool(name="read"), MCPTool(name="write")]

        manager.list_tools = AsyncMock(side_effect=list_tools)

        catalog = await build_tool_catalog(manager)

        assert len(catalog) == 2
        assert set(catalog.routes) == {"files__read", "files__write"}
        assert catalog.routes["files__read"].server_name == "File Server"
