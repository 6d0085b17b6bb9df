"""Tests for MCPClient session lifecycle."""
import asyncio

import pytest
from mcp.types import (
    ListPromptsResult,
    ListResourcesResult,
    ListToolsResult,
    Prompt,
    PromptArgument,
    Resource,
    Tool,
)

from mcp_chat.mcp import client as client_module
from mcp_chat.mcp.client import MCPClient, MCPNotConnectedError
from mcp_chat.mcp.config import TransportKind
from tests.fakes import stdio_config


class FakeTransport:
    kind = TransportKind.STDIO

    def __init__(self):
        self.opened = 0

    async def open(self, stack):
        self.opened += 1
        return object(), object()


class FakeSession:
    """Async context manager mimicking mcp.ClientSession."""

    initialize_error = None
    initialize_delay = 0.0
    instances = []

    def __init__(self, read_stream, write_stream, client_info=None):
        self.client_info = client_info
        self.exited = False
        type(self).instances.append(self)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        self.exited = True
        return False

    async def initialize(self):
        if self.initialize_delay:
            await asyncio.sleep(self.initialize_delay)
        if self.initialize_error is not None:
            raise self.initialize_error

    async def list_tools(self):
        return ListToolsResult(tools=[
            Tool(name="read", description="Read a file", inputSchema={"type": "object"}),
        ])

    async def list_prompts(self):
        return ListPromptsResult(prompts=[
            Prompt(name="summarize", arguments=[PromptArgument(name="topic", required=True)]),
        ])

    async def list_resources(self):
        return ListResourcesResult(resources=[
            Resource(uri="file:///notes.txt", name="notes", mimeType="text/plain"),
        ])

    async def call_tool(self, name, arguments):
        await asyncio.sleep(0.2)
        return {"content": []}


@pytest.fixture
def session_cls(monkeypatch):
    class Session(FakeSession):
        instances = []
    monkeypatch.setattr(client_module, "ClientSession", Session)
    return Session


@pytest.fixture
def client():
    return MCPClient(stdio_config("files"), FakeTransport())


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_connect_and_close(self, client, session_cls):
        await client.connect(timeout=1.0)

        assert client.is_alive
        assert session_cls.instances[0].client_info.name == "mcp-client-files"

        await client.close()

        assert not client.is_alive
        assert session_cls.instances[0].exited

    @pytest.mark.asyncio
    async def test_close_from_another_task(self, client, session_cls):
        await client.connect(timeout=1.0)

        await asyncio.create_task(client.close())

        assert not client.is_alive

    @pytest.mark.asyncio
    async def test_handshake_error_propagates(self, client, session_cls):
        session_cls.initialize_error = RuntimeError("bad handshake")

        with pytest.raises(RuntimeError, match="bad handshake"):
            await client.connect(timeout=1.0)

        assert not client.is_alive

    @pytest.mark.asyncio
    async def test_task_group_error_is_unwrapped(self, client, session_cls):
        session_cls.initialize_error = ExceptionGroup(
            "unhandled errors in a TaskGroup", [ConnectionRefusedError("server exited")]
        )

        with pytest.raises(ConnectionRefusedError, match="server exited"):
            await client.connect(timeout=1.0)

    @pytest.mark.asyncio
    async def test_handshake_timeout(self, client, session_cls):
        session_cls.initialize_delay = 5.0

        with pytest.raises(asyncio.TimeoutError):
            await client.connect(timeout=0.05)

        assert not client.is_alive


class TestOperations:

    @pytest.mark.asyncio
    async def test_requires_connection(self, client):
        with pytest.raises(MCPNotConnectedError):
            await client.list_tools()

    @pytest.mark.asyncio
    async def test_discovery_maps_wire_format(self, client, session_cls):
        await client.connect(timeout=1.0)

        tools = await client.list_tools()
        prompts = await client.list_prompts()
        resources = await client.list_resources()
        await client.close()

        assert tools[0].name == "read"
        assert tools[0].input_schema == {"type": "object"}
        assert prompts[0].arguments[0].name == "topic"
        assert prompts[0].arguments[0].required is True
        assert resources[0].uri == "file:///notes.txt"
        assert resources[0].mime_type == "text/plain"

    @pytest.mark.asyncio
    async def test_call_tool_timeout(self, client, session_cls):
        await client.connect(timeout=1.0)

        with pytest.raises(asyncio.TimeoutError):
            await client.call_tool("read", {}, timeout=0.01)

        await client.close()
