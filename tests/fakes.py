"""Fakes for registry and orchestrator tests."""
import asyncio
from typing import Any, Dict, List, Optional

from mcp_chat.mcp.config import MCPServerConfig
from mcp_chat.mcp.models import MCPTool


class FakeClient:
    """Stands in for MCPClient; behaviour is set per server id."""
    
    def __init__(self, config, transport, delay=0.0, error=None, tools=None, call_result=None, resource=None):
        self.server_id = config.id
        self.config = config
        self.transport = transport
        self.delay = delay
        self.error = error
        self.tools = tools or []
        self.call_result = call_result
        self.resource = resource
        self.alive = False
        self.connect_calls = 0
        self.close_calls = 0
        self.close_error: Optional[Exception] = None
        self.calls: List[Any] = []
    
    @property
    def is_alive(self) -> bool:
        return self.alive
    
    async def connect(self, timeout: float) -> None:
        self.connect_calls += 1
        if self.delay:
            await asyncio.wait_for(asyncio.sleep(self.delay), timeout=timeout)
        if self.error is not None:
            raise self.error
        self.alive = True
    
    async def close(self) -> None:
        self.close_calls += 1
        self.alive = False
        if self.close_error is not None:
            raise self.close_error
    
    async def list_tools(self) -> List[MCPTool]:
        return self.tools
    
    async def call_tool(self, tool_name, arguments=None, timeout=None):
        self.calls.append((tool_name, arguments, timeout))
        return self.call_result
    
    async def get_prompt(self, prompt_name, arguments=None):
        self.calls.append((prompt_name, arguments))
        return {"messages": [{"role": "user", "content": {"type": "text", "text": f"{prompt_name}: {arguments}"}}]}
    
    async def read_resource(self, uri):
        self.calls.append((uri,))
        return self.resource


class FakeClientFactory:
    """Client factory recording every client it builds."""
    
    def __init__(self):
        self.options: Dict[str, Dict[str, Any]] = {}
        self.created: List[FakeClient] = []
    
    def configure(self, server_id: str, **options) -> None:
        self.options[server_id] = options
    
    def __call__(self, config, transport) -> FakeClient:
        client = FakeClient(config, transport, **self.options.get(config.id, {}))
        self.created.append(client)
        return client
    
    def for_server(self, server_id: str) -> List[FakeClient]:
        return [c for c in self.created if c.server_id == server_id]


def stdio_config(server_id: str = "files", **overrides) -> MCPServerConfig:
    values = dict(id=server_id, name=f"{server_id} server", transport="stdio", command="uvx", args=["srv"])
    values.update(overrides)
    return MCPServerConfig(**values)
