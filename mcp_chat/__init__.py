"""Chat service that lets a language model call tools on MCP servers."""

__version__ = "1.0.0"
