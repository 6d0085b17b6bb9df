"""Tool-calling agent: orchestration loop and event stream."""
from .orchestrator import ToolCallingOrchestrator, TurnState
from .events import format_sse
from .messages import ChatMessage, MessageImage, to_model_history, to_model_message

__all__ = [
    "ToolCallingOrchestrator",
    "TurnState",
    "format_sse",
    "ChatMessage",
    "MessageImage",
    "to_model_history",
    "to_model_message",
]
