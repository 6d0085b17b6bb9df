"""Server-sent event framing for orchestration progress.

Every event is a dict ``{"type": ..., "data": ...}``. ``format_sse``
turns one event into a frame::

    event: <type>
    data: <json>

followed by a blank line.
"""
import json
from typing import Any, Dict

from ..mcp.models import ToolCallRecord

TEXT = "text"
TOOL_CALL_START = "tool_call_start"
TOOL_CALL_RESULT = "tool_call_result"
ERROR = "error"
DONE = "done"

TERMINAL_EVENTS = (DONE, ERROR)


def event(event_type: str, data: Any) -> Dict[str, Any]:
    return {"type": event_type, "data": data}


def text_event(content: str) -> Dict[str, Any]:
    return event(TEXT, {"content": content})


def error_event(message: str) -> Dict[str, Any]:
    return event(ERROR, {"message": message})


def done_event() -> Dict[str, Any]:
    return event(DONE, {})


def tool_call_start_event(record: ToolCallRecord) -> Dict[str, Any]:
    return event(TOOL_CALL_START, {
        "id": record.id,
        "serverId": record.server_id,
        "serverName": record.server_name,
        "name": record.name,
        "arguments": record.arguments,
    })


def tool_call_result_event(record: ToolCallRecord) -> Dict[str, Any]:
    """Build the result event; ``result`` and ``error`` are mutually exclusive."""
    data: Dict[str, Any] = {"id": record.id}
    if record.error is not None:
        data["error"] = record.error
    else:
        data["result"] = record.result
    if record.images:
        data["images"] = [image.to_dict() for image in record.images]
    return event(TOOL_CALL_RESULT, data)


def format_sse(event_type: str, data: Any) -> str:
    """Format one frame; the JSON payload never spans lines."""
    payload = json.dumps(data, ensure_ascii=False, default=str)
    return f"event: {event_type}\ndata: {payload}\n\n"
