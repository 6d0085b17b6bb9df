"""Tests for server-sent event framing."""
import json

from mcp_chat.agent import events
from mcp_chat.mcp.models import ToolCallRecord, UploadedImage


def parse_frame(frame):
    event_line, data_line = frame.rstrip("\n").split("\n")
    return event_line[len("event: "):], json.loads(data_line[len("data: "):])


def test_frame_layout():
    frame = events.format_sse("text", {"content": "hi"})

    assert frame == 'event: text\ndata: {"content": "hi"}\n\n'


def test_payload_stays_on_one_line():
    frame = events.format_sse("text", {"content": "line 1\nline 2 – 한국어"})

    assert frame.count("\n") == 3
    assert parse_frame(frame) == ("text", {"content": "line 1\nline 2 – 한국어"})


def test_done_payload_is_empty_object():
    event = events.done_event()

    assert events.format_sse(event["type"], event["data"]) == "event: done\ndata: {}\n\n"


def test_tool_call_start_payload():
    record = ToolCallRecord(
        id="call_1", server_id="files", server_name="File Server",
        name="read", arguments={"path": "a.txt"},
    )

    event = events.tool_call_start_event(record)

    assert event == {
        "type": "tool_call_start",
        "data": {
            "id": "call_1",
            "serverId": "files",
            "serverName": "File Server",
            "name": "read",
            "arguments": {"path": "a.txt"},
        },
    }


def test_tool_call_result_with_error_has_no_result():
    record = ToolCallRecord(id="call_1", server_id="files", server_name="Files", name="read")
    record.fail("boom")

    data = events.tool_call_result_event(record)["data"]

    assert data == {"id": "call_1", "error": "boom"}


def test_tool_call_result_with_images():
    record = ToolCallRecord(id="call_1", server_id="files", server_name="Files", name="shot")
    record.complete({"content": []}, [UploadedImage(url="http://cdn/x.png", mime_type="image/png")])

    data = events.tool_call_result_event(record)["data"]

    assert data["result"] == {"content": []}
    assert data["images"] == [{"url": "http://cdn/x.png", "mimeType": "image/png"}]
    assert "error" not in data
