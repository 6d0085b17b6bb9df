"""Tests for tool-result normalization."""
from mcp.types import CallToolResult, EmbeddedResource, ImageContent, TextContent, TextResourceContents

from mcp_chat.mcp.normalizer import normalize_call_result


def test_text_and_binary_blocks_are_split():
    result = normalize_call_result({
        "content": [
            {"type": "text", "text": "a"},
            {"type": "image", "data": "iVBORw0K", "mimeType": "image/png"},
            {"type": "text", "text": "b"},
        ]
    })

    assert result.text_content == "a\nb"
    assert len(result.binary_items) == 1
    assert result.binary_items[0].data == "iVBORw0K"


def test_no_text_blocks_gives_empty_string():
    result = normalize_call_result({
        "content": [{"type": "image", "data": "AAAA", "mimeType": "image/gif"}]
    })

    assert result.text_content == ""
    assert result.binary_items[0].mime_type == "image/gif"


def test_missing_mime_type_defaults_to_png():
    result = normalize_call_result({"content": [{"type": "image", "data": "AAAA"}]})

    assert result.binary_items[0].mime_type == "image/png"


def test_empty_result():
    result = normalize_call_result({"content": []})

    assert result.text_content == ""
    assert result.binary_items == []


def test_sdk_result_is_preserved_as_json_in_raw():
    sdk_result = CallToolResult(content=[
        TextContent(type="text", text="hello"),
        ImageContent(type="image", data="AAAA", mimeType="image/jpeg"),
        EmbeddedResource(
            type="resource",
            resource=TextResourceContents(uri="file:///x.txt", text="inner"),
        ),
    ])

    result = normalize_call_result(sdk_result)

    assert result.text_content == "hello"
    assert [b.mime_type for b in result.binary_items] == ["image/jpeg"]
    assert isinstance(result.raw, dict)
    assert [block["type"] for block in result.raw["content"]] == ["text", "image", "resource"]
    assert result.raw["content"][2]["resource"]["text"] == "inner"
