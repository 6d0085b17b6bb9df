"""Normalization of raw tool-call results.

A protocol call result is an ordered list of typed content blocks.
Text blocks are joined for the language model, inline binary blocks
are collected for upload, and the whole result is kept as ``raw`` for
the presentation layer.
"""
import logging
from typing import Any, Dict, List

from .models import BinaryItem, CallResult

logger = logging.getLogger(__name__)

TEXT_BLOCK_TYPES = {"text"}
BINARY_BLOCK_TYPES = {"image", "audio"}
DEFAULT_BINARY_MIME_TYPE = "image/png"


def _field(block: Any, name: str) -> Any:
    if isinstance(block, dict):
        return block.get(name)
    return getattr(block, name, None)


def to_jsonable(result: Any) -> Any:
    """Convert an SDK result model into plain JSON data."""
    if hasattr(result, "model_dump"):
        return result.model_dump(mode="json", by_alias=True, exclude_none=True)
    return result


def normalize_call_result(result: Any) -> CallResult:
    """Split a call result into model text, binary items and the raw payload.
    
    Blocks of any other kind (embedded resources, resource links) are
    left in ``raw`` only.
    
    Args:
        result: A ``CallToolResult`` or its JSON form.
        
    Returns:
        CallResult with ``text_content`` set to "" when there are no
        text blocks.
    """
    content = _field(result, "content") or []
    texts: List[str] = []
    binary_items: List[BinaryItem] = []
    skipped: Dict[str, int] = {}
    
    for block in content:
        block_type = _field(block, "type")
        if block_type in TEXT_BLOCK_TYPES:
            texts.append(_field(block, "text") or "")
        elif block_type in BINARY_BLOCK_TYPES:
            binary_items.append(BinaryItem(
                data=_field(block, "data") or "",
                mime_type=_field(block, "mimeType") or DEFAULT_BINARY_MIME_TYPE,
            ))
        else:
            skipped[str(block_type)] = skipped.get(str(block_type), 0) + 1
    
    if skipped:
        logger.debug(f"Content blocks kept in raw result only: {skipped}")
    
    return CallResult(
        text_content="\n".join(texts),
        binary_items=binary_items,
        raw=to_jsonable(result),
    )
