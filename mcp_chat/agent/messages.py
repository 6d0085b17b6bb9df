"""Conversion of chat messages into language-model messages."""
from typing import Any, Dict, List, Optional, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from pydantic import BaseModel, Field

from ..storage.image_storage import parse_data_url


class MessageImage(BaseModel):
    """An image attached to a chat message."""
    
    url: str = Field(..., description="Base64 data URL or public URL")
    mimeType: str = Field("image/png", description="MIME type of the image")


class ChatMessage(BaseModel):
    role: str
    content: str = ""
    images: Optional[List[MessageImage]] = None


def _image_part(image: MessageImage) -> Optional[Dict[str, Any]]:
    parsed = parse_data_url(image.url)
    if parsed:
        mime_type, data = parsed
        return {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{data}"}}
    if image.url.startswith(("http://", "https://")):
        return {"type": "image_url", "image_url": {"url": image.url}}
    return None


def to_model_message(message: ChatMessage) -> BaseMessage:
    """Convert one chat message; non-user roles become assistant messages."""
    if message.role != "user":
        return AIMessage(content=message.content or "")
    
    image_parts = [
        part for part in (_image_part(img) for img in message.images or [])
        if part is not None
    ]
    if not image_parts:
        return HumanMessage(content=message.content or "")
    
    parts: List[Any] = []
    if message.content:
        parts.append({"type": "text", "text": message.content})
    parts.extend(image_parts)
    return HumanMessage(content=parts)


def to_model_history(messages: Sequence[ChatMessage]) -> List[BaseMessage]:
    return [to_model_message(m) for m in messages]


def message_text(message: BaseMessage) -> str:
    """Plain text of a model message, joining text parts of list content."""
    content = message.content
    if isinstance(content, str):
        return content
    texts = []
    for part in content:
        if isinstance(part, str):
            texts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            texts.append(part.get("text", ""))
    return "".join(texts)
