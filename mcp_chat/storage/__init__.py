"""Storage collaborators: binary objects and conversation history."""
from .image_storage import ImageStorage, ImageUploadError, UploadResult, decode_base64_image
from .history import HistoryStore, RedisHistoryStore

__all__ = [
    "ImageStorage",
    "ImageUploadError",
    "UploadResult",
    "decode_base64_image",
    "HistoryStore",
    "RedisHistoryStore",
]
