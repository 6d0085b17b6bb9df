"""Conversation history on Redis.

Each session is one Redis list of JSON-encoded messages, refreshed to
the configured TTL on every append.
"""
import json
import logging
import time
import uuid
from typing import Any, Dict, List, Optional, Protocol

import redis

from ..config import Settings

logger = logging.getLogger(__name__)

HISTORY_KEY_PREFIX = "chat:history:"


class HistoryStore(Protocol):
    
    def append(
        self,
        session_id: str,
        role: str,
        content: str,
        images: Optional[List[Dict[str, str]]] = None,
    ) -> str:
        ...
    
    def read(self, session_id: str) -> List[Dict[str, Any]]:
        ...


class RedisHistoryStore:
    """Append-only message log per session."""
    
    def __init__(self, client: redis.Redis, ttl: int):
        self.client = client
        self.ttl = ttl
    
    @classmethod
    def from_settings(cls, settings: Settings) -> "RedisHistoryStore":
        redis_kwargs = {
            'host': settings.redis_host,
            'port': settings.redis_port,
            'db': settings.redis_db,
            'socket_timeout': settings.redis_socket_timeout,
            'socket_connect_timeout': settings.redis_socket_connect_timeout,
            'decode_responses': True
        }
        if settings.redis_password:
            redis_kwargs['password'] = settings.redis_password
            if settings.redis_username:
                redis_kwargs['username'] = settings.redis_username
        return cls(redis.Redis(**redis_kwargs), settings.history_ttl)
    
    def _key(self, session_id: str) -> str:
        return f"{HISTORY_KEY_PREFIX}{session_id}"
    
    def append(
        self,
        session_id: str,
        role: str,
        content: str,
        images: Optional[List[Dict[str, str]]] = None,
    ) -> str:
        """Append a message and return its id."""
        message_id = str(uuid.uuid4())
        message = {
            "id": message_id,
            "role": role,
            "content": content,
            "createdAt": int(time.time() * 1000),
        }
        if images:
            message["images"] = images
        
        key = self._key(session_id)
        pipe = self.client.pipeline()
        pipe.rpush(key, json.dumps(message, ensure_ascii=False))
        pipe.expire(key, self.ttl)
        pipe.execute()
        
        logger.debug(f"Appended {role} message {message_id} to session {session_id}")
        return message_id
    
    def read(self, session_id: str) -> List[Dict[str, Any]]:
        return [json.loads(raw) for raw in self.client.lrange(self._key(session_id), 0, -1)]
