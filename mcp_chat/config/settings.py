"""Application settings and configuration."""
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    
    All configurable variables may be set in the .env file.
    """
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        protected_namespaces=()  # Allow the model_name field
    )
    
    # ========== LLM ==========
    openai_api_key: str = ""
    openai_api_base: Optional[str] = None
    model_name: str = "gpt-4o-mini"
    temperature: float = 0.3
    llm_request_timeout: float = 120.0
    
    # ========== Orchestration ==========
    max_tool_rounds: int = 10  # Upper bound on model/tool rounds per turn
    tool_call_timeout: float = 60.0  # Seconds per tool call
    
    # ========== MCP ==========
    mcp_config_path: str = "./config/mcp_servers.json"
    mcp_connect_timeout: float = 30.0
    mcp_autoconnect: bool = False  # Connect all configured servers on startup
    
    # ========== MinIO ==========
    minio_endpoint: str = "localhost:9000"
    minio_access_key: str = "minioadmin"
    minio_secret_key: str = "minioadmin"
    minio_secure: bool = False
    minio_bucket: str = "image-store"
    minio_public_endpoint: str = ""  # Base URL for public links; derived from endpoint if empty
    
    # ========== Redis ==========
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_username: str = ""
    redis_password: str = ""
    redis_socket_timeout: int = 5
    redis_socket_connect_timeout: int = 5
    history_ttl: int = 7 * 24 * 3600
    
    # ========== Logging & API ==========
    log_level: str = "INFO"
    log_file: Optional[str] = "./logs/mcp_chat.log"
    api_host: str = "0.0.0.0"
    api_port: int = 8009
    
    @property
    def minio_public_base_url(self) -> str:
        """Base URL under which uploaded objects are publicly readable."""
        if self.minio_public_endpoint:
            return self.minio_public_endpoint.rstrip("/")
        scheme = "https" if self.minio_secure else "http"
        return f"{scheme}://{self.minio_endpoint}"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    
    All configuration is loaded from environment variables (.env file).
    """
    return Settings()
