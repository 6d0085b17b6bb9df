"""FastAPI application for the MCP chat service."""
import asyncio
import logging
import uuid
from contextlib import asynccontextmanager, contextmanager
from typing import Any, Callable, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from langchain_openai import ChatOpenAI
from pydantic import BaseModel, Field

from .agent import ChatMessage, ToolCallingOrchestrator, format_sse, to_model_history, to_model_message
from .agent import events
from .config import Settings, get_settings
from .exceptions import (
    ExecutionFailed,
    InvalidRequest,
    ServerAlreadyExists,
    ServerNotConnected,
    ServerNotFound,
)
from .mcp import (
    ConfigError,
    MCPClientManager,
    MCPConfigManager,
    MCPNotConnectedError,
    MCPServerConfig,
)
from .storage import ImageStorage, ImageUploadError, RedisHistoryStore
from .utils.logger import setup_logger

logger = logging.getLogger(__name__)


# Request/Response models
class ChatRequest(BaseModel):
    """Request model for a chat turn."""

    messages: List[ChatMessage] = Field(
        default_factory=list,
        description="Conversation so far; the last message must be from the user"
    )
    sessionId: Optional[str] = Field(None, description="Session to record history and images under")
    messageId: Optional[str] = Field(None, description="Assistant message that tool images belong to")


class ConnectRequest(BaseModel):
    config: Dict[str, Any]


class DisconnectRequest(BaseModel):
    serverId: str


class ExecuteToolRequest(BaseModel):
    serverId: str
    toolName: str
    arguments: Optional[Dict[str, Any]] = None


class GetPromptRequest(BaseModel):
    serverId: str
    promptName: str
    arguments: Optional[Dict[str, str]] = None


class ReadResourceRequest(BaseModel):
    serverId: str
    uri: str


class ImportConfigRequest(BaseModel):
    servers: List[Dict[str, Any]]
    version: Optional[str] = None
    exportedAt: Optional[str] = None
    merge: bool = False


class UploadImageRequest(BaseModel):
    imageData: str = Field(..., description="Base64 image data, optionally as a data URL")
    sessionId: str
    messageId: str
    mimeType: str = "image/png"
    filename: Optional[str] = None


def create_llm(settings: Settings) -> ChatOpenAI:
    return ChatOpenAI(
        model=settings.model_name,
        temperature=settings.temperature,
        openai_api_key=settings.openai_api_key,
        openai_api_base=settings.openai_api_base,
        timeout=settings.llm_request_timeout,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging, load server definitions, and clean up on shutdown."""
    settings: Settings = app.state.settings
    setup_logger("", log_level=settings.log_level, log_file=settings.log_file)
    logger.info("Starting MCP Chat API")

    configs = app.state.config_manager.load_config()
    if settings.mcp_autoconnect and configs:
        states = await asyncio.gather(
            *(app.state.manager.connect(c) for c in configs.values())
        )
        connected = [s.server_id for s in states if s.status.value == "connected"]
        logger.info(f"MCP autoconnect: {len(connected)}/{len(states)} servers connected")

    yield

    logger.info("Disconnecting MCP servers...")
    await app.state.manager.disconnect_all()
    logger.info("MCP servers disconnected")


def create_app(
    settings: Optional[Settings] = None,
    manager: Optional[MCPClientManager] = None,
    config_manager: Optional[MCPConfigManager] = None,
    image_storage: Optional[ImageStorage] = None,
    history_store: Optional[Any] = None,
    llm_factory: Optional[Callable[[], Any]] = None,
) -> FastAPI:
    """Build the application.

    Every collaborator can be injected; missing ones are built from
    settings. The registry is created once per app and shared by all
    requests.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="MCP Chat API",
        description="Chat with a language model that calls tools on MCP servers",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.manager = manager or MCPClientManager(
        connect_timeout=settings.mcp_connect_timeout,
        tool_timeout=settings.tool_call_timeout,
    )
    app.state.config_manager = config_manager or MCPConfigManager(settings.mcp_config_path)
    app.state.image_storage = image_storage or ImageStorage.from_settings(settings)
    app.state.history_store = history_store or RedisHistoryStore.from_settings(settings)
    app.state.llm_factory = llm_factory or (lambda: create_llm(settings))

    _register_routes(app)
    return app


def _register_routes(app: FastAPI) -> None:

    @app.get("/health")
    async def health_check(request: Request):
        manager: MCPClientManager = request.app.state.manager
        return {
            "status": "healthy",
            "mcp": {"connected_servers": manager.get_connected_server_ids()},
        }

    # ========== Chat ==========

    @app.post("/api/chat")
    async def chat(body: ChatRequest, request: Request):
        """
        Run one chat turn with Server-Sent Events (SSE) streaming.

        Event types: text, tool_call_start, tool_call_result, error, done.
        The stream always ends with exactly one done or error frame.
        """
        if not body.messages:
            raise InvalidRequest("Messages array is required")
        last_message = body.messages[-1]
        if last_message.role != "user":
            raise InvalidRequest("Last message must be from user")

        state = request.app.state
        history_store = state.history_store
        session_id = body.sessionId
        message_id = body.messageId or (str(uuid.uuid4()) if session_id else None)

        logger.info(
            f"Chat turn [session: {session_id or 'none'}] "
            f"with {len(body.messages)} messages"
        )

        async def event_generator():
            final_text = ""
            try:
                if session_id:
                    await _append_history(
                        history_store, session_id, "user", last_message.content,
                        [img.model_dump() for img in last_message.images or []],
                    )

                orchestrator = ToolCallingOrchestrator(
                    llm=state.llm_factory(),
                    manager=state.manager,
                    image_storage=state.image_storage,
                    max_rounds=state.settings.max_tool_rounds,
                )
                async for event in orchestrator.run(
                    history=to_model_history(body.messages[:-1]),
                    user_message=to_model_message(last_message),
                    session_id=session_id,
                    message_id=message_id,
                ):
                    if event["type"] == events.TEXT:
                        final_text = event["data"]["content"]
                    yield format_sse(event["type"], event["data"])

                if session_id and final_text:
                    await _append_history(history_store, session_id, "assistant", final_text)

            except Exception as e:
                logger.error(f"Error in chat stream: {str(e)}", exc_info=True)
                yield format_sse(events.ERROR, {"message": str(e) or "Internal server error"})

        return StreamingResponse(
            event_generator(),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",  # Disable nginx buffering
            }
        )

    # ========== Connections ==========

    @app.post("/api/mcp/connect")
    async def connect_server(body: ConnectRequest, request: Request):
        try:
            config = MCPServerConfig.from_dict(body.config)
        except ConfigError as e:
            raise InvalidRequest(str(e))

        state = await request.app.state.manager.connect(config)
        response = {
            "success": state.status.value == "connected",
            "serverId": config.id,
            "state": state.to_dict(),
        }
        if state.error:
            response["error"] = state.error
        return response

    @app.post("/api/mcp/disconnect")
    async def disconnect_server(body: DisconnectRequest, request: Request):
        await request.app.state.manager.disconnect(body.serverId)
        return {"success": True}

    @app.get("/api/mcp/connections")
    async def list_connections(request: Request):
        manager: MCPClientManager = request.app.state.manager
        server_ids = list(request.app.state.config_manager.configs.keys())
        server_ids += [s.server_id for s in manager.list_states() if s.server_id not in server_ids]
        return {
            "connections": [manager.get_connection_state(sid).to_dict() for sid in server_ids]
        }

    @app.get("/api/mcp/servers/{server_id}/status")
    async def server_status(server_id: str, request: Request):
        return request.app.state.manager.get_connection_state(server_id).to_dict()

    @app.get("/api/mcp/servers/{server_id}/tools")
    async def server_tools(server_id: str, request: Request):
        with _mcp_errors_as_http(server_id):
            tools = await request.app.state.manager.list_tools(server_id)
        return {"tools": [t.to_dict() for t in tools]}

    @app.get("/api/mcp/servers/{server_id}/prompts")
    async def server_prompts(server_id: str, request: Request):
        with _mcp_errors_as_http(server_id):
            prompts = await request.app.state.manager.list_prompts(server_id)
        return {"prompts": [p.to_dict() for p in prompts]}

    @app.get("/api/mcp/servers/{server_id}/resources")
    async def server_resources(server_id: str, request: Request):
        with _mcp_errors_as_http(server_id):
            resources = await request.app.state.manager.list_resources(server_id)
        return {"resources": [r.to_dict() for r in resources]}

    # ========== Direct execution ==========

    @app.post("/api/mcp/execute/tool")
    async def execute_tool(body: ExecuteToolRequest, request: Request):
        with _mcp_errors_as_http(body.serverId):
            result = await request.app.state.manager.call_tool(
                body.serverId, body.toolName, body.arguments
            )
        return {
            "success": True,
            "result": {
                "content": result.text_content,
                "images": [
                    {"data": item.data, "mimeType": item.mime_type}
                    for item in result.binary_items
                ],
                "raw": result.raw,
            },
        }

    @app.post("/api/mcp/execute/prompt")
    async def execute_prompt(body: GetPromptRequest, request: Request):
        with _mcp_errors_as_http(body.serverId):
            result = await request.app.state.manager.get_prompt(
                body.serverId, body.promptName, body.arguments
            )
        return {"success": True, "messages": result.get("messages", [])}

    @app.post("/api/mcp/execute/resource")
    async def execute_resource(body: ReadResourceRequest, request: Request):
        with _mcp_errors_as_http(body.serverId):
            result = await request.app.state.manager.read_resource(body.serverId, body.uri)
        return {"success": True, "contents": result.get("contents", [])}

    # ========== Server definitions ==========

    @app.get("/api/mcp/config/servers")
    async def list_server_configs(request: Request):
        configs = request.app.state.config_manager.list_configs()
        return {"servers": [c.to_dict() for c in configs]}

    @app.post("/api/mcp/config/servers")
    async def add_server_config(body: Dict[str, Any], request: Request):
        try:
            config = MCPServerConfig.from_dict(body)
        except ConfigError as e:
            raise InvalidRequest(str(e))
        try:
            configs = request.app.state.config_manager.add_config(config)
        except ConfigError as e:
            raise ServerAlreadyExists(str(e))
        return {"servers": [c.to_dict() for c in configs]}

    @app.put("/api/mcp/config/servers/{server_id}")
    async def update_server_config(server_id: str, body: Dict[str, Any], request: Request):
        try:
            config = MCPServerConfig.from_dict({**body, "id": server_id})
        except ConfigError as e:
            raise InvalidRequest(str(e))
        try:
            configs = request.app.state.config_manager.update_config(config)
        except KeyError:
            raise ServerNotFound(server_id)
        return {"servers": [c.to_dict() for c in configs]}

    @app.delete("/api/mcp/config/servers/{server_id}")
    async def remove_server_config(server_id: str, request: Request):
        await request.app.state.manager.disconnect(server_id)
        configs = request.app.state.config_manager.remove_config(server_id)
        return {"servers": [c.to_dict() for c in configs]}

    @app.get("/api/mcp/config/export")
    async def export_server_configs(request: Request):
        return request.app.state.config_manager.export_config()

    @app.post("/api/mcp/config/import")
    async def import_server_configs(body: ImportConfigRequest, request: Request):
        try:
            configs = request.app.state.config_manager.import_config(
                {"version": body.version, "servers": body.servers}, merge=body.merge
            )
        except ConfigError as e:
            raise InvalidRequest(str(e))
        return {"servers": [c.to_dict() for c in configs]}

    # ========== History ==========

    @app.get("/api/sessions/{session_id}/messages")
    async def session_messages(session_id: str, request: Request):
        """Messages recorded for a session, oldest first."""
        try:
            messages = await asyncio.to_thread(request.app.state.history_store.read, session_id)
        except Exception as e:
            logger.error(f"Failed to read history for session {session_id}: {e}")
            raise ExecutionFailed(f"Failed to read session history: {e}")
        return {"sessionId": session_id, "messages": messages}

    # ========== Uploads ==========

    @app.post("/api/upload/image")
    async def upload_image(body: UploadImageRequest, request: Request):
        try:
            result = await request.app.state.image_storage.upload(
                body.imageData,
                body.mimeType,
                body.sessionId,
                body.messageId,
                filename=body.filename,
            )
        except ImageUploadError as e:
            raise ExecutionFailed(str(e))
        return {"success": True, "url": result.public_url, "storagePath": result.storage_path}


@contextmanager
def _mcp_errors_as_http(server_id: str):
    """Map registry and server errors onto HTTP errors."""
    try:
        yield
    except MCPNotConnectedError as e:
        raise ServerNotConnected(server_id) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"MCP request to '{server_id}' failed: {e}")
        raise ExecutionFailed(str(e) or e.__class__.__name__) from e


async def _append_history(history_store, session_id: str, role: str, content: str, images=None) -> None:
    try:
        await asyncio.to_thread(history_store.append, session_id, role, content, images or None)
    except Exception as e:
        logger.warning(f"Failed to record {role} message for session {session_id}: {e}")


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "mcp_chat.api:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
        log_level=settings.log_level.lower()
    )
