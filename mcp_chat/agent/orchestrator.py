"""Tool-calling orchestration for one conversation turn.

The orchestrator alternates language-model rounds with MCP tool
executions until the model answers in plain text, yielding progress
events as it goes.
"""
import asyncio
import json
import logging
import time
import uuid
from enum import Enum
from typing import Any, AsyncIterator, Dict, Iterator, List, Optional, Protocol, Sequence

from langchain_core.messages import AIMessage, BaseMessage, ToolMessage

from ..mcp.client_manager import MCPClientManager
from ..mcp.models import CallResult, ToolCallRecord, UploadedImage
from ..mcp.tool_adapter import ToolCatalog, ToolResolutionError, ToolRoute, build_tool_catalog
from ..storage.image_storage import ImageStorage, extension_for
from . import events
from .messages import message_text

logger = logging.getLogger(__name__)

DEFAULT_MAX_ROUNDS = 10


class TurnState(Enum):
    SENDING = "sending"
    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"
    FAILED = "failed"


class ChatModel(Protocol):
    """The slice of a LangChain chat model the orchestrator relies on."""

    def bind_tools(self, tools: Sequence[Dict[str, Any]]) -> Any:
        ...

    async def ainvoke(self, messages: List[BaseMessage]) -> AIMessage:
        ...


def new_call_id() -> str:
    return f"call_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class ToolCallingOrchestrator:
    """Runs one turn: model rounds interleaved with tool executions.

    Tool failures are reported to the model and the stream but do not
    end the turn. A failing model call, or exceeding ``max_rounds``,
    ends the turn with a single ``error`` event.

    Attributes:
        llm: Chat model supporting ``bind_tools`` and ``ainvoke``.
        manager: Connection registry used to discover and call tools.
        image_storage: Where binary tool outputs are uploaded; uploads
            are skipped when None.
        max_rounds: Maximum number of model calls per turn.
    """

    def __init__(
        self,
        llm: ChatModel,
        manager: MCPClientManager,
        image_storage: Optional[ImageStorage] = None,
        max_rounds: int = DEFAULT_MAX_ROUNDS,
    ):
        self.llm = llm
        self.manager = manager
        self.image_storage = image_storage
        self.max_rounds = max_rounds

    async def run(
        self,
        history: Sequence[BaseMessage],
        user_message: BaseMessage,
        session_id: Optional[str] = None,
        message_id: Optional[str] = None,
    ) -> AsyncIterator[Dict[str, Any]]:
        """Run a turn and yield its events.

        Args:
            history: Earlier conversation messages.
            user_message: The new user message, possibly with image parts.
            session_id: Session to file uploaded tool images under.
            message_id: Message to file uploaded tool images under.

        Yields:
            Event dicts; the last one is always ``done`` or ``error``.
        """
        catalog = await build_tool_catalog(self.manager)
        model = self.llm.bind_tools(catalog.declarations) if len(catalog) else self.llm

        messages: List[BaseMessage] = [*history, user_message]
        state = TurnState.SENDING
        rounds = 0
        reply: Optional[AIMessage] = None
        failure = ""

        while True:
            if state == TurnState.SENDING:
                rounds += 1
                if rounds > self.max_rounds:
                    failure = f"Tool call limit exceeded ({self.max_rounds} rounds)"
                    state = TurnState.FAILED
                    continue
                state = TurnState.AWAITING_MODEL

            elif state == TurnState.AWAITING_MODEL:
                logger.info(f"Model round {rounds} ({len(messages)} messages)")
                try:
                    reply = await model.ainvoke(messages)
                except Exception as e:
                    logger.error(f"Model call failed in round {rounds}: {e}", exc_info=True)
                    failure = str(e) or "Model call failed"
                    state = TurnState.FAILED
                    continue
                messages.append(reply)
                requested = reply.tool_calls or reply.invalid_tool_calls
                state = TurnState.EXECUTING_TOOLS if requested else TurnState.DONE

            elif state == TurnState.EXECUTING_TOOLS:
                for call in reply.tool_calls:
                    async for event in self._run_tool_call(
                        call, catalog, messages, session_id, message_id
                    ):
                        yield event
                # Every call id in the reply needs an answer before the next round.
                for call in reply.invalid_tool_calls:
                    for event in self._reject_invalid_call(call, catalog, messages):
                        yield event
                state = TurnState.SENDING

            elif state == TurnState.DONE:
                text = message_text(reply)
                if text:
                    yield events.text_event(text)
                yield events.done_event()
                return

            else:
                yield events.error_event(failure)
                return

    async def _run_tool_call(
        self,
        call: Dict[str, Any],
        catalog: ToolCatalog,
        messages: List[BaseMessage],
        session_id: Optional[str],
        message_id: Optional[str],
    ) -> AsyncIterator[Dict[str, Any]]:
        """Execute one requested call, appending its ToolMessage to ``messages``."""
        prefixed_name = call.get("name") or ""
        arguments = call.get("args") or {}

        try:
            route = catalog.resolve(prefixed_name)
        except ToolResolutionError as e:
            logger.warning(f"Could not resolve tool '{prefixed_name}'")
            for event in self._fail_call(call, None, arguments, str(e), messages):
                yield event
            return

        record = ToolCallRecord(
            id=new_call_id(),
            server_id=route.server_id,
            server_name=route.server_name,
            name=route.tool_name,
            arguments=arguments,
        )
        record.start()
        yield events.tool_call_start_event(record)

        try:
            # Shielded so a client abort does not interrupt the server mid-call.
            result = await asyncio.shield(
                self.manager.call_tool(route.server_id, route.tool_name, arguments)
            )
        except asyncio.TimeoutError:
            record.fail("Tool call timed out")
        except Exception as e:
            record.fail(str(e) or "Tool execution failed")

        if record.error is not None:
            logger.warning(
                f"Tool '{route.tool_name}' on '{route.server_id}' failed: {record.error}"
            )
            yield events.tool_call_result_event(record)
            messages.append(self._tool_message(call, {"error": record.error}))
            return

        images = await self._upload_images(result, route.tool_name, session_id, message_id)
        record.complete(result.raw, images)
        yield events.tool_call_result_event(record)
        messages.append(self._tool_message(call, self._model_response(result, images)))

    def _reject_invalid_call(
        self,
        call: Dict[str, Any],
        catalog: ToolCatalog,
        messages: List[BaseMessage],
    ) -> Iterator[Dict[str, Any]]:
        """Report a call whose arguments the model client could not parse."""
        prefixed_name = call.get("name") or ""
        try:
            route = catalog.resolve(prefixed_name)
        except ToolResolutionError:
            route = None
        reason = call.get("error") or "arguments are not valid JSON"
        logger.warning(f"Model sent malformed call to '{prefixed_name}': {reason}")
        return self._fail_call(
            call, route, {}, f"Invalid tool arguments: {reason}", messages
        )

    def _fail_call(
        self,
        call: Dict[str, Any],
        route: Optional[ToolRoute],
        arguments: Dict[str, Any],
        error: str,
        messages: List[BaseMessage],
    ) -> Iterator[Dict[str, Any]]:
        record = ToolCallRecord(
            id=new_call_id(),
            server_id=route.server_id if route else "unknown",
            server_name=route.server_name if route else "Unknown",
            name=route.tool_name if route else (call.get("name") or ""),
            arguments=arguments,
        )
        record.start()
        yield events.tool_call_start_event(record)
        record.fail(error)
        yield events.tool_call_result_event(record)
        messages.append(self._tool_message(call, {"error": record.error}))

    async def _upload_images(
        self,
        result: CallResult,
        tool_name: str,
        session_id: Optional[str],
        message_id: Optional[str],
    ) -> List[UploadedImage]:
        if not result.binary_items or not (session_id and message_id):
            return []
        if self.image_storage is None:
            logger.warning("Tool returned binary content but no image storage is configured")
            return []

        uploaded: List[UploadedImage] = []
        for index, item in enumerate(result.binary_items):
            filename = (
                f"tool_{tool_name}_{index}_{int(time.time() * 1000)}"
                f".{extension_for(item.mime_type)}"
            )
            try:
                upload = await self.image_storage.upload(
                    item.data, item.mime_type, session_id, message_id, filename=filename
                )
            except Exception as e:
                logger.warning(f"Upload of tool image {index} from '{tool_name}' failed: {e}")
                continue
            uploaded.append(UploadedImage(url=upload.public_url, mime_type=item.mime_type))
        return uploaded

    @staticmethod
    def _model_response(result: CallResult, images: List[UploadedImage]) -> Any:
        content = result.text_content
        if images:
            content += "\n\n[Images generated: " + ", ".join(img.url for img in images) + "]"
        return content or result.raw

    @staticmethod
    def _tool_message(call: Dict[str, Any], response: Any) -> ToolMessage:
        if not isinstance(response, str):
            response = json.dumps(response, ensure_ascii=False, default=str)
        return ToolMessage(
            content=response,
            tool_call_id=call.get("id") or "",
            name=call.get("name"),
        )
