"""
Chat endpoints.

``POST /api/chat`` runs the UI's chat history through the orchestrator and
returns the answer with side-effect flags. ``GET /api/tools`` lists the tool
host's catalog.
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import get_orchestrator, get_tool_registry
from ..schemas import (
    ChatRequest,
    ChatResponse,
    ChatResult,
    ErrorResponse,
    ToolCallTrace,
    ToolInfo,
    ToolListResponse,
)
from ...conversation import Conversation, Role
from ...errors import AuthenticationError, RateLimited, UpstreamError
from ...orchestration import ConversationOrchestrator, OrchestrationResult
from ...tools import ToolRegistryClient
from ...tracing import TracingContext, get_tracing_client

logger = logging.getLogger(__name__)

router = APIRouter()


def _build_result(result: OrchestrationResult, include_trace: bool) -> ChatResult:
    """Translate an orchestration result into the UI response shape."""
    chat_result = ChatResult.model_validate(result.to_wire())
    if include_trace:
        chat_result.trace = [
            ToolCallTrace(
                round=call.round,
                tool=call.name,
                arguments=call.arguments,
                error=call.error,
            )
            for call in result.tool_calls
        ]
    return chat_result


@router.post(
    "/api/chat",
    response_model=ChatResponse,
    response_model_exclude_none=True,
    responses={
        400: {"model": ErrorResponse, "description": "Malformed chat history"},
        500: {"model": ErrorResponse, "description": "Internal server error"},
        502: {"model": ErrorResponse, "description": "Completion service failure"},
        503: {"model": ErrorResponse, "description": "Completion service throttled"},
    },
    summary="Chat with the database assistant",
)
def chat(
    request: ChatRequest,
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
) -> ChatResponse:
    """Run the chat history through the tool-use orchestrator."""
    execution_id = f"exec-{uuid.uuid4().hex[:8]}"
    conversation = Conversation.from_messages(
        [message.model_dump() for message in request.messages]
    )
    last = conversation.last()
    if last is None or last.role is not Role.USER:
        logger.warning(f"[{execution_id}] Chat history does not end with a user message")
        raise HTTPException(
            status_code=400,
            detail="The last message must be a user message.",
        )

    query = last.text()
    logger.info(f"[{execution_id}] Processing chat request: {query[:100]}")

    tracing_context = TracingContext(execution_id=execution_id)
    tracing_context.start_trace(
        name="chat",
        input={"query": query},
        metadata={"history_length": len(conversation)},
    )

    try:
        result = orchestrator.run(
            conversation,
            execution_id=execution_id,
            tracing_context=tracing_context,
        )
    except RateLimited as e:
        _end_trace(tracing_context, str(e), "error")
        logger.warning(f"[{execution_id}] Completion service rate limited: {e}")
        raise HTTPException(status_code=503, detail="Completion service is busy, retry later.")
    except (AuthenticationError, UpstreamError) as e:
        _end_trace(tracing_context, str(e), "error")
        logger.error(f"[{execution_id}] Completion service failed: {e}")
        raise HTTPException(status_code=502, detail="Completion service failed.")
    except Exception as e:
        _end_trace(tracing_context, str(e), "error")
        logger.exception(f"[{execution_id}] Chat request failed: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

    _end_trace(
        tracing_context,
        result.display_text,
        "success",
        {"rounds": result.rounds, "side_effect": result.side_effect is not None},
    )
    logger.debug(f"[{execution_id}] Response: {result.display_text[:200]}")
    return ChatResponse(response=_build_result(result, request.includeTrace))


@router.get(
    "/api/tools",
    response_model=ToolListResponse,
    responses={503: {"model": ErrorResponse, "description": "Tool host not connected"}},
    summary="List tools",
)
def list_tools(
    tool_registry: Optional[ToolRegistryClient] = Depends(get_tool_registry),
) -> ToolListResponse:
    """Return the tool host's cached catalog."""
    if tool_registry is None or not tool_registry.connected:
        raise HTTPException(status_code=503, detail="Tool host is not connected")
    return ToolListResponse(
        tools=[
            ToolInfo(
                name=tool.name,
                description=tool.description,
                inputSchema=tool.input_schema,
            )
            for tool in tool_registry.list_tools()
        ]
    )


def _end_trace(
    tracing_context: TracingContext,
    output: str,
    status: str,
    metadata: Optional[dict] = None,
) -> None:
    """Close the request trace and flush it."""
    tracing_context.end_trace(output=output, status=status, metadata=metadata)
    client = get_tracing_client()
    if client:
        client.flush()
