"""
Pydantic schemas for the chat API.

The request and response shapes match what the SID web UI sends and reads:
``{messages: [{text, isUser}]}`` in, ``{response: {finalText, flags}}`` out.
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    """A single message in the UI's chat history."""

    text: str = Field(..., description="Message text")
    isUser: bool = Field(default=False, description="True if the user wrote it")


class ChatRequest(BaseModel):
    """Request body for /api/chat."""

    messages: list[ChatMessage] = Field(
        ..., description="Chat history ending with the new user message", min_length=1
    )
    includeTrace: bool = Field(
        default=False, description="Include the dispatched tool calls in the response"
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "messages": [{"text": "Which databases are there?", "isUser": True}],
            }
        }
    }


class DatabaseChangedFlag(BaseModel):
    """Whether the reply asks the UI to switch databases."""

    value: bool = False
    database: Optional[str] = None


class ChatFlags(BaseModel):
    """Side-effect flags for the UI."""

    databaseChanged: DatabaseChangedFlag = Field(default_factory=DatabaseChangedFlag)


class ToolCallTrace(BaseModel):
    """A tool call dispatched while answering."""

    round: int = Field(..., description="Tool round the call belonged to")
    tool: str = Field(..., description="Tool name")
    arguments: dict = Field(default_factory=dict, description="Arguments sent")
    error: Optional[str] = Field(default=None, description="Error, if the call failed")


class ChatResult(BaseModel):
    """The orchestrator's answer."""

    finalText: str
    flags: ChatFlags = Field(default_factory=ChatFlags)
    trace: Optional[list[ToolCallTrace]] = Field(
        default=None, description="Tool call trace (when includeTrace=true)"
    )


class ChatResponse(BaseModel):
    """Response body for /api/chat."""

    response: ChatResult


class ToolInfo(BaseModel):
    """A tool exposed by the tool host."""

    name: str
    description: str = ""
    inputSchema: dict[str, Any] = Field(default_factory=dict)


class ToolListResponse(BaseModel):
    """Response body for /api/tools."""

    tools: list[ToolInfo]


class HealthResponse(BaseModel):
    """Response body for /health."""

    status: Literal["healthy", "degraded"]
    version: str
    tool_host_connected: bool
    tools: int = 0


class ErrorResponse(BaseModel):
    """Error response body."""

    detail: str
