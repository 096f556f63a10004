"""
Tool-use conversation orchestration.

Runs a conversation through the completion service, dispatching the tool
calls it requests to the tool host and folding results back in.
"""

from .loop import (
    ConversationOrchestrator,
    OrchestrationResult,
    ToolCallRecord,
    format_tool_trace,
)

__all__ = [
    "ConversationOrchestrator",
    "OrchestrationResult",
    "ToolCallRecord",
    "format_tool_trace",
]
