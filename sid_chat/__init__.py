"""
SID Chat - database assistant backend for the SID table browser.

This package provides:
- A tool registry client for MCP tool hosts (stdio or HTTP)
- A completion client for OpenAI-compatible chat endpoints
- A multi-round tool-use conversation orchestrator
- Action signal decoding (e.g. switching the active database)
- A FastAPI chat endpoint and an interactive CLI
"""

__version__ = "0.1.0"

from .actions import ChangeDatabase, decode
from .completion import CompletionClient
from .conversation import Conversation, Role, TextBlock, ToolResultBlock, ToolUseBlock, Turn
from .orchestration import ConversationOrchestrator, OrchestrationResult
from .tools import ToolDescriptor, ToolRegistryClient

__all__ = [
    "ChangeDatabase",
    "decode",
    "CompletionClient",
    "Conversation",
    "Role",
    "TextBlock",
    "ToolResultBlock",
    "ToolUseBlock",
    "Turn",
    "ConversationOrchestrator",
    "OrchestrationResult",
    "ToolDescriptor",
    "ToolRegistryClient",
]
