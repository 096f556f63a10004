"""
Pytest configuration and fixtures for SID Chat tests.
"""

from typing import Optional

import pytest

from sid_chat.completion import CompletionResponse
from sid_chat.conversation import Conversation, TextBlock, ToolUseBlock
from sid_chat.errors import UnknownTool
from sid_chat.tools.registry import ToolDescriptor


class FakeCompletionClient:
    """Completion client double that replays scripted responses.

    Each ``complete`` call records a snapshot of the conversation turns and
    the catalog it was given. A scripted exception is raised instead of
    returned.
    """

    model = "test-model"

    def __init__(self, responses: list):
        self._responses = list(responses)
        self.calls: list[dict] = []

    def complete(
        self,
        conversation: Conversation,
        tool_catalog: Optional[list[ToolDescriptor]] = None,
    ) -> CompletionResponse:
        self.calls.append({"turns": conversation.turns, "tools": tool_catalog})
        if not self._responses:
            raise AssertionError("Unexpected completion call")
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def close(self) -> None:
        pass


class FakeToolRegistry:
    """Tool registry double with canned results per tool name."""

    def __init__(self, tools: Optional[dict] = None, connected: bool = True):
        self.tools = tools or {}
        self.connected = connected
        self.calls: list[tuple] = []

    def list_tools(self) -> list[ToolDescriptor]:
        return [
            ToolDescriptor(name=name, description=f"{name} tool")
            for name in self.tools
        ]

    def call_tool(self, name: str, arguments: Optional[dict] = None):
        if name not in self.tools:
            raise UnknownTool(name)
        self.calls.append((name, arguments))
        result = self.tools[name]
        if isinstance(result, Exception):
            raise result
        return result

    def close(self) -> None:
        self.connected = False


def text_response(*texts: str) -> CompletionResponse:
    """A completion response made of text blocks only."""
    return CompletionResponse(blocks=[TextBlock(t) for t in texts])


def make_response(*blocks) -> CompletionResponse:
    """A completion response with the given blocks in order."""
    return CompletionResponse(blocks=list(blocks))


def tool_use(name: str, arguments: Optional[dict] = None, call_id: str = "call_1") -> ToolUseBlock:
    return ToolUseBlock(name=name, arguments=arguments or {}, call_id=call_id)


@pytest.fixture
def database_tools():
    """Canned results for the tools a SID tool host exposes."""
    return {
        "getDatabases": {"databases": ["a", "b"]},
        "getTables": {"content": [{"type": "text", "text": "orders, customers"}]},
    }


@pytest.fixture
def fake_registry(database_tools):
    return FakeToolRegistry(database_tools)
