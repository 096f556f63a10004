"""
Error taxonomy for the chat orchestrator.

Tool-host errors are raised by the tool registry client, completion errors by
the completion client. The orchestrator absorbs per-call tool errors into the
conversation; completion errors propagate to the caller.
"""

from typing import Optional


class SidChatError(Exception):
    """Base class for all orchestrator errors."""


# =============================================================================
# Tool host
# =============================================================================


class ToolHostConnectionError(SidChatError):
    """The tool host could not be reached or the handshake failed.

    Fatal at startup: the service must not accept requests without a tool host.
    """


class ToolError(SidChatError):
    """Base class for failures of a single tool call."""

    def __init__(self, message: str, tool_name: Optional[str] = None):
        super().__init__(message)
        self.tool_name = tool_name


class UnknownTool(ToolError):
    """The requested tool is not in the cached catalog."""

    def __init__(self, tool_name: str):
        super().__init__(f"Unknown tool '{tool_name}'", tool_name=tool_name)


class ToolInvocationError(ToolError):
    """The tool host reported that the tool failed."""


class TransportError(ToolError):
    """The connection to the tool host dropped or returned garbage."""


# =============================================================================
# Completion service
# =============================================================================


class CompletionError(SidChatError):
    """Base class for completion service failures."""


class RateLimited(CompletionError):
    """The completion service throttled the request. Retryable."""


class AuthenticationError(CompletionError):
    """The completion service rejected our credentials. Fatal to the run."""


class UpstreamError(CompletionError):
    """Any other completion service failure."""
