"""
SID Chat tool host client.

- registry: ToolRegistryClient (connect / list_tools / call_tool / close)
- transport: stdio subprocess and streamable HTTP JSON-RPC transports
"""

from .registry import (
    ToolDescriptor,
    ToolRegistryClient,
    create_transport,
    result_text,
)
from .transport import HttpTransport, RpcError, StdioTransport, Transport

__all__ = [
    "ToolDescriptor",
    "ToolRegistryClient",
    "create_transport",
    "result_text",
    "Transport",
    "StdioTransport",
    "HttpTransport",
    "RpcError",
]
