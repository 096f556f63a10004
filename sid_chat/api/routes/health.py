"""Health check endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends

from ..dependencies import get_tool_registry
from ..schemas import HealthResponse
from ... import __version__
from ...tools import ToolRegistryClient

router = APIRouter()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Check the API server and its tool host connection.",
)
def health_check(
    tool_registry: Optional[ToolRegistryClient] = Depends(get_tool_registry),
) -> HealthResponse:
    """Return health status of the API server."""
    connected = tool_registry is not None and tool_registry.connected
    return HealthResponse(
        status="healthy" if connected else "degraded",
        version=__version__,
        tool_host_connected=connected,
        tools=len(tool_registry.list_tools()) if connected else 0,
    )
