"""
Request dependencies.

The tool registry and orchestrator are created once in the application
lifespan and stored on ``app.state``; routes receive them through these
providers so tests can override them.
"""

from typing import Optional

from fastapi import HTTPException, Request

from ..orchestration import ConversationOrchestrator
from ..tools import ToolRegistryClient


def get_tool_registry(request: Request) -> Optional[ToolRegistryClient]:
    """The shared tool registry client, if the app has started one."""
    return getattr(request.app.state, "tool_registry", None)


def get_orchestrator(request: Request) -> ConversationOrchestrator:
    """The shared orchestrator; 503 before startup has completed."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Orchestrator is not initialized")
    return orchestrator
