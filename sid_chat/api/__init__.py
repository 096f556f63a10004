"""
FastAPI server module for SID Chat.

Exposes the chat endpoint consumed by the SID web UI.
"""

from .main import app, create_app

__all__ = ["app", "create_app"]
