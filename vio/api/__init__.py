"""
API Module
==========

FastAPI routes exposing per-session targeting pipelines.

This package contains:
    - routes/: REST API endpoints
    - session_manager: Per-session pipeline and history registry
    - dependencies: FastAPI dependency providers
"""

from vio.api.session_manager import AgentSession, SessionManager

__all__ = [
    "AgentSession",
    "SessionManager",
]
