"""
API Dependencies
================

FastAPI dependency providers.
"""

from fastapi import HTTPException, Request, status

from vio.api.session_manager import AgentSession, SessionManager


def get_session_manager(request: Request) -> SessionManager:
    """Return the session manager created at application startup."""
    return request.app.state.session_manager


def get_session(session_id: str, request: Request) -> AgentSession:
    """
    Look up a session by path id.

    Raises:
        HTTPException: 404 if the session does not exist.
    """
    session = get_session_manager(request).get(session_id)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Session {session_id} not found",
        )
    return session
