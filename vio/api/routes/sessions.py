"""
Session Routes
==============

Endpoints for agent sessions.

Each session owns a targeting pipeline and an action history:
- Session lifecycle (create, list, get, delete)
- Observation: detect elements on a display
- Resolution: semantic target to device coordinate
- Action history and loop detection
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from vio.agent.history import ActionRecord, Outcome
from vio.agent.matcher import TargetRequest
from vio.api.dependencies import get_session, get_session_manager
from vio.api.session_manager import AgentSession, SessionManager
from vio.utils.logger import LogContext, get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/sessions", tags=["Sessions"])


# Request/Response Models
class CreateSessionRequest(BaseModel):
    """Request to create a new agent session."""

    label: Optional[str] = Field(default=None, description="Free-form session label")


class SessionResponse(BaseModel):
    """Response containing session information."""

    session_id: str
    label: Optional[str] = None
    created_at: str
    steps: int = 0
    busy: bool = False


class SessionListResponse(BaseModel):
    """Response containing list of sessions."""

    sessions: list[SessionResponse]
    total: int


class ObserveRequest(BaseModel):
    """Request to run one observation cycle."""

    display_id: Optional[str] = Field(default=None, description="Display id or name")


class ResolveRequest(BaseModel):
    """Request to resolve a semantic target."""

    text: Optional[str] = Field(default=None, description="Text the element must contain")
    type: Optional[str] = Field(default=None, description="Element type, e.g. 'button'")
    offset_x: float = Field(default=0.0, description="Horizontal offset in screenshot pixels")
    offset_y: float = Field(default=0.0, description="Vertical offset in screenshot pixels")
    display_id: Optional[str] = Field(default=None, description="Display id or name")


class ResolveResponse(BaseModel):
    """Resolved device coordinate, if any."""

    found: bool
    x: Optional[float] = None
    y: Optional[float] = None
    element: Optional[dict[str, Any]] = None
    display: Optional[dict[str, Any]] = None


class RecordActionRequest(BaseModel):
    """A completed tool invocation to append to the history."""

    tool: str = Field(..., min_length=1)
    params: dict[str, Any] = Field(default_factory=dict)
    outcome: Outcome = Outcome.SUCCESS
    result: Optional[str] = None
    error: Optional[str] = None
    duration_ms: int = Field(default=0, ge=0)


class HistoryResponse(BaseModel):
    """History transcript with the current loop verdict."""

    total: int
    transcript: str
    stagnation: dict[str, Any]
    records: list[dict[str, Any]]


def _session_response(session: AgentSession) -> SessionResponse:
    return SessionResponse(**session.to_dict())


@router.post(
    "",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new agent session",
)
async def create_session(
    request: CreateSessionRequest,
    manager: SessionManager = Depends(get_session_manager),
) -> SessionResponse:
    """Create a session with its own pipeline and action history."""
    session = manager.create(label=request.label)
    return _session_response(session)


@router.get(
    "",
    response_model=SessionListResponse,
    summary="List active sessions",
)
async def list_sessions(
    manager: SessionManager = Depends(get_session_manager),
) -> SessionListResponse:
    """List all active sessions."""
    sessions = [_session_response(s) for s in manager.list_sessions()]
    return SessionListResponse(sessions=sessions, total=len(sessions))


@router.get(
    "/{session_id}",
    response_model=SessionResponse,
    summary="Get session details",
)
async def get_session_details(
    session: AgentSession = Depends(get_session),
) -> SessionResponse:
    """Get a session by id."""
    return _session_response(session)


@router.delete(
    "/{session_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a session",
)
async def delete_session(
    session: AgentSession = Depends(get_session),
    manager: SessionManager = Depends(get_session_manager),
) -> None:
    """Drop a session and its history."""
    manager.remove(session.session_id)


@router.post(
    "/{session_id}/observe",
    summary="Detect elements on screen",
)
async def observe(
    request: ObserveRequest,
    session: AgentSession = Depends(get_session),
) -> dict[str, Any]:
    """
    Run one observation cycle.

    Returns:
        Detected elements with the display and scaling used.
    """
    with LogContext(session_id=session.session_id):
        observation = await session.pipeline.observe(request.display_id)
    return observation.to_dict()


@router.post(
    "/{session_id}/resolve",
    response_model=ResolveResponse,
    summary="Resolve a target to device coordinates",
)
async def resolve_target(
    request: ResolveRequest,
    session: AgentSession = Depends(get_session),
) -> ResolveResponse:
    """
    Resolve a semantic target request.

    A missing target is a normal outcome and returns ``found: false``.
    """
    target = TargetRequest(
        text=request.text,
        type=request.type,
        offset_x=request.offset_x,
        offset_y=request.offset_y,
        display_id=request.display_id,
    )
    with LogContext(session_id=session.session_id):
        resolution = await session.pipeline.locate(target)

    if resolution is None:
        return ResolveResponse(found=False)

    return ResolveResponse(
        found=True,
        x=resolution.point.x,
        y=resolution.point.y,
        element=resolution.element.to_dict(),
        display=resolution.display.to_dict() if resolution.display else None,
    )


@router.post(
    "/{session_id}/actions",
    status_code=status.HTTP_201_CREATED,
    summary="Record a completed action",
)
async def record_action(
    request: RecordActionRequest,
    session: AgentSession = Depends(get_session),
) -> dict[str, Any]:
    """
    Append an action to the session history.

    Returns:
        The stored record and the loop verdict after recording it.
    """
    with LogContext(session_id=session.session_id):
        record = session.history.record(
            ActionRecord(
                step=len(session.history) + 1,
                tool=request.tool,
                params=request.params,
                outcome=request.outcome,
                result=request.result,
                error=request.error,
                duration_ms=request.duration_ms,
            )
        )
        verdict = session.history.detect_stagnation()

    if not verdict.is_normal:
        logger.warning(
            "Action loop detected",
            session_id=session.session_id,
            stagnating=verdict.is_stagnating,
            thrashing=verdict.is_thrashing,
        )

    return {"record": record.to_dict(), "stagnation": verdict.to_dict()}


@router.get(
    "/{session_id}/history",
    response_model=HistoryResponse,
    summary="Get the action history",
)
async def get_history(
    session: AgentSession = Depends(get_session),
) -> HistoryResponse:
    """Return the bounded transcript and the current loop verdict."""
    history = session.history
    return HistoryResponse(
        total=len(history),
        transcript=history.format(),
        stagnation=history.detect_stagnation().to_dict(),
        records=[r.to_dict() for r in history.records],
    )
