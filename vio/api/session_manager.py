"""
Session Manager
===============

Keeps one targeting pipeline and one action history per agent session.

Sessions share nothing but the read-only detector, so cycles in different
sessions run concurrently while each session's pipeline runs one cycle at
a time.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from vio.agent.history import StepHistory
from vio.agent.targeting import CaptureFn, DprFn, TargetingPipeline
from vio.config import Settings, get_settings
from vio.utils.logger import get_logger
from vio.vision.detector import UIDetector

logger = get_logger(__name__)


@dataclass
class AgentSession:
    """State owned by a single agent session."""

    session_id: str
    pipeline: TargetingPipeline
    history: StepHistory
    label: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "label": self.label,
            "created_at": self.created_at.isoformat(),
            "steps": len(self.history),
            "busy": self.pipeline.busy,
        }


class SessionManager:
    """In-memory registry of agent sessions."""

    def __init__(
        self,
        detector: UIDetector,
        settings: Optional[Settings] = None,
        capture_fn: Optional[CaptureFn] = None,
        dpr_fn: Optional[DprFn] = None,
    ) -> None:
        """
        Initialize the manager.

        Args:
            detector: Detector shared by all sessions.
            settings: Application settings.
            capture_fn: Capture function handed to each pipeline.
            dpr_fn: Device pixel ratio query handed to each pipeline.
        """
        self.detector = detector
        self.settings = settings or get_settings()
        self.capture_fn = capture_fn
        self.dpr_fn = dpr_fn
        self._sessions: dict[str, AgentSession] = {}

    def create(self, label: Optional[str] = None) -> AgentSession:
        """Create a session with its own pipeline and history."""
        vision = self.settings.vision
        session = AgentSession(
            session_id=str(uuid.uuid4()),
            pipeline=TargetingPipeline(
                detector=self.detector,
                capture_fn=self.capture_fn,
                dpr_fn=self.dpr_fn,
                capture_timeout=vision.capture_timeout,
                dpr_override=vision.device_pixel_ratio,
            ),
            history=StepHistory.from_settings(self.settings.history),
            label=label,
        )
        self._sessions[session.session_id] = session
        logger.info("Session created", session_id=session.session_id, label=label)
        return session

    def get(self, session_id: str) -> Optional[AgentSession]:
        return self._sessions.get(session_id)

    def remove(self, session_id: str) -> bool:
        """Drop a session; returns False if it did not exist."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        logger.info("Session removed", session_id=session_id, steps=len(session.history))
        return True

    def list_sessions(self) -> list[AgentSession]:
        return list(self._sessions.values())

    def __len__(self) -> int:
        return len(self._sessions)
