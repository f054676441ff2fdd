"""
Action History
==============

Tracks the agent's tool invocations across reasoning steps.

Provides:
- Append-only action records
- Stagnation (same action repeated) and thrashing (A-B-A-B failures) detection
- A bounded transcript for the reasoning prompt: recent actions in full,
  older ones folded into per-tool counts
"""

import copy
import json
import re
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional

from vio.config import HistorySettings, get_settings
from vio.utils.logger import get_logger

logger = get_logger(__name__)

THRASH_WINDOW = 4
MAX_STRING_PREVIEW = 40
MAX_DETAIL_LENGTH = 200
# Base64 strings this long are treated as encoded images and never echoed
MIN_BLOB_LENGTH = 256
_BASE64_RE = re.compile(r"[A-Za-z0-9+/]+={0,2}")


class Outcome(str, Enum):
    """Outcome of a tool invocation."""

    SUCCESS = "success"
    FAILURE = "failure"
    ERROR = "error"


@dataclass(frozen=True)
class ActionRecord:
    """
    Record of a single tool invocation.

    Attributes:
        step: Step number in the run.
        tool: Name of the tool that was called.
        params: Parameters it was called with.
        outcome: success, failure or error.
        result: Short summary of the return value.
        error: Error message when the call raised.
        duration_ms: How long the call took.
        timestamp: When the call completed.
    """

    step: int
    tool: str
    params: Mapping[str, Any] = field(default_factory=dict)
    outcome: Outcome = Outcome.SUCCESS
    result: Optional[str] = None
    error: Optional[str] = None
    duration_ms: int = 0
    timestamp: datetime = field(default_factory=datetime.now)

    def __post_init__(self) -> None:
        # Detach from the caller's params, nested values included
        try:
            params = copy.deepcopy(dict(self.params))
        except (TypeError, copy.Error, RecursionError):
            params = dict(self.params)
        object.__setattr__(self, "params", params)
        object.__setattr__(self, "outcome", Outcome(self.outcome))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "step": self.step,
            "tool": self.tool,
            "params": _preview_value(dict(self.params)),
            "outcome": self.outcome.value,
            "result": _truncate(self.result),
            "error": _truncate(self.error),
            "duration_ms": self.duration_ms,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class StagnationVerdict:
    """Loop detection result for the current history tail."""

    is_stagnating: bool = False
    is_thrashing: bool = False
    message: str = ""

    @property
    def is_normal(self) -> bool:
        return not (self.is_stagnating or self.is_thrashing)

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_stagnating": self.is_stagnating,
            "is_thrashing": self.is_thrashing,
            "message": self.message,
        }


NORMAL = StagnationVerdict()


def _truncate(text: Optional[str], limit: int = MAX_DETAIL_LENGTH) -> Optional[str]:
    if text is None:
        return None
    if _looks_like_blob(text):
        return f"<binary {len(text)} chars>"
    if len(text) > limit:
        return text[: limit - 3] + "..."
    return text


def _looks_like_blob(text: str) -> bool:
    if text.startswith("data:image/"):
        return True
    return len(text) >= MIN_BLOB_LENGTH and _BASE64_RE.fullmatch(text) is not None


def _preview_value(value: Any) -> Any:
    """Replace binary payloads with placeholders, recursively."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return f"<binary {len(value)} bytes>"
    if isinstance(value, str) and _looks_like_blob(value):
        return f"<binary {len(value)} chars>"
    if isinstance(value, dict):
        return {k: _preview_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_preview_value(v) for v in value]
    return value


def _summarize_params(params: Mapping[str, Any]) -> str:
    """Render params as a short one-liner."""
    parts = []
    for key, value in params.items():
        value = _preview_value(value)
        if isinstance(value, str):
            if len(value) > MAX_STRING_PREVIEW:
                rendered = f'"{value[: MAX_STRING_PREVIEW - 3]}..."'
            else:
                rendered = f'"{value}"'
        else:
            try:
                rendered = json.dumps(value, default=str)
            except (TypeError, ValueError, RecursionError):
                rendered = "?"
            if len(rendered) > MAX_STRING_PREVIEW:
                rendered = rendered[: MAX_STRING_PREVIEW - 3] + "..."
        parts.append(f"{key}: {rendered}")
    return ", ".join(parts)


class StepHistory:
    """
    Append-only action history with loop detection.

    Usage:
        history = StepHistory(stagnation_threshold=3, recent_count=5)
        history.record_action("click_ui", {"elementText": "Submit"}, Outcome.FAILURE)
        verdict = history.detect_stagnation()
        if not verdict.is_normal:
            prompt += verdict.message
    """

    def __init__(self, stagnation_threshold: int = 3, recent_count: int = 5) -> None:
        """
        Initialize the history.

        Args:
            stagnation_threshold: Identical consecutive actions that count as stagnation.
            recent_count: Records rendered in full detail by ``format``.
        """
        if stagnation_threshold < 1:
            raise ValueError("stagnation_threshold must be at least 1")
        if recent_count < 1:
            raise ValueError("recent_count must be at least 1")
        self.stagnation_threshold = stagnation_threshold
        self.recent_count = recent_count
        self._records: list[ActionRecord] = []

    @classmethod
    def from_settings(cls, settings: Optional[HistorySettings] = None) -> "StepHistory":
        """Build a history from ``HistorySettings``."""
        settings = settings or get_settings().history
        return cls(
            stagnation_threshold=settings.stagnation_threshold,
            recent_count=settings.history_recent_count,
        )

    def record(self, entry: ActionRecord) -> ActionRecord:
        """Append a completed tool invocation."""
        self._records.append(entry)
        logger.info(
            "Action recorded",
            step=entry.step,
            tool=entry.tool,
            outcome=entry.outcome.value,
            duration_ms=entry.duration_ms,
        )
        return entry

    def record_action(
        self,
        tool: str,
        params: Optional[Mapping[str, Any]] = None,
        outcome: Outcome = Outcome.SUCCESS,
        result: Optional[str] = None,
        error: Optional[str] = None,
        started_at: Optional[float] = None,
    ) -> ActionRecord:
        """
        Build and append a record with the next step number.

        Args:
            tool: Tool name.
            params: Tool parameters.
            outcome: Invocation outcome.
            result: Short result summary.
            error: Error message.
            started_at: ``time.monotonic()`` value when the call started.

        Returns:
            The recorded ActionRecord.
        """
        duration_ms = int((time.monotonic() - started_at) * 1000) if started_at is not None else 0
        entry = ActionRecord(
            step=len(self._records) + 1,
            tool=tool,
            params=dict(params or {}),
            outcome=Outcome(outcome),
            result=result,
            error=error,
            duration_ms=duration_ms,
        )
        return self.record(entry)

    @staticmethod
    def signature(record: ActionRecord) -> str:
        """Order-independent signature of tool name and parameters."""
        try:
            canonical = json.dumps(record.params, sort_keys=True, separators=(",", ":"))
        except (TypeError, ValueError, RecursionError):
            return f"{record.tool}::?"
        return f"{record.tool}::{canonical}"

    def detect_stagnation(self) -> StagnationVerdict:
        """
        Classify the tail of the history.

        Returns:
            Stagnating when the last K actions share a signature, thrashing
            when the last four alternate A-B-A-B with no success, else normal.
        """
        k = self.stagnation_threshold
        if len(self._records) < k:
            return NORMAL

        recent = self._records[-k:]
        signatures = [self.signature(r) for r in recent]
        if len(set(signatures)) == 1:
            last = recent[-1]
            behaviour = (
                "succeeding without progress"
                if last.outcome is Outcome.SUCCESS
                else "failing"
            )
            return StagnationVerdict(
                is_stagnating=True,
                message=(
                    f'STAGNATION DETECTED: You have called "{last.tool}" with the same '
                    f"parameters {k} times in a row and it keeps {behaviour}. "
                    f"You MUST try a fundamentally different approach: use a different "
                    f"tool, change the parameters, or ask a human for help."
                ),
            )

        if len(self._records) >= THRASH_WINDOW:
            last4 = self._records[-THRASH_WINDOW:]
            a, b, c, d = (self.signature(r) for r in last4)
            if (
                a != b
                and c == a
                and d == b
                and all(r.outcome is not Outcome.SUCCESS for r in last4)
            ):
                return StagnationVerdict(
                    is_thrashing=True,
                    message=(
                        f'THRASHING DETECTED: You are alternating between "{last4[0].tool}" '
                        f'and "{last4[1].tool}" and neither is succeeding. '
                        f"Stop and try a completely different strategy."
                    ),
                )

        return NORMAL

    def format(self) -> str:
        """
        Render the history for the reasoning prompt.

        Returns:
            Transcript with the most recent actions in full and older ones
            summarized per tool.
        """
        if not self._records:
            return "No actions taken yet — this is the first step."

        parts: list[str] = []
        older_count = max(0, len(self._records) - self.recent_count)
        if older_count:
            calls: Counter[str] = Counter()
            failed: Counter[str] = Counter()
            for r in self._records[:older_count]:
                calls[r.tool] += 1
                if r.outcome is not Outcome.SUCCESS:
                    failed[r.tool] += 1
            summary = ", ".join(
                f"{tool} ×{count}" + (f" ({failed[tool]} failed)" if failed[tool] else "")
                for tool, count in calls.items()
            )
            parts.append(f"[Earlier: {older_count} actions — {summary}]")

        for r in self._records[-self.recent_count:]:
            line = f"  Step {r.step}: {r.tool}({_summarize_params(r.params)}) → {r.outcome.value}"
            if r.result:
                line += f" | {_truncate(r.result)}"
            if r.error:
                line += f" | ERROR: {_truncate(r.error)}"
            parts.append(line)

        return f"=== Action History ({len(self._records)} total steps) ===\n" + "\n".join(parts)

    @property
    def records(self) -> tuple[ActionRecord, ...]:
        return tuple(self._records)

    @property
    def last(self) -> Optional[ActionRecord]:
        """The most recent record, if any."""
        return self._records[-1] if self._records else None

    def __len__(self) -> int:
        return len(self._records)
