"""
Coordinate Resolution
=====================

Maps model-space detections back to capture pixels and capture pixels to
absolute device coordinates.

    capture = (model - pad) / scale
    device  = (capture + offset + display origin) * DPR
"""

from dataclasses import dataclass
from typing import Any, Optional

from vio.vision.display import DisplayInfo
from vio.vision.labels import ClassLabelTable
from vio.vision.nms import Survivor
from vio.vision.preprocess import PreprocessResult


@dataclass(frozen=True)
class Point:
    """A 2-D coordinate."""

    x: float
    y: float

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y}


@dataclass(frozen=True)
class Bounds:
    """Axis-aligned box in capture pixels."""

    x1: float
    y1: float
    x2: float
    y2: float

    @property
    def center(self) -> Point:
        return Point((self.x1 + self.x2) / 2, (self.y1 + self.y2) / 2)

    @property
    def width(self) -> float:
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        return self.y2 - self.y1

    def to_dict(self) -> dict[str, float]:
        return {"x1": self.x1, "y1": self.y1, "x2": self.x2, "y2": self.y2}


@dataclass(frozen=True)
class DetectedElement:
    """
    A deduplicated UI element in capture space.

    Attributes:
        id: Sequential id, 0 for the most confident survivor.
        type: Semantic UI category.
        bounds: Box in capture pixels.
        confidence: Detector confidence.
        text: Text associated with the element, if any.
    """

    id: int
    type: str
    bounds: Bounds
    confidence: float
    text: Optional[str] = None

    @property
    def center(self) -> Point:
        return self.bounds.center

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "type": self.type,
            "bounds": self.bounds.to_dict(),
            "center": self.center.to_dict(),
            "confidence": round(self.confidence, 4),
            "text": self.text,
        }


def _clamp(value: float, low: float, high: float) -> float:
    return min(max(value, low), high)


def inverse_letterbox(
    x: float,
    y: float,
    scale: float,
    pad_x: float,
    pad_y: float,
) -> Point:
    """Map a model-space point back to capture pixels."""
    return Point((x - pad_x) / scale, (y - pad_y) / scale)


def to_capture_bounds(
    survivor: Survivor,
    letterbox: PreprocessResult,
    width: int,
    height: int,
) -> Bounds:
    """
    Invert the letterbox for one survivor.

    Boxes reaching into the padding are clamped to the capture area.
    """
    c = survivor.candidate
    top_left = inverse_letterbox(c.x1, c.y1, letterbox.scale, letterbox.pad_x, letterbox.pad_y)
    bottom_right = inverse_letterbox(c.x2, c.y2, letterbox.scale, letterbox.pad_x, letterbox.pad_y)
    return Bounds(
        x1=_clamp(top_left.x, 0, width),
        y1=_clamp(top_left.y, 0, height),
        x2=_clamp(bottom_right.x, 0, width),
        y2=_clamp(bottom_right.y, 0, height),
    )


def to_detected_elements(
    survivors: list[Survivor],
    letterbox: PreprocessResult,
    width: int,
    height: int,
    labels: ClassLabelTable,
) -> list[DetectedElement]:
    """Convert NMS survivors into capture-space elements, keeping their ids."""
    return [
        DetectedElement(
            id=s.id,
            type=labels.label(s.candidate.class_id),
            bounds=to_capture_bounds(s, letterbox, width, height),
            confidence=s.candidate.confidence,
        )
        for s in survivors
    ]


def to_device_point(
    point: Point,
    display: Optional[DisplayInfo],
    dpr: float = 1.0,
    offset_x: float = 0.0,
    offset_y: float = 0.0,
) -> Point:
    """
    Map a capture-space point to absolute device coordinates.

    Offsets are in screenshot pixels, so they are applied before scaling.

    Args:
        point: Point in capture pixels.
        display: Display the capture came from; None means origin (0, 0).
        dpr: Device pixel ratio of that display.
        offset_x: Extra horizontal offset in capture pixels.
        offset_y: Extra vertical offset in capture pixels.
    """
    left = display.left if display else 0
    top = display.top if display else 0
    return Point(
        x=(point.x + offset_x + left) * dpr,
        y=(point.y + offset_y + top) * dpr,
    )
