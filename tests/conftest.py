"""
Shared Test Fixtures
====================

Pytest fixtures used across all test modules.
Provides fake oracles, synthetic captures and raw detection tensors.
"""

from typing import Optional, Sequence

import numpy as np
import pytest

from vio.vision.capture import Capture
from vio.vision.coordinates import Bounds, DetectedElement
from vio.vision.display import DisplayInfo
from vio.vision.inference import RawTensor


def _make_raw_tensor(
    boxes: Sequence[tuple[float, float, float, float]],
    scores: Sequence[Sequence[float]],
    name: str = "output0",
) -> RawTensor:
    """
    Build a [1, 4+C, A] tensor.

    Args:
        boxes: One (cx, cy, w, h) per anchor.
        scores: One list of C class scores per anchor.
    """
    num_classes = len(scores[0]) if scores else 1
    data = np.zeros((1, 4 + num_classes, len(boxes)), dtype=np.float32)
    for anchor, (box, anchor_scores) in enumerate(zip(boxes, scores)):
        data[0, :4, anchor] = box
        data[0, 4:, anchor] = anchor_scores
    return RawTensor.from_array(name, data)


def _make_element(
    id: int,
    type: str = "button",
    text: Optional[str] = None,
    bounds: tuple[float, float, float, float] = (0, 0, 10, 10),
    confidence: float = 0.9,
) -> DetectedElement:
    """Helper to create a capture-space element."""
    return DetectedElement(
        id=id,
        type=type,
        bounds=Bounds(*bounds),
        confidence=confidence,
        text=text,
    )


def _make_capture(
    width: int = 1920,
    height: int = 1080,
    display: Optional[DisplayInfo] = None,
) -> Capture:
    """Synthetic solid-color RGB capture."""
    pixels = np.full((height, width, 3), 200, dtype=np.uint8)
    display = display or DisplayInfo(id=0, name="Display 0", width=width, height=height)
    return Capture(
        pixels=pixels,
        width=width,
        height=height,
        display_id=display.id,
        display=display,
    )


class FakeOracle:
    """In-memory inference oracle returning a fixed tensor."""

    def __init__(self, output: Optional[RawTensor] = None, error: Optional[Exception] = None) -> None:
        self.output = output
        self.error = error
        self.available = True
        self.calls: list[tuple[int, ...]] = []

    def run(self, tensor: np.ndarray) -> RawTensor:
        self.calls.append(tuple(tensor.shape))
        if self.error is not None:
            raise self.error
        return self.output


# ---------------------------------------------------------------------------
# Display / capture fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def primary_display() -> DisplayInfo:
    return DisplayInfo(id=0, name="Display 0", width=1920, height=1080, left=0, top=0)


@pytest.fixture
def secondary_display() -> DisplayInfo:
    """Monitor placed to the left of the primary one."""
    return DisplayInfo(id=1, name="Display 1", width=1280, height=1024, left=-1280, top=0)


@pytest.fixture
def capture(primary_display: DisplayInfo) -> Capture:
    return _make_capture(display=primary_display)


# ---------------------------------------------------------------------------
# Detection fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def two_button_tensor() -> RawTensor:
    """
    Three anchors for a 1920x1080 capture letterboxed to 640:
    two overlapping 'button' boxes and one distinct 'checkbox'.
    """
    return _make_raw_tensor(
        boxes=[
            (150.0, 200.0, 100.0, 100.0),
            (152.0, 202.0, 100.0, 100.0),
            (400.0, 300.0, 60.0, 60.0),
        ],
        scores=[
            [0.0, 0.0, 0.0, 0.0, 0.90, 0.1],
            [0.0, 0.0, 0.0, 0.0, 0.80, 0.1],
            [0.0, 0.0, 0.0, 0.0, 0.10, 0.7],
        ],
    )


@pytest.fixture
def sample_elements() -> list[DetectedElement]:
    return [
        _make_element(0, "button", "Submit Order", (100, 100, 200, 140)),
        _make_element(1, "input", "Email address", (100, 200, 400, 240)),
        _make_element(2, "button", "Cancel", (220, 100, 320, 140)),
        _make_element(3, "checkbox", None, (100, 300, 120, 320)),
    ]
