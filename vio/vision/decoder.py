"""
Detection Decoder
=================

Turns a raw YOLO-style output tensor into confidence-filtered candidate
boxes, still in model-input pixel space.

The expected layout is ``[1, 4 + C, A]``: for each of ``A`` anchors the first
four rows hold ``(cx, cy, w, h)`` and the remaining ``C`` rows hold per-class
scores.
"""

from dataclasses import dataclass

import numpy as np

from vio.errors import DecodeError
from vio.utils.logger import get_logger
from vio.vision.inference import RawTensor

logger = get_logger(__name__)

BOX_ROWS = 4


@dataclass(frozen=True)
class Candidate:
    """
    Candidate detection in model space.

    Attributes:
        x1: Left edge.
        y1: Top edge.
        x2: Right edge.
        y2: Bottom edge.
        class_id: Index of the highest-scoring class.
        confidence: Score of that class, in [0, 1].
        anchor: Anchor index the box came from.
    """

    x1: float
    y1: float
    x2: float
    y2: float
    class_id: int
    confidence: float
    anchor: int = 0

    @property
    def area(self) -> float:
        return max(0.0, self.x2 - self.x1) * max(0.0, self.y2 - self.y1)


def validate_shape(raw: RawTensor) -> tuple[int, int]:
    """
    Check the output layout.

    Returns:
        Tuple of (num_classes, num_anchors).

    Raises:
        DecodeError: If the tensor is not shaped [1, 4 + C, A] with C >= 1.
    """
    shape = raw.shape
    if len(shape) != 3 or shape[0] != 1 or shape[1] <= BOX_ROWS or shape[2] < 0:
        raise DecodeError(
            f"Expected detection tensor shaped [1, 4+C, A], got {list(shape)} "
            f"from output '{raw.name}'",
            shape=shape,
        )
    return shape[1] - BOX_ROWS, shape[2]


def decode_detections(raw: RawTensor, confidence_threshold: float = 0.45) -> list[Candidate]:
    """
    Decode anchors whose best class score clears the threshold.

    Args:
        raw: Raw model output.
        confidence_threshold: Scores must be strictly greater than this.

    Returns:
        Candidates in anchor-index order.

    Raises:
        DecodeError: On a tensor layout mismatch.
    """
    num_classes, num_anchors = validate_shape(raw)
    if num_anchors == 0:
        return []

    rows = raw.rows()
    scores = rows[BOX_ROWS:]
    # argmax keeps the first index on ties
    class_ids = np.argmax(scores, axis=0)
    max_conf = scores[class_ids, np.arange(num_anchors)]

    candidates: list[Candidate] = []
    for anchor in np.flatnonzero(max_conf > confidence_threshold):
        cx, cy, w, h = (float(v) for v in rows[:BOX_ROWS, anchor])
        w, h = abs(w), abs(h)
        candidates.append(
            Candidate(
                x1=cx - w / 2,
                y1=cy - h / 2,
                x2=cx + w / 2,
                y2=cy + h / 2,
                class_id=int(class_ids[anchor]),
                confidence=float(max_conf[anchor]),
                anchor=int(anchor),
            )
        )

    logger.debug(
        "Detections decoded",
        anchors=num_anchors,
        classes=num_classes,
        candidates=len(candidates),
        threshold=confidence_threshold,
    )
    return candidates
