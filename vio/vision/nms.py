"""
Non-Maximum Suppression
=======================

Greedy deduplication of overlapping candidates, keeping the most confident
representative of each overlapping group.
"""

from dataclasses import dataclass

from vio.vision.decoder import Candidate


@dataclass(frozen=True)
class Survivor:
    """A candidate kept by NMS, with its sequential id."""

    id: int
    candidate: Candidate


def iou(a: Candidate, b: Candidate) -> float:
    """
    Intersection over union of two boxes.

    Returns 0 when the union has no area, so zero-area boxes never suppress
    or get suppressed.
    """
    inter_w = max(0.0, min(a.x2, b.x2) - max(a.x1, b.x1))
    inter_h = max(0.0, min(a.y2, b.y2) - max(a.y1, b.y1))
    intersection = inter_w * inter_h
    union = a.area + b.area - intersection
    if union <= 0:
        return 0.0
    return intersection / union


def non_max_suppression(
    candidates: list[Candidate],
    iou_threshold: float = 0.45,
    class_aware: bool = False,
) -> list[Survivor]:
    """
    Select non-overlapping candidates.

    Candidates are visited by descending confidence, ties broken by anchor
    index. A candidate is kept iff its IoU with every kept box is at most
    ``iou_threshold``. Input candidates are never modified.

    Args:
        candidates: Decoded candidates.
        iou_threshold: Maximum allowed overlap with a kept box.
        class_aware: Only compare boxes of the same class.

    Returns:
        Survivors with ids 0..n-1 in selection order.
    """
    ordered = sorted(candidates, key=lambda c: (-c.confidence, c.anchor))
    survivors: list[Survivor] = []

    for candidate in ordered:
        overlaps = (
            iou(candidate, kept.candidate) > iou_threshold
            for kept in survivors
            if not class_aware or kept.candidate.class_id == candidate.class_id
        )
        if not any(overlaps):
            survivors.append(Survivor(id=len(survivors), candidate=candidate))

    return survivors
