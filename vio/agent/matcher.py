"""
Target Matching
===============

Resolves a semantic target request (text and/or type) to one detected
element. The first qualifying element in list order wins; there is no
relevance scoring.
"""

from dataclasses import dataclass
from typing import Optional, Sequence

from vio.utils.logger import get_logger
from vio.vision.coordinates import DetectedElement

logger = get_logger(__name__)


@dataclass(frozen=True)
class TargetRequest:
    """
    What to click.

    Attributes:
        text: Substring the element text must contain (case-insensitive).
        type: Element type it must equal (case-insensitive).
        offset_x: Extra horizontal offset in screenshot pixels.
        offset_y: Extra vertical offset in screenshot pixels.
        display_id: Display to observe; defaults to the primary one.
    """

    text: Optional[str] = None
    type: Optional[str] = None
    offset_x: float = 0.0
    offset_y: float = 0.0
    display_id: Optional[str] = None

    def describe(self) -> str:
        return f"{self.text or 'any'} {self.type or 'element'}"


def _matches(element: DetectedElement, text: Optional[str], element_type: Optional[str]) -> bool:
    if text and not (element.text and text.lower() in element.text.lower()):
        return False
    if element_type and element.type.lower() != element_type.lower():
        return False
    return True


def match_target(
    elements: Sequence[DetectedElement],
    request: TargetRequest,
) -> Optional[DetectedElement]:
    """
    Find the element a request refers to.

    Args:
        elements: Current observation, in id order.
        request: Target request; empty filters match anything.

    Returns:
        The first matching element, or None.
    """
    for element in elements:
        if _matches(element, request.text, request.type):
            return element

    logger.warning(
        "Target element not found in current view",
        target=request.describe(),
        element_count=len(elements),
    )
    return None
