"""
Screen Capture
==============

Grabs a pixel buffer for a chosen display.

Usage:
    from vio.vision.capture import capture_screenshot

    capture = await capture_screenshot()
    if capture is not None:
        print(capture.width, capture.height)
"""

import asyncio
from dataclasses import dataclass
from typing import Optional

import mss
import numpy as np

from vio.utils.logger import get_logger
from vio.vision.display import DisplayInfo, list_displays, select_display

logger = get_logger(__name__)


@dataclass(frozen=True)
class Capture:
    """
    One screenshot, valid for a single observation cycle.

    Attributes:
        pixels: RGB pixel buffer shaped (height, width, 3), uint8.
        width: Capture width in pixels.
        height: Capture height in pixels.
        display_id: Id of the display it was taken from.
        display: The display snapshot used for the grab.
    """

    pixels: np.ndarray
    width: int
    height: int
    display_id: int
    display: Optional[DisplayInfo] = None


def _grab(display: DisplayInfo) -> Capture:
    region = {
        "left": display.left,
        "top": display.top,
        "width": display.width,
        "height": display.height,
    }
    with mss.mss() as sct:
        shot = sct.grab(region)
    # mss returns BGRA; drop alpha and reorder to RGB
    bgra = np.asarray(shot, dtype=np.uint8)
    rgb = np.ascontiguousarray(bgra[:, :, 2::-1])
    return Capture(
        pixels=rgb,
        width=rgb.shape[1],
        height=rgb.shape[0],
        display_id=display.id,
        display=display,
    )


async def capture_screenshot(display_id: Optional[str] = None) -> Optional[Capture]:
    """
    Capture a display.

    Args:
        display_id: Id or name of the display; defaults to the primary one.

    Returns:
        The capture, or None when no display matches or the grab fails.
    """
    displays = await asyncio.to_thread(list_displays)
    display = select_display(displays, display_id)
    if display is None:
        logger.warning(
            "No display available for capture",
            requested=display_id,
            display_count=len(displays),
        )
        return None

    try:
        capture = await asyncio.to_thread(_grab, display)
    except Exception as e:
        logger.error("Screen capture failed", display=display.name, error=str(e))
        return None

    logger.debug(
        "Screen captured",
        display=display.name,
        size=f"{capture.width}x{capture.height}",
    )
    return capture
