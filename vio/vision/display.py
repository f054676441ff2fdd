"""
Display Enumeration
===================

Lists connected monitors with their virtual-desktop offsets and queries the
device pixel ratio used to translate screenshot pixels into the OS pointer
coordinate space.
"""

import re
import subprocess
import sys
from dataclasses import dataclass
from typing import Optional, Sequence

import mss

from vio.utils.logger import get_logger

logger = get_logger(__name__)

# Windows reports 96 DPI at 100% scaling
_WINDOWS_BASE_DPI = 96


@dataclass(frozen=True)
class DisplayInfo:
    """
    Snapshot of one monitor.

    Attributes:
        id: Enumeration index, starting at 0.
        name: Human-readable display name.
        width: Width in screenshot pixels.
        height: Height in screenshot pixels.
        left: Origin X in virtual-desktop space (may be negative).
        top: Origin Y in virtual-desktop space (may be negative).
    """

    id: int
    name: str
    width: int
    height: int
    left: int = 0
    top: int = 0

    @property
    def is_primary(self) -> bool:
        """Conventional primary display sits at the desktop origin."""
        return self.left == 0 and self.top == 0

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "width": self.width,
            "height": self.height,
            "left": self.left,
            "top": self.top,
        }


def list_displays() -> list[DisplayInfo]:
    """
    Enumerate connected displays.

    ``mss`` reports the combined virtual screen at index 0 followed by one
    entry per physical monitor; only the physical monitors are returned.

    Returns:
        Displays in enumeration order, or an empty list if the platform
        query fails.
    """
    try:
        with mss.mss() as sct:
            monitors = list(sct.monitors[1:])
    except Exception as e:
        logger.warning("Display enumeration failed", error=str(e))
        return []

    displays = [
        DisplayInfo(
            id=index,
            name=f"Display {index}",
            width=int(mon["width"]),
            height=int(mon["height"]),
            left=int(mon["left"]),
            top=int(mon["top"]),
        )
        for index, mon in enumerate(monitors)
    ]
    logger.debug("Displays enumerated", count=len(displays))
    return displays


def select_display(
    displays: Sequence[DisplayInfo],
    display_id: Optional[str] = None,
) -> Optional[DisplayInfo]:
    """
    Pick the display to capture.

    Args:
        displays: Enumerated displays.
        display_id: Optional id or name to match.

    Returns:
        The matching display; without an id, the display at origin (0, 0)
        or else the first one. None when nothing matches.
    """
    if not displays:
        return None

    if display_id is not None:
        wanted = str(display_id)
        for display in displays:
            if str(display.id) == wanted or display.name == wanted:
                return display
        return None

    for display in displays:
        if display.is_primary:
            return display
    return displays[0]


def _run(command: list[str]) -> str:
    return subprocess.run(
        command,
        capture_output=True,
        text=True,
        timeout=5,
        check=True,
    ).stdout


def _windows_dpr() -> Optional[float]:
    out = _run([
        "reg", "query", r"HKCU\Control Panel\Desktop\WindowMetrics", "/v", "AppliedDPI",
    ])
    match = re.search(r"AppliedDPI\s+REG_DWORD\s+0x([0-9a-fA-F]+)", out)
    if match:
        dpi = int(match.group(1), 16)
        if dpi > 0:
            return dpi / _WINDOWS_BASE_DPI
    return None


def _macos_dpr() -> Optional[float]:
    out = _run(["system_profiler", "SPDisplaysDataType"])
    physical = re.search(r"Resolution:\s*(\d+) x (\d+)", out)
    logical = re.search(r"UI Looks like:\s*(\d+) x (\d+)", out)
    if physical and logical:
        logical_width = int(logical.group(1))
        if logical_width > 0:
            return int(physical.group(1)) / logical_width
    return None


def get_device_pixel_ratio(display: Optional[DisplayInfo] = None) -> float:
    """
    Query the ratio between screenshot pixels and native pointer coordinates.

    Values above 1 are common on Retina screens or with Windows scaling
    above 100%. The per-display argument is accepted for platforms that
    report scaling per monitor; current queries are system-wide.

    Args:
        display: Display whose scaling is wanted.

    Returns:
        The device pixel ratio, or 1.0 when it cannot be determined.
    """
    try:
        if sys.platform == "win32":
            ratio = _windows_dpr()
        elif sys.platform == "darwin":
            ratio = _macos_dpr()
        else:
            ratio = None
    except (OSError, subprocess.SubprocessError, ValueError) as e:
        logger.debug(
            "Device pixel ratio query failed",
            display=display.name if display else None,
            error=str(e),
        )
        ratio = None

    if ratio is None or ratio <= 0:
        return 1.0
    return ratio
