"""
Targeting Pipeline
==================

Turns a semantic click request into an absolute device coordinate.

The pipeline runs one observation cycle at a time:
1. Capture: grab the requested display
2. Detect: letterbox, infer, decode and deduplicate elements
3. Match: pick the requested element
4. Resolve: map its center through display offset and DPI scaling

Usage:
    from vio.agent import TargetingPipeline, TargetRequest

    pipeline = TargetingPipeline(detector=UIDetector.from_settings())
    point = await pipeline.resolve(TargetRequest(text="Submit", type="button"))
    if point is None:
        ...  # re-observe or broaden the query
"""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from vio.agent.matcher import TargetRequest, match_target
from vio.utils.logger import get_logger
from vio.vision.capture import Capture, capture_screenshot
from vio.vision.coordinates import DetectedElement, Point, to_device_point
from vio.vision.detector import UIDetector
from vio.vision.display import DisplayInfo, get_device_pixel_ratio

logger = get_logger(__name__)

CaptureFn = Callable[[Optional[str]], Awaitable[Optional[Capture]]]
DprFn = Callable[[Optional[DisplayInfo]], float]


@dataclass(frozen=True)
class Observation:
    """
    Result of one perception cycle.

    Attributes:
        elements: Detected elements in capture space, in id order.
        display: Display that was captured, if any.
        capture_width: Capture width in pixels (0 when capture failed).
        capture_height: Capture height in pixels (0 when capture failed).
        dpr: Device pixel ratio for the display.
    """

    elements: list[DetectedElement] = field(default_factory=list)
    display: Optional[DisplayInfo] = None
    capture_width: int = 0
    capture_height: int = 0
    dpr: float = 1.0

    def to_dict(self) -> dict:
        return {
            "elements": [e.to_dict() for e in self.elements],
            "display": self.display.to_dict() if self.display else None,
            "capture_width": self.capture_width,
            "capture_height": self.capture_height,
            "dpr": self.dpr,
        }


@dataclass(frozen=True)
class Resolution:
    """A resolved target: the device point and the element it came from."""

    point: Point
    element: DetectedElement
    display: Optional[DisplayInfo] = None


class TargetingPipeline:
    """
    Capture -> detect -> match -> resolve, one cycle at a time.

    Each instance serializes its own cycles with a lock; separate
    instances share no state and can run in parallel.
    """

    def __init__(
        self,
        detector: UIDetector,
        capture_fn: Optional[CaptureFn] = None,
        dpr_fn: Optional[DprFn] = None,
        capture_timeout: float = 10.0,
        dpr_override: Optional[float] = None,
    ) -> None:
        """
        Initialize the pipeline.

        Args:
            detector: Element detector.
            capture_fn: Async capture function; defaults to ``capture_screenshot``.
            dpr_fn: Device pixel ratio query; defaults to ``get_device_pixel_ratio``.
            capture_timeout: Seconds before a capture counts as failed.
            dpr_override: Fixed device pixel ratio, skipping the platform query.
        """
        self.detector = detector
        self.capture_fn = capture_fn or capture_screenshot
        self.dpr_fn = dpr_fn or get_device_pixel_ratio
        self.capture_timeout = capture_timeout
        self.dpr_override = dpr_override
        self._lock = asyncio.Lock()
        self.last_observation: Optional[Observation] = None

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def _device_pixel_ratio(self, display: Optional[DisplayInfo]) -> float:
        if self.dpr_override:
            return self.dpr_override
        # Platform queries shell out, keep them off the event loop
        try:
            ratio = float(await asyncio.to_thread(self.dpr_fn, display))
        except Exception as e:
            logger.debug("Device pixel ratio unavailable", error=str(e))
            return 1.0
        return ratio if ratio > 0 else 1.0

    async def _capture(self, display_id: Optional[str]) -> Optional[Capture]:
        try:
            return await asyncio.wait_for(self.capture_fn(display_id), timeout=self.capture_timeout)
        except asyncio.TimeoutError:
            logger.error("Screen capture timed out", timeout=self.capture_timeout)
        except Exception as e:
            logger.error("Screen capture failed", error=str(e))
        return None

    async def _observe(self, display_id: Optional[str]) -> Observation:
        capture = await self._capture(display_id)
        if capture is None:
            logger.warning("No capture this cycle, returning no elements")
            observation = Observation()
        else:
            elements = await self.detector.detect(capture)
            observation = Observation(
                elements=elements,
                display=capture.display,
                capture_width=capture.width,
                capture_height=capture.height,
                dpr=await self._device_pixel_ratio(capture.display),
            )
        self.last_observation = observation
        return observation

    async def observe(self, display_id: Optional[str] = None) -> Observation:
        """
        Run one perception cycle.

        Args:
            display_id: Display id or name; defaults to the primary display.

        Returns:
            The observation; empty when any stage fails.

        Raises:
            DecodeError: If the model output layout does not match the decoder.
        """
        async with self._lock:
            return await self._observe(display_id)

    async def locate(self, request: TargetRequest) -> Optional[Resolution]:
        """
        Observe and resolve a request, returning the matched element too.

        Returns:
            The resolution, or None when nothing matches.
        """
        async with self._lock:
            logger.info("Target resolution requested", target=request.describe())
            observation = await self._observe(request.display_id)
            target = match_target(observation.elements, request)
            if target is None:
                return None

            point = to_device_point(
                target.center,
                observation.display,
                dpr=observation.dpr,
                offset_x=request.offset_x,
                offset_y=request.offset_y,
            )
            logger.info(
                "Target resolved",
                element_id=target.id,
                element_type=target.type,
                x=round(point.x, 2),
                y=round(point.y, 2),
                display=observation.display.name if observation.display else None,
                dpr=observation.dpr,
            )
            return Resolution(point=point, element=target, display=observation.display)

    async def resolve(self, request: TargetRequest) -> Optional[Point]:
        """
        Resolve a request to an absolute device coordinate.

        Returns:
            The device point, or None when nothing matches.
        """
        resolution = await self.locate(request)
        return resolution.point if resolution else None
