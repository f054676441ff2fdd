"""
UI Element Detector
===================

Runs one perception cycle over a capture:

    preprocess -> infer -> decode -> NMS -> map to capture space

Every stage failure collapses the cycle to an empty element list, except a
decode layout mismatch, which means the model and decoder disagree and is
raised to the caller.

Usage:
    from vio.vision.detector import UIDetector

    detector = UIDetector.from_settings()
    detector.initialize()
    elements = await detector.detect(capture)
"""

import asyncio
from typing import Optional

from vio.config import VisionSettings, get_settings
from vio.errors import DecodeError
from vio.utils.logger import get_logger
from vio.vision.capture import Capture
from vio.vision.coordinates import DetectedElement, to_detected_elements
from vio.vision.decoder import decode_detections
from vio.vision.inference import InferenceOracle, OnnxInferenceOracle
from vio.vision.labels import ClassLabelTable
from vio.vision.nms import non_max_suppression
from vio.vision.preprocess import letterbox

logger = get_logger(__name__)


class UIDetector:
    """
    Detection pipeline around an inference oracle.

    With no available oracle the detector is disabled and always returns
    an empty list.
    """

    def __init__(
        self,
        oracle: Optional[InferenceOracle] = None,
        labels: Optional[ClassLabelTable] = None,
        confidence_threshold: float = 0.45,
        iou_threshold: float = 0.45,
        input_size: int = 640,
        class_aware_nms: bool = False,
        inference_timeout: float = 30.0,
    ) -> None:
        """
        Initialize the detector.

        Args:
            oracle: Model runner; None disables detection.
            labels: Class label table.
            confidence_threshold: Minimum class score kept by the decoder.
            iou_threshold: NMS overlap threshold.
            input_size: Square model input size.
            class_aware_nms: Restrict suppression to boxes of the same class.
            inference_timeout: Seconds before a model run counts as failed.
        """
        self.oracle = oracle
        self.labels = labels if labels is not None else ClassLabelTable.default()
        self.confidence_threshold = confidence_threshold
        self.iou_threshold = iou_threshold
        self.input_size = input_size
        self.class_aware_nms = class_aware_nms
        self.inference_timeout = inference_timeout

    @classmethod
    def from_settings(
        cls,
        settings: Optional[VisionSettings] = None,
        oracle: Optional[InferenceOracle] = None,
    ) -> "UIDetector":
        """Build a detector from vision settings, with an ONNX oracle by default."""
        settings = settings or get_settings().vision
        return cls(
            oracle=oracle or OnnxInferenceOracle(settings.model_path),
            labels=ClassLabelTable.default(settings.get_class_labels()),
            confidence_threshold=settings.confidence_threshold,
            iou_threshold=settings.iou_threshold,
            input_size=settings.model_input_size,
            class_aware_nms=settings.nms_class_aware,
            inference_timeout=settings.inference_timeout,
        )

    def initialize(self) -> bool:
        """
        (Re)load the model if the oracle supports it.

        Returns:
            Whether detection is enabled afterwards.
        """
        init = getattr(self.oracle, "initialize", None)
        if callable(init):
            init()
        return self.enabled

    @property
    def enabled(self) -> bool:
        return self.oracle is not None and self.oracle.available

    async def detect(self, capture: Optional[Capture]) -> list[DetectedElement]:
        """
        Detect UI elements in a capture.

        Args:
            capture: Screenshot to analyze; None yields no detections.

        Returns:
            Elements in capture space, ordered by id.

        Raises:
            DecodeError: If the model output layout does not match the decoder.
        """
        if capture is None:
            return []

        if not self.enabled:
            logger.warning("Detector disabled, returning no detections")
            return []

        try:
            prepared = letterbox(capture.pixels, self.input_size)
        except ValueError as e:
            logger.error("Preprocessing failed", error=str(e))
            return []

        try:
            raw = await asyncio.wait_for(
                asyncio.to_thread(self.oracle.run, prepared.tensor),
                timeout=self.inference_timeout,
            )
        except asyncio.TimeoutError:
            logger.error("Inference timed out", timeout=self.inference_timeout)
            return []
        except Exception as e:
            logger.error("Inference failed", error=str(e))
            return []

        try:
            candidates = decode_detections(raw, self.confidence_threshold)
        except DecodeError as e:
            logger.error("Model output does not match decoder layout", shape=list(e.shape))
            raise

        survivors = non_max_suppression(
            candidates,
            iou_threshold=self.iou_threshold,
            class_aware=self.class_aware_nms,
        )
        elements = to_detected_elements(
            survivors,
            prepared,
            capture.width,
            capture.height,
            self.labels,
        )

        logger.info(
            "Elements detected",
            candidates=len(candidates),
            elements=len(elements),
            display_id=capture.display_id,
        )
        return elements
