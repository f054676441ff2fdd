"""
Vision Module
=============

Screen perception for the agent.

This package contains:
    - display: Monitor enumeration and device pixel ratio query
    - capture: Screenshot capture per display
    - preprocess: Letterbox normalization into the model input
    - inference: Inference oracle and raw tensor accessor
    - labels: Class index to UI category table
    - decoder: Raw tensor to candidate boxes
    - nms: IoU and non-maximum suppression
    - coordinates: Model, capture and device coordinate mapping
    - detector: The end-to-end detection cycle
"""

from vio.vision.capture import Capture, capture_screenshot
from vio.vision.coordinates import Bounds, DetectedElement, Point, to_device_point
from vio.vision.decoder import Candidate, decode_detections
from vio.vision.detector import UIDetector
from vio.vision.display import DisplayInfo, get_device_pixel_ratio, list_displays, select_display
from vio.vision.inference import InferenceOracle, OnnxInferenceOracle, RawTensor
from vio.vision.labels import ClassLabelTable
from vio.vision.nms import Survivor, iou, non_max_suppression
from vio.vision.preprocess import PreprocessResult, letterbox

__all__ = [
    "Bounds",
    "Candidate",
    "Capture",
    "ClassLabelTable",
    "DetectedElement",
    "DisplayInfo",
    "InferenceOracle",
    "OnnxInferenceOracle",
    "Point",
    "PreprocessResult",
    "RawTensor",
    "Survivor",
    "UIDetector",
    "capture_screenshot",
    "decode_detections",
    "get_device_pixel_ratio",
    "iou",
    "letterbox",
    "list_displays",
    "non_max_suppression",
    "select_display",
    "to_device_point",
]
