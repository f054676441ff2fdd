"""
Letterbox Preprocessing
=======================

Resizes a capture into the fixed square model input without distorting it:
the image is scaled uniformly, centered, and padded with neutral gray.
The scale and padding travel with the tensor so detections can be mapped
back to capture pixels.
"""

from dataclasses import dataclass

import numpy as np
from PIL import Image

from vio.utils.logger import get_logger

logger = get_logger(__name__)

PAD_COLOR = (114, 114, 114)


@dataclass(frozen=True)
class LetterboxGeometry:
    """Scale and padding used to fit a W x H image into an S x S canvas."""

    scale: float
    scaled_width: int
    scaled_height: int
    pad_x: float
    pad_y: float


@dataclass(frozen=True)
class PreprocessResult:
    """
    Model input plus the geometry needed to invert it.

    Attributes:
        tensor: Float32 array shaped (1, 3, S, S) with values in [0, 1].
        scale: Uniform resize factor applied to the capture.
        pad_x: Horizontal padding in model pixels.
        pad_y: Vertical padding in model pixels.
        input_size: Side length S of the model input.
    """

    tensor: np.ndarray
    scale: float
    pad_x: float
    pad_y: float
    input_size: int


def letterbox_geometry(width: int, height: int, size: int) -> LetterboxGeometry:
    """
    Compute letterbox scale and padding.

    Args:
        width: Source width.
        height: Source height.
        size: Target square size.

    Returns:
        The letterbox geometry.

    Raises:
        ValueError: If any dimension is not positive.
    """
    if width <= 0 or height <= 0 or size <= 0:
        raise ValueError(f"Invalid letterbox dimensions: {width}x{height} -> {size}")

    scale = size / max(width, height)
    scaled_width = round(width * scale)
    scaled_height = round(height * scale)
    return LetterboxGeometry(
        scale=scale,
        scaled_width=scaled_width,
        scaled_height=scaled_height,
        pad_x=(size - scaled_width) / 2,
        pad_y=(size - scaled_height) / 2,
    )


def letterbox(pixels: np.ndarray, size: int) -> PreprocessResult:
    """
    Letterbox an RGB(A) pixel buffer into a channel-planar model tensor.

    Args:
        pixels: Array shaped (H, W, 3) or (H, W, 4), uint8.
        size: Model input size S.

    Returns:
        PreprocessResult with a (1, 3, S, S) float32 tensor.
    """
    if pixels.ndim != 3 or pixels.shape[2] < 3:
        raise ValueError(f"Expected an (H, W, 3|4) pixel buffer, got shape {pixels.shape}")

    height, width = pixels.shape[:2]
    geometry = letterbox_geometry(width, height, size)

    image = Image.fromarray(np.ascontiguousarray(pixels[:, :, :3], dtype=np.uint8))
    if (geometry.scaled_width, geometry.scaled_height) != (width, height):
        image = image.resize(
            (geometry.scaled_width, geometry.scaled_height),
            Image.Resampling.BILINEAR,
        )

    canvas = Image.new("RGB", (size, size), PAD_COLOR)
    canvas.paste(image, (int(geometry.pad_x), int(geometry.pad_y)))

    # HWC uint8 -> NCHW float32 in [0, 1]
    array = np.asarray(canvas, dtype=np.float32) / 255.0
    tensor = np.ascontiguousarray(array.transpose(2, 0, 1)[np.newaxis, ...])

    logger.debug(
        "Capture letterboxed",
        source=f"{width}x{height}",
        scale=round(geometry.scale, 4),
        pad_x=geometry.pad_x,
        pad_y=geometry.pad_y,
    )

    return PreprocessResult(
        tensor=tensor,
        scale=geometry.scale,
        pad_x=geometry.pad_x,
        pad_y=geometry.pad_y,
        input_size=size,
    )
