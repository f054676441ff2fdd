"""
Inference Oracle
================

Runs the UI detection model on a preprocessed tensor.

The rest of the pipeline only sees ``RawTensor``, a small typed view over
the model output, so it never depends on the inference runtime's own tensor
types.

Usage:
    from vio.vision.inference import OnnxInferenceOracle

    oracle = OnnxInferenceOracle("models/yolov8n-ui.onnx")
    oracle.initialize()
    if oracle.available:
        raw = oracle.run(preprocessed.tensor)
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

import numpy as np

from vio.errors import InferenceError
from vio.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RawTensor:
    """
    Named model output with an explicit shape.

    Attributes:
        name: Output name reported by the model.
        data: Contiguous float32 array.
    """

    name: str
    data: np.ndarray

    @classmethod
    def from_array(cls, name: str, array) -> "RawTensor":
        """Wrap any array-like output as a float32 tensor."""
        return cls(name=name, data=np.ascontiguousarray(array, dtype=np.float32))

    @property
    def shape(self) -> tuple[int, ...]:
        return tuple(int(d) for d in self.data.shape)

    def get(self, flat_index: int) -> float:
        """Element at a row-major flat index."""
        return float(self.data.reshape(-1)[flat_index])

    def rows(self) -> np.ndarray:
        """The output as a 2-D (rows, anchors) view, dropping the batch axis."""
        return self.data.reshape(self.shape[-2], self.shape[-1])


@runtime_checkable
class InferenceOracle(Protocol):
    """Anything that turns a (1, 3, S, S) tensor into a raw detection tensor."""

    @property
    def available(self) -> bool: ...

    def run(self, tensor: np.ndarray) -> RawTensor: ...


class OnnxInferenceOracle:
    """
    ONNX Runtime backed detection model.

    A missing model file or a session that fails to load leaves the oracle
    unavailable; the detector then runs in disabled mode instead of failing.
    """

    def __init__(self, model_path: str, providers: Optional[list[str]] = None) -> None:
        """
        Initialize the oracle.

        Args:
            model_path: Path to the ONNX model file.
            providers: Execution providers; defaults to CPU.
        """
        self.model_path = model_path
        self.providers = providers or ["CPUExecutionProvider"]
        self._session = None
        self._input_name: Optional[str] = None

    @property
    def available(self) -> bool:
        return self._session is not None

    def initialize(self) -> bool:
        """
        Load the model session.

        Returns:
            True when the session is ready.
        """
        if not Path(self.model_path).exists():
            logger.warning(
                "Model file not found, element detection disabled",
                model_path=self.model_path,
            )
            self._session = None
            return False

        try:
            import onnxruntime as ort

            session = ort.InferenceSession(self.model_path, providers=self.providers)
        except Exception as e:
            logger.error("Failed to initialize detector session", model_path=self.model_path, error=str(e))
            self._session = None
            return False

        self._session = session
        self._input_name = session.get_inputs()[0].name
        logger.info(
            "Detector session initialized",
            model_path=self.model_path,
            input_name=self._input_name,
        )
        return True

    def run(self, tensor: np.ndarray) -> RawTensor:
        """
        Run the model and return its first output.

        Raises:
            InferenceError: If the session is not initialized or the run fails.
        """
        if self._session is None:
            raise InferenceError("Detector session not initialized")

        try:
            outputs = self._session.run(None, {self._input_name: tensor})
        except Exception as e:
            raise InferenceError(f"Model run failed: {e}") from e

        output_name = self._session.get_outputs()[0].name
        return RawTensor.from_array(output_name, outputs[0])
