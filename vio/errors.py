"""
Error Types
===========

Exception hierarchy for the targeting pipeline.

Most pipeline failures degrade to an empty detection list and never reach
the caller. Only contract violations between the model and the decoder are
raised, since they cannot be recovered from by re-observing.
"""


class VioError(Exception):
    """Base error for the VIO agent."""


class DecodeError(VioError):
    """Raised when the raw detection tensor does not match the expected layout."""

    def __init__(self, message: str, shape: tuple[int, ...] = ()) -> None:
        super().__init__(message)
        self.shape = shape


class InferenceError(VioError):
    """Raised by an inference oracle when a model run fails."""
