"""
Exception types raised by the detection pipeline.
"""

from typing import Optional


class DetectorError(Exception):
    """Base class for all detector errors."""


class ResourceError(DetectorError):
    """Label or model asset is missing, unreadable or empty."""


class ModelLoadError(DetectorError):
    """Model bytes are malformed, the accelerator could not be bound,
    or the model's declared tensors disagree with the configuration."""


class InferenceError(DetectorError):
    """
    A single inference call failed.

    The ``reason`` attribute is one of ``not_ready``, ``shape_mismatch``,
    ``timeout`` or ``engine``.
    """

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message)
        self.reason = reason


class NotReadyError(DetectorError):
    """Session used before setup() or after clear()."""


class FrameError(DetectorError, ValueError):
    """Input frame cannot be converted into a tensor."""
