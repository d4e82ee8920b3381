"""
TFLite Object Detection

Turns single image frames into short lists of labeled bounding boxes using a
YOLO-style model executed by the LiteRT interpreter with GPU acceleration.
"""

__version__ = "1.0.0"
__license__ = "MIT"

from .detector import DetectionSession
from .errors import (
    DetectorError, FrameError, InferenceError, ModelLoadError,
    NotReadyError, ResourceError,
)
from .models import BoundingBox, Detections, EmptyDetection, SessionState

__all__ = [
    "BoundingBox",
    "DetectionSession",
    "Detections",
    "DetectorError",
    "EmptyDetection",
    "FrameError",
    "InferenceError",
    "ModelLoadError",
    "NotReadyError",
    "ResourceError",
    "SessionState",
]
