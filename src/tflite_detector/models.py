"""
Data types shared across the detection pipeline.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Protocol, Sequence, Tuple, Union


@dataclass(frozen=True)
class BoundingBox:
    """
    A single detection.

    Geometry is normalized to [0, 1] relative to the model's input tensor.
    """
    cx: float          # Center x
    cy: float          # Center y
    w: float           # Width
    h: float           # Height
    confidence: float
    class_id: int = 0
    label: str = ""

    @property
    def area(self) -> float:
        """Box area in normalized units."""
        return max(0.0, self.w) * max(0.0, self.h)

    @property
    def bbox_xyxy(self) -> Tuple[float, float, float, float]:
        """Box as (x1, y1, x2, y2)."""
        half_w = self.w / 2
        half_h = self.h / 2
        return (
            self.cx - half_w,
            self.cy - half_h,
            self.cx + half_w,
            self.cy + half_h,
        )

    def iou(self, other: "BoundingBox") -> float:
        """Intersection-over-union with another box."""
        ax1, ay1, ax2, ay2 = self.bbox_xyxy
        bx1, by1, bx2, by2 = other.bbox_xyxy

        inter_w = max(0.0, min(ax2, bx2) - max(ax1, bx1))
        inter_h = max(0.0, min(ay2, by2) - max(ay1, by1))
        inter = inter_w * inter_h

        union = self.area + other.area - inter
        if union <= 0:
            return 0.0
        return inter / union

    def to_dict(self) -> Dict:
        return {
            'cx': self.cx,
            'cy': self.cy,
            'w': self.w,
            'h': self.h,
            'confidence': self.confidence,
            'class_id': self.class_id,
            'label': self.label,
        }


@dataclass(frozen=True)
class EmptyDetection:
    """Nothing passed the confidence gate for this frame."""
    inference_time_ms: int = 0

    @property
    def is_empty(self) -> bool:
        return True


@dataclass(frozen=True)
class Detections:
    """Non-empty result set, ordered by descending confidence."""
    boxes: Tuple[BoundingBox, ...] = field(default_factory=tuple)
    inference_time_ms: int = 0

    @property
    def is_empty(self) -> bool:
        return len(self.boxes) == 0

    def __len__(self) -> int:
        return len(self.boxes)

    def __iter__(self):
        return iter(self.boxes)


DetectResult = Union[EmptyDetection, Detections]


class SessionState(Enum):
    """Lifecycle of a DetectionSession."""
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    RELEASED = "released"


class DetectorListener(Protocol):
    """Receiver for per-frame detection outcomes."""

    def on_empty_detect(self) -> None:
        ...

    def on_detect(self, boxes: Sequence[BoundingBox], inference_time_ms: int) -> None:
        ...
