"""
Decoding of raw model output into ranked bounding boxes.

The decoder is assembled from three parts:

- an output layout, which says how the flat output tensor splits into
  per-candidate geometry, objectness and class scores;
- a class strategy, which turns those scores into a confidence and a
  class index per candidate;
- a selection policy, which reduces the candidates that pass the
  confidence gate to the final ordered result.
"""

import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .errors import ModelLoadError
from .models import BoundingBox

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Output layouts
# ---------------------------------------------------------------------------

class RecordLayout:
    """
    Output read as consecutive fixed-width records:
    ``[cx, cy, w, h, ..., confidence, class slots...]``.
    """

    name = "records"

    def __init__(self, record_width: int = 6, confidence_offset: int = 4):
        if record_width < 5:
            raise ValueError(f"record_width must be >= 5, got {record_width}")
        if not 4 <= confidence_offset < record_width:
            raise ValueError(
                f"confidence_offset must be in [4, {record_width}), got {confidence_offset}"
            )
        self.record_width = record_width
        self.confidence_offset = confidence_offset

    @property
    def num_classes(self) -> int:
        return self.record_width - self.confidence_offset - 1

    @property
    def has_objectness(self) -> bool:
        return True

    def validate(self, output_shape: Sequence[int]) -> None:
        total = int(np.prod(output_shape))
        if total == 0 or total % self.record_width != 0:
            raise ModelLoadError(
                f"Output shape {tuple(output_shape)} ({total} values) is not a "
                f"whole number of {self.record_width}-wide records"
            )

    def split(self, output: np.ndarray) -> Tuple[np.ndarray, Optional[np.ndarray], np.ndarray]:
        flat = np.asarray(output, dtype=np.float32).ravel()
        if flat.size % self.record_width != 0:
            raise ValueError(
                f"Output length {flat.size} is not a multiple of {self.record_width}"
            )
        records = flat.reshape(-1, self.record_width)
        geometry = records[:, :4]
        objectness = records[:, self.confidence_offset]
        class_scores = records[:, self.confidence_offset + 1:]
        return geometry, objectness, class_scores


class ChannelsFirstLayout:
    """
    YOLOv8-style output ``(1, 4 + classes, anchors)``: one row per channel,
    one column per candidate, no separate objectness score.
    """

    name = "channels_first"

    def __init__(self, num_channels: int = 84):
        if num_channels < 5:
            raise ValueError(f"num_channels must be >= 5, got {num_channels}")
        self.num_channels = num_channels

    @property
    def num_classes(self) -> int:
        return self.num_channels - 4

    @property
    def has_objectness(self) -> bool:
        return False

    def validate(self, output_shape: Sequence[int]) -> None:
        shape = tuple(int(d) for d in output_shape)
        squeezed = tuple(d for d in shape if d != 1)
        if len(squeezed) != 2 or squeezed[0] != self.num_channels:
            raise ModelLoadError(
                f"Output shape {shape} does not match channels-first layout "
                f"with {self.num_channels} channels"
            )

    def split(self, output: np.ndarray) -> Tuple[np.ndarray, Optional[np.ndarray], np.ndarray]:
        flat = np.asarray(output, dtype=np.float32).ravel()
        if flat.size % self.num_channels != 0:
            raise ValueError(
                f"Output length {flat.size} is not a multiple of {self.num_channels}"
            )
        candidates = flat.reshape(self.num_channels, -1).T
        return candidates[:, :4], None, candidates[:, 4:]


# ---------------------------------------------------------------------------
# Class strategies
# ---------------------------------------------------------------------------

class FixedClass:
    """Every candidate is assigned the same class index."""

    name = "fixed"

    def __init__(self, index: int = 0):
        if index < 0:
            raise ValueError(f"Class index must be >= 0, got {index}")
        self.index = index

    def validate(self, layout, num_labels: int) -> None:
        if self.index >= num_labels:
            raise ModelLoadError(
                f"Fixed class index {self.index} outside label catalog ({num_labels} labels)"
            )
        if not layout.has_objectness and self.index >= layout.num_classes:
            raise ModelLoadError(
                f"Fixed class index {self.index} outside model classes ({layout.num_classes})"
            )

    def resolve(self, objectness: Optional[np.ndarray],
                class_scores: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        n = class_scores.shape[0]
        if objectness is not None:
            confidence = objectness
        else:
            confidence = class_scores[:, self.index]
        return confidence, np.full(n, self.index, dtype=np.int64)


class ArgmaxClass:
    """Class index is the highest-scoring class slot."""

    name = "argmax"

    def validate(self, layout, num_labels: int) -> None:
        if layout.num_classes > num_labels:
            raise ModelLoadError(
                f"Model reports {layout.num_classes} classes but label catalog "
                f"has {num_labels} labels"
            )

    def resolve(self, objectness: Optional[np.ndarray],
                class_scores: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        n = class_scores.shape[0]
        if class_scores.shape[1] == 0:
            class_ids = np.zeros(n, dtype=np.int64)
        else:
            class_ids = np.argmax(class_scores, axis=1).astype(np.int64)

        if objectness is not None:
            confidence = objectness
        else:
            confidence = class_scores[np.arange(n), class_ids]
        return confidence, class_ids


# ---------------------------------------------------------------------------
# Selection policies
# ---------------------------------------------------------------------------

class TopKSelection:
    """
    Keep the K most confident candidates.

    No overlap suppression: two boxes on the same object can both survive.
    """

    name = "top_k"

    def __init__(self, max_detections: int = 10):
        if max_detections < 1:
            raise ValueError(f"max_detections must be >= 1, got {max_detections}")
        self.max_detections = max_detections

    def select(self, geometry: np.ndarray, confidence: np.ndarray) -> np.ndarray:
        order = np.argsort(-confidence, kind="stable")
        return order[:self.max_detections]


class SpatialNMSSelection:
    """Greedy non-maximum suppression on center-format boxes, capped at K."""

    name = "nms"

    def __init__(self, iou_threshold: float = 0.5, max_detections: int = 10):
        if not 0.0 <= iou_threshold <= 1.0:
            raise ValueError(f"iou_threshold must be in [0, 1], got {iou_threshold}")
        if max_detections < 1:
            raise ValueError(f"max_detections must be >= 1, got {max_detections}")
        self.iou_threshold = iou_threshold
        self.max_detections = max_detections

    def select(self, geometry: np.ndarray, confidence: np.ndarray) -> np.ndarray:
        if len(geometry) == 0:
            return np.array([], dtype=np.int64)

        x1 = geometry[:, 0] - geometry[:, 2] / 2
        y1 = geometry[:, 1] - geometry[:, 3] / 2
        x2 = geometry[:, 0] + geometry[:, 2] / 2
        y2 = geometry[:, 1] + geometry[:, 3] / 2
        areas = np.maximum(0, x2 - x1) * np.maximum(0, y2 - y1)

        order = np.argsort(-confidence, kind="stable")
        keep = []

        while order.size > 0 and len(keep) < self.max_detections:
            i = order[0]
            keep.append(i)

            rest = order[1:]
            xx1 = np.maximum(x1[i], x1[rest])
            yy1 = np.maximum(y1[i], y1[rest])
            xx2 = np.minimum(x2[i], x2[rest])
            yy2 = np.minimum(y2[i], y2[rest])

            inter = np.maximum(0, xx2 - xx1) * np.maximum(0, yy2 - yy1)
            iou = inter / (areas[i] + areas[rest] - inter + 1e-8)

            order = rest[iou <= self.iou_threshold]

        return np.array(keep, dtype=np.int64)


# ---------------------------------------------------------------------------
# Decoder
# ---------------------------------------------------------------------------

class DetectionDecoder:
    """Turns a raw output tensor into an ordered list of BoundingBox."""

    def __init__(self, labels: Sequence[str], confidence_threshold: float = 0.4,
                 layout=None, class_strategy=None, selection=None):
        self.labels = labels
        self.confidence_threshold = confidence_threshold
        self.layout = layout if layout is not None else RecordLayout()
        self.class_strategy = class_strategy if class_strategy is not None else FixedClass(0)
        self.selection = selection if selection is not None else TopKSelection()

    def validate(self, output_shape: Sequence[int]) -> None:
        """
        Check the decoder against a model's declared output shape.

        Raises:
            ModelLoadError: On layout or class-count mismatch.
        """
        self.layout.validate(output_shape)
        self.class_strategy.validate(self.layout, len(self.labels))
        logger.debug(
            f"Decoder validated: layout={self.layout.name}, "
            f"classes={self.class_strategy.name}, selection={self.selection.name}"
        )

    def decode(self, output: np.ndarray) -> List[BoundingBox]:
        """
        Decode one output tensor.

        Args:
            output: Raw model output.

        Returns:
            Boxes ordered by descending confidence; empty if none pass the gate.
        """
        geometry, objectness, class_scores = self.layout.split(output)
        confidence, class_ids = self.class_strategy.resolve(objectness, class_scores)

        # Compare in the tensor's precision so 0.4 does not pass a 0.4 gate
        mask = confidence > confidence.dtype.type(self.confidence_threshold)
        if not np.any(mask):
            return []

        geometry = geometry[mask]
        confidence = confidence[mask]
        class_ids = class_ids[mask]

        keep = self.selection.select(geometry, confidence)

        boxes = []
        for i in keep:
            class_id = int(class_ids[i])
            boxes.append(BoundingBox(
                cx=float(geometry[i, 0]),
                cy=float(geometry[i, 1]),
                w=float(geometry[i, 2]),
                h=float(geometry[i, 3]),
                confidence=float(confidence[i]),
                class_id=class_id,
                label=self.labels[class_id],
            ))

        return boxes


def build_decoder(config, labels: Sequence[str]) -> DetectionDecoder:
    """
    Create a DetectionDecoder from a DecoderConfig.

    Args:
        config: DecoderConfig instance.
        labels: Label catalog used to resolve class names.
    """
    if config.layout == "records":
        layout = RecordLayout(config.record_width, config.confidence_offset)
    elif config.layout == "channels_first":
        layout = ChannelsFirstLayout(config.num_channels)
    else:
        raise ValueError(f"Unknown output layout: {config.layout}")

    if config.class_strategy == "fixed":
        class_strategy = FixedClass(config.fixed_class_index)
    elif config.class_strategy == "argmax":
        class_strategy = ArgmaxClass()
    else:
        raise ValueError(f"Unknown class strategy: {config.class_strategy}")

    if config.selection == "top_k":
        selection = TopKSelection(config.max_detections)
    elif config.selection == "nms":
        selection = SpatialNMSSelection(config.iou_threshold, config.max_detections)
    else:
        raise ValueError(f"Unknown selection policy: {config.selection}")

    return DetectionDecoder(
        labels=labels,
        confidence_threshold=config.confidence_threshold,
        layout=layout,
        class_strategy=class_strategy,
        selection=selection,
    )
