"""
Utility functions for drawing detections and general helpers.
"""

import cv2
import numpy as np
from typing import Sequence, Tuple


def to_pixel_box(box, frame_shape: Tuple[int, ...]) -> Tuple[int, int, int, int]:
    """
    Convert a normalized center-format box to pixel corners in a frame.

    The model input is stretched (not letterboxed), so normalized
    coordinates map onto the original frame by plain scaling.

    Args:
        box: BoundingBox with normalized geometry
        frame_shape: Shape of the frame (H, W, ...)

    Returns:
        (x1, y1, x2, y2) clipped to the frame
    """
    h, w = frame_shape[:2]
    x1, y1, x2, y2 = box.bbox_xyxy

    x1 = max(0, min(int(x1 * w), w - 1))
    y1 = max(0, min(int(y1 * h), h - 1))
    x2 = max(0, min(int(x2 * w), w - 1))
    y2 = max(0, min(int(y2 * h), h - 1))

    return x1, y1, x2, y2


def draw_detections(image: np.ndarray, boxes: Sequence) -> np.ndarray:
    """
    Draw bounding boxes and labels on image.

    Args:
        image: Input image (BGR format)
        boxes: BoundingBox detections with normalized geometry

    Returns:
        Annotated image
    """
    annotated = image.copy()

    # Colors for different classes (using OpenCV BGR format)
    colors = [
        (255, 0, 0),      # Blue
        (0, 255, 0),      # Green
        (0, 0, 255),      # Red
        (255, 255, 0),    # Cyan
        (255, 0, 255),    # Magenta
        (0, 255, 255),    # Yellow
        (128, 0, 128),    # Purple
        (255, 165, 0),    # Orange
    ]

    for box in boxes:
        x1, y1, x2, y2 = to_pixel_box(box, annotated.shape)
        color = colors[int(box.class_id) % len(colors)]

        cv2.rectangle(annotated, (x1, y1), (x2, y2), color, 2)

        label = f"{box.label}: {box.confidence:.2f}"
        (label_w, label_h), baseline = cv2.getTextSize(
            label, cv2.FONT_HERSHEY_SIMPLEX, 0.5, 1
        )

        # Keep the label inside the frame when the box touches the top edge
        text_y = max(y1, label_h + baseline + 5)

        cv2.rectangle(
            annotated,
            (x1, text_y - label_h - baseline - 5),
            (x1 + label_w, text_y),
            color,
            -1
        )
        cv2.putText(
            annotated,
            label,
            (x1, text_y - baseline - 2),
            cv2.FONT_HERSHEY_SIMPLEX,
            0.5,
            (255, 255, 255),
            1,
            cv2.LINE_AA
        )

    return annotated


def get_coco_class_names() -> list:
    """
    Get COCO dataset class names (80 classes used by YOLOv8).

    Returns:
        List of class names
    """
    return [
        "person", "bicycle", "car", "motorcycle", "airplane", "bus", "train", "truck",
        "boat", "traffic light", "fire hydrant", "stop sign", "parking meter", "bench",
        "bird", "cat", "dog", "horse", "sheep", "cow", "elephant", "bear", "zebra",
        "giraffe", "backpack", "umbrella", "handbag", "tie", "suitcase", "frisbee",
        "skis", "snowboard", "sports ball", "kite", "baseball bat", "baseball glove",
        "skateboard", "surfboard", "tennis racket", "bottle", "wine glass", "cup",
        "fork", "knife", "spoon", "bowl", "banana", "apple", "sandwich", "orange",
        "broccoli", "carrot", "hot dog", "pizza", "donut", "cake", "chair", "couch",
        "potted plant", "bed", "dining table", "toilet", "tv", "laptop", "mouse",
        "remote", "keyboard", "cell phone", "microwave", "oven", "toaster", "sink",
        "refrigerator", "book", "clock", "vase", "scissors", "teddy bear", "hair drier",
        "toothbrush"
    ]
