"""
Frame preprocessing: stretch-resize and normalize into the model input tensor.
"""

import cv2
import numpy as np
from typing import Sequence

from .errors import FrameError


class FramePreprocessor:
    """
    Converts an arbitrary-size frame into a fixed-shape input tensor.

    The frame is stretched to the target size (aspect ratio is not kept)
    using nearest-neighbour sampling, so identical frames always produce
    identical tensors.
    """

    def __init__(self, width: int = 320, height: int = 320,
                 channels_first: bool = False, dtype=np.float32,
                 scale: float = 1.0 / 255.0, swap_rb: bool = True):
        """
        Args:
            width: Tensor width in pixels.
            height: Tensor height in pixels.
            channels_first: Emit (1, 3, H, W) instead of (1, H, W, 3).
            dtype: Tensor element type declared by the model.
            scale: Multiplier applied to pixel values for float tensors.
            swap_rb: Convert BGR frames (OpenCV order) to RGB.
        """
        if width <= 0 or height <= 0:
            raise ValueError(f"Invalid tensor size: {width}x{height}")

        self.width = width
        self.height = height
        self.channels_first = channels_first
        self.dtype = np.dtype(dtype)
        if not (np.issubdtype(self.dtype, np.floating) or self.dtype == np.uint8):
            raise ValueError(
                f"Unsupported input dtype {self.dtype}; expected a float type or uint8"
            )
        self.scale = scale
        self.swap_rb = swap_rb

    @classmethod
    def from_input_shape(cls, shape: Sequence[int], dtype=np.float32,
                         swap_rb: bool = True) -> "FramePreprocessor":
        """
        Build a preprocessor matching a model's declared input.

        Accepts NHWC (1, H, W, 3) or NCHW (1, 3, H, W) shapes.
        """
        shape = tuple(int(d) for d in shape)
        if len(shape) != 4:
            raise ValueError(f"Expected a 4-D input shape, got {shape}")

        if shape[3] == 3:
            _, height, width, _ = shape
            channels_first = False
        elif shape[1] == 3:
            _, _, height, width = shape
            channels_first = True
        else:
            raise ValueError(f"Input shape {shape} has no 3-channel axis")

        return cls(width=width, height=height, channels_first=channels_first,
                   dtype=dtype, swap_rb=swap_rb)

    @property
    def output_shape(self):
        if self.channels_first:
            return (1, 3, self.height, self.width)
        return (1, self.height, self.width, 3)

    def process(self, frame: np.ndarray) -> np.ndarray:
        """
        Resize and normalize a frame.

        Args:
            frame: Image as (H, W, 3) BGR, (H, W, 4) BGRA or (H, W) grayscale.

        Returns:
            Input tensor of ``output_shape`` and ``dtype``.

        Raises:
            FrameError: If the frame is missing or empty, or its layout or dtype is unsupported.
        """
        if frame is None:
            raise FrameError("Frame is None")

        frame = np.asarray(frame)
        if frame.ndim not in (2, 3) or frame.shape[0] == 0 or frame.shape[1] == 0:
            raise FrameError(f"Frame has no area: shape={frame.shape}")

        # OpenCV color conversion accepts uint8 and float32 only
        if frame.dtype == np.uint8 or frame.dtype == np.float32:
            pass
        elif np.issubdtype(frame.dtype, np.integer):
            frame = np.clip(frame, 0, 255).astype(np.uint8)
        elif np.issubdtype(frame.dtype, np.floating):
            frame = frame.astype(np.float32)
        else:
            raise FrameError(f"Unsupported frame dtype: {frame.dtype}")

        if frame.ndim == 2:
            frame = cv2.cvtColor(frame, cv2.COLOR_GRAY2BGR)
        elif frame.shape[2] == 4:
            frame = cv2.cvtColor(frame, cv2.COLOR_BGRA2BGR)
        elif frame.shape[2] != 3:
            raise FrameError(f"Unsupported channel count: {frame.shape[2]}")

        resized = cv2.resize(frame, (self.width, self.height),
                             interpolation=cv2.INTER_NEAREST)

        if self.swap_rb:
            resized = cv2.cvtColor(resized, cv2.COLOR_BGR2RGB)

        if np.issubdtype(self.dtype, np.floating):
            tensor = resized.astype(self.dtype) * self.dtype.type(self.scale)
        else:
            tensor = np.clip(resized, 0, 255).astype(self.dtype)

        if self.channels_first:
            tensor = tensor.transpose(2, 0, 1)

        return np.ascontiguousarray(tensor[None, ...])
