"""
Frame source for the command line runner: image file, video file or camera.
"""

import cv2
import logging
import numpy as np
from typing import Optional
from .config import VideoConfig


logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = ('.jpg', '.jpeg', '.png', '.bmp', '.webp')
VIDEO_EXTENSIONS = ('.mp4', '.avi', '.mkv', '.mov', '.webm')


class FrameSource:
    """
    Reads BGR frames from a still image, a video file or a camera device.

    A still image yields exactly one frame.
    """

    def __init__(self, config: VideoConfig):
        """
        Initialize frame source.

        Args:
            config: Video configuration
        """
        self.config = config
        self.cap: Optional[cv2.VideoCapture] = None
        self.image: Optional[np.ndarray] = None
        self.is_opened = False
        self.frame_count = 0

    @property
    def is_image(self) -> bool:
        return self.config.device.lower().endswith(IMAGE_EXTENSIONS)

    def open(self) -> bool:
        """
        Open the configured source.

        Returns:
            True if successful, False otherwise
        """
        device = self.config.device
        logger.info(f"Opening frame source: {device}")

        if self.is_image:
            self.image = cv2.imread(device, cv2.IMREAD_COLOR)
            if self.image is None:
                logger.error(f"Failed to read image {device}")
                return False
            self.is_opened = True
            return True

        if device.lower().endswith(VIDEO_EXTENSIONS):
            self.cap = cv2.VideoCapture(device)
        elif device.isdigit():
            self.cap = cv2.VideoCapture(int(device))
        else:
            self.cap = cv2.VideoCapture(device, cv2.CAP_V4L2)

        if not self.cap.isOpened():
            logger.error(f"Failed to open {device}")
            self.cap = None
            return False

        if not device.lower().endswith(VIDEO_EXTENSIONS):
            self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.config.width)
            self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.config.height)
            self.cap.set(cv2.CAP_PROP_FPS, self.config.fps)

        actual_width = int(self.cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        actual_height = int(self.cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        logger.info(f"Source opened: {actual_width}x{actual_height}")

        self.is_opened = True
        return True

    def read(self) -> Optional[np.ndarray]:
        """
        Read the next frame.

        Returns:
            Frame as numpy array (BGR), or None when exhausted or failed
        """
        if not self.is_opened:
            return None

        if self.image is not None:
            frame = self.image
            self.image = None
            self.is_opened = False
            self.frame_count += 1
            return frame

        ret, frame = self.cap.read()
        if not ret or frame is None:
            logger.info("End of stream")
            self.is_opened = False
            return None

        self.frame_count += 1
        return frame

    def release(self):
        """Release capture resources."""
        if self.cap is not None:
            logger.info("Releasing frame source")
            self.cap.release()
            self.cap = None
        self.image = None
        self.is_opened = False
