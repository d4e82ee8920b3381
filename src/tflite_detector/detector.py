"""
Detection session: drives preprocessing, inference and decoding per frame.
"""

import logging
import time
from pathlib import Path
from typing import Optional

import numpy as np

from .config import Config
from .decoder import DetectionDecoder, build_decoder
from .errors import ModelLoadError, NotReadyError, ResourceError
from .inference import AcceleratedModel
from .labels import LabelCatalog
from .models import (
    DetectorListener, DetectResult, Detections, EmptyDetection, SessionState,
)
from .preprocess import FramePreprocessor

logger = logging.getLogger(__name__)


class DetectionSession:
    """
    Single-owner object detector backed by a LiteRT model.

    Lifecycle: UNINITIALIZED -> setup() -> READY -> clear() -> RELEASED.
    Not safe for concurrent use from several threads.
    """

    def __init__(self, config: Config, listener: Optional[DetectorListener] = None,
                 model: Optional[AcceleratedModel] = None):
        """
        Args:
            config: Full configuration; the model and decoder sections are used.
            listener: Optional receiver for per-frame outcomes.
            model: Pre-built model wrapper; created from config when omitted.
        """
        self.config = config
        self.listener = listener
        self.model = model if model is not None else AcceleratedModel(
            use_gpu=config.model.use_gpu,
            gpu_delegate_path=config.model.gpu_delegate_path,
            timeout=config.model.inference_timeout,
        )

        self.labels: Optional[LabelCatalog] = None
        self.preprocessor: Optional[FramePreprocessor] = None
        self.decoder: Optional[DetectionDecoder] = None
        self.state = SessionState.UNINITIALIZED

        self.frame_count = 0
        self.last_inference_ms: Optional[int] = None

    @property
    def is_ready(self) -> bool:
        return self.state is SessionState.READY

    def set_listener(self, listener: Optional[DetectorListener]) -> None:
        """Register or replace the result listener."""
        self.listener = listener

    def setup(self) -> None:
        """
        Load labels and model, then validate tensors against the configuration.

        Raises:
            ResourceError: Label or model file missing or unreadable.
            ModelLoadError: Model invalid, delegate unavailable, or tensor
                shapes disagree with the configuration.
            NotReadyError: Session was already released.
        """
        if self.state is SessionState.READY:
            logger.debug("Session already set up")
            return
        if self.state is SessionState.RELEASED:
            raise NotReadyError("Session has been released; create a new one")

        model_cfg = self.config.model

        try:
            if model_cfg.label_path:
                self.labels = LabelCatalog.load(model_cfg.label_path)
            else:
                logger.info("No label file configured, using COCO class names")
                self.labels = LabelCatalog.coco()

            model_bytes = self._read_model(model_cfg.model_path)
            self.model.setup(model_bytes, model_cfg.num_threads)

            try:
                self.preprocessor = FramePreprocessor.from_input_shape(
                    self.model.input_shape, dtype=self.model.input_dtype
                )
            except ValueError as e:
                raise ModelLoadError(f"Unsupported model input: {e}") from e
            if (self.preprocessor.width, self.preprocessor.height) != \
                    (model_cfg.tensor_width, model_cfg.tensor_height):
                raise ModelLoadError(
                    f"Model input {self.preprocessor.width}x{self.preprocessor.height} "
                    f"does not match configured tensor size "
                    f"{model_cfg.tensor_width}x{model_cfg.tensor_height}"
                )

            self.decoder = build_decoder(self.config.decoder, self.labels)
            self.decoder.validate(self.model.output_shape)

        except Exception:
            logger.error("Detection session setup failed")
            self.model.release()
            self.labels = None
            self.preprocessor = None
            self.decoder = None
            raise

        self.state = SessionState.READY
        logger.info(
            f"Detection session ready: {len(self.labels)} labels, "
            f"tensor {model_cfg.tensor_width}x{model_cfg.tensor_height}"
        )

    @staticmethod
    def _read_model(model_path: str) -> bytes:
        path = Path(model_path)
        try:
            data = path.read_bytes()
        except OSError as e:
            logger.error(f"Failed to read model {path}: {e}")
            raise ResourceError(f"Cannot read model file {path}: {e}") from e

        if not data:
            raise ResourceError(f"Model file {path} is empty")

        logger.info(f"Loaded model: {path} ({len(data)} bytes)")
        return data

    def detect(self, frame: np.ndarray) -> DetectResult:
        """
        Detect objects in one frame.

        The listener, if any, is called once before returning: with
        on_empty_detect() or with on_detect(boxes, inference_time_ms).

        Args:
            frame: Image (H, W, 3) in BGR order.

        Returns:
            EmptyDetection or Detections with the elapsed time in milliseconds.

        Raises:
            NotReadyError: Session not set up, or already released.
            FrameError: Frame cannot be preprocessed.
            InferenceError: Inference failed; the session stays ready.
        """
        if self.state is not SessionState.READY:
            raise NotReadyError(f"detect() called in state {self.state.value}")

        start = time.monotonic()

        input_tensor = self.preprocessor.process(frame)
        output = self.model.run(input_tensor)
        boxes = self.decoder.decode(output)

        inference_time_ms = int((time.monotonic() - start) * 1000)
        self.frame_count += 1
        self.last_inference_ms = inference_time_ms

        if not boxes:
            logger.debug(f"Frame {self.frame_count}: no detections ({inference_time_ms} ms)")
            if self.listener is not None:
                self.listener.on_empty_detect()
            return EmptyDetection(inference_time_ms=inference_time_ms)

        logger.debug(
            f"Frame {self.frame_count}: {len(boxes)} detections ({inference_time_ms} ms)"
        )
        if self.listener is not None:
            self.listener.on_detect(boxes, inference_time_ms)
        return Detections(boxes=tuple(boxes), inference_time_ms=inference_time_ms)

    def clear(self) -> None:
        """Release model resources. Safe to call more than once."""
        if self.state is not SessionState.RELEASED:
            logger.info("Clearing detection session")
        self.model.release()
        self.preprocessor = None
        self.decoder = None
        self.state = SessionState.RELEASED

    def __enter__(self) -> "DetectionSession":
        self.setup()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.clear()
