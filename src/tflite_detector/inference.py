"""
LiteRT (TensorFlow Lite) inference wrapper with optional GPU delegate.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Optional, Tuple

import numpy as np

from .errors import InferenceError, ModelLoadError

logger = logging.getLogger(__name__)

DEFAULT_GPU_DELEGATE = "libtensorflowlite_gpu_delegate.so"


def _load_litert():
    """Import the LiteRT interpreter API."""
    from ai_edge_litert.interpreter import Interpreter, load_delegate
    return Interpreter, load_delegate


class AcceleratedModel:
    """
    Owns one LiteRT interpreter and at most one GPU delegate.

    The interpreter is built once by setup() and released by release().
    Calls are serialized; the instance is meant to have a single owner.

    With a timeout, invoke() runs on one worker thread. A timed-out invoke
    cannot be interrupted: it keeps the worker busy, later calls queue
    behind it, and interpreter exit waits for it to finish.
    """

    def __init__(self, use_gpu: bool = True,
                 gpu_delegate_path: str = DEFAULT_GPU_DELEGATE,
                 timeout: Optional[float] = None):
        self.use_gpu = use_gpu
        self.gpu_delegate_path = gpu_delegate_path
        self.timeout = timeout
        self.num_threads: Optional[int] = None

        self._interpreter = None
        self._delegate = None
        self._input_index: Optional[int] = None
        self._output_index: Optional[int] = None
        self._input_shape: Optional[Tuple[int, ...]] = None
        self._input_dtype = None
        self._output_shape: Optional[Tuple[int, ...]] = None

        self._lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None

    @property
    def is_ready(self) -> bool:
        return self._interpreter is not None

    @property
    def input_shape(self) -> Tuple[int, ...]:
        if self._input_shape is None:
            raise InferenceError("Model not loaded", reason="not_ready")
        return self._input_shape

    @property
    def input_dtype(self):
        if self._input_dtype is None:
            raise InferenceError("Model not loaded", reason="not_ready")
        return self._input_dtype

    @property
    def output_shape(self) -> Tuple[int, ...]:
        if self._output_shape is None:
            raise InferenceError("Model not loaded", reason="not_ready")
        return self._output_shape

    @property
    def delegate_bound(self) -> bool:
        return self._delegate is not None

    def setup(self, model_bytes: bytes, num_threads: int = 2) -> None:
        """
        Build the interpreter from in-memory model bytes.

        Args:
            model_bytes: Model in the LiteRT flatbuffer format.
            num_threads: CPU threads for kernels not handled by the delegate.

        Raises:
            ModelLoadError: If the runtime is missing, the bytes are invalid,
                or the GPU delegate cannot be bound.
        """
        with self._lock:
            if self._interpreter is not None:
                raise ModelLoadError("Model already set up; release it first")

            if not model_bytes:
                raise ModelLoadError("Model bytes are empty")

            try:
                Interpreter, load_delegate = _load_litert()
            except ImportError as e:
                logger.error(f"Failed to import LiteRT runtime: {e}")
                raise ModelLoadError(f"LiteRT runtime not available: {e}") from e

            try:
                delegates = []
                if self.use_gpu:
                    logger.info(f"Binding GPU delegate: {self.gpu_delegate_path}")
                    self._delegate = load_delegate(self.gpu_delegate_path)
                    delegates.append(self._delegate)

                self._interpreter = Interpreter(
                    model_content=bytes(model_bytes),
                    num_threads=num_threads,
                    experimental_delegates=delegates or None,
                )
                self._interpreter.allocate_tensors()

                input_info = self._interpreter.get_input_details()[0]
                output_info = self._interpreter.get_output_details()[0]
                self._input_index = input_info['index']
                self._output_index = output_info['index']
                self._input_shape = tuple(int(d) for d in input_info['shape'])
                self._input_dtype = np.dtype(input_info['dtype'])
                self._output_shape = tuple(int(d) for d in output_info['shape'])

            except Exception as e:
                logger.error(f"Failed to load model: {e}")
                self._release_locked()
                raise ModelLoadError(f"Failed to load model: {e}") from e

            self.num_threads = num_threads
            if self.timeout is not None:
                self._executor = ThreadPoolExecutor(
                    max_workers=1, thread_name_prefix="litert-invoke"
                )

            logger.info(
                f"Model loaded - Input: {self._input_shape} {self._input_dtype}, "
                f"Output: {self._output_shape}, threads={num_threads}, "
                f"gpu={'on' if self._delegate is not None else 'off'}"
            )

    def run(self, input_tensor: np.ndarray) -> np.ndarray:
        """
        Run one synchronous inference.

        Args:
            input_tensor: Tensor matching the model's declared input shape.

        Returns:
            Copy of the model's first output tensor.

        Raises:
            InferenceError: If the model is not ready, the shape does not
                match, the engine fails, or the configured timeout expires.
        """
        with self._lock:
            if self._interpreter is None:
                raise InferenceError("Model not loaded. Call setup() first.",
                                     reason="not_ready")

            input_tensor = np.asarray(input_tensor)
            if tuple(input_tensor.shape) != self._input_shape:
                raise InferenceError(
                    f"Input shape {tuple(input_tensor.shape)} does not match "
                    f"model input {self._input_shape}",
                    reason="shape_mismatch",
                )

            data = input_tensor.astype(self._input_dtype, copy=False)

            if self._executor is None:
                return self._invoke(data)

            future = self._executor.submit(self._invoke, data)
            try:
                return future.result(timeout=self.timeout)
            except FutureTimeout:
                logger.error(f"Inference timed out after {self.timeout}s")
                future.add_done_callback(self._log_late_invoke)
                raise InferenceError(
                    f"Inference did not complete within {self.timeout}s",
                    reason="timeout",
                ) from None

    @staticmethod
    def _log_late_invoke(future) -> None:
        """Report the outcome of an invoke whose caller already timed out."""
        error = future.exception()
        if error is not None:
            logger.warning(f"Timed-out inference failed later: {error}")
        else:
            logger.warning("Timed-out inference completed late; result discarded")

    def _invoke(self, data: np.ndarray) -> np.ndarray:
        interpreter = self._interpreter
        try:
            interpreter.set_tensor(self._input_index, data)
            interpreter.invoke()
            return np.array(interpreter.get_tensor(self._output_index))
        except Exception as e:
            logger.error(f"Inference failed: {e}")
            raise InferenceError(f"Inference failed: {e}", reason="engine") from e

    def release(self) -> None:
        """Release the interpreter, then the delegate. Safe to call repeatedly."""
        with self._lock:
            self._release_locked()

    def _release_locked(self) -> None:
        if self._interpreter is not None or self._delegate is not None:
            logger.info("Releasing LiteRT interpreter")

        self._interpreter = None
        self._delegate = None
        self._input_index = None
        self._output_index = None
        self._input_shape = None
        self._input_dtype = None
        self._output_shape = None

        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None

    def __enter__(self) -> "AcceleratedModel":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
