"""
Pytest configuration and shared fixtures.
"""

import os
import sys
import time

import numpy as np
import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from tflite_detector import inference  # noqa: E402
from tflite_detector.config import Config, DecoderConfig, ModelConfig  # noqa: E402


class FakeLiteRT:
    """
    Stand-in for the LiteRT interpreter module.

    Tests adjust the attributes to control what the fake interpreter
    declares and returns.
    """

    def __init__(self):
        self.input_shape = (1, 320, 320, 3)
        self.input_dtype = np.float32
        self.output_shape = (1, 84, 8400)
        self.output = None
        self.invoke_delay = 0.0
        self.invoke_error = None
        self.delegate_error = None

        self.interpreters = []
        self.delegates = []
        self.inputs = []

    def load_delegate(self, library, options=None):
        if self.delegate_error is not None:
            raise self.delegate_error
        delegate = {"library": library}
        self.delegates.append(delegate)
        return delegate

    def make_interpreter(self, model_content=None, num_threads=None,
                         experimental_delegates=None):
        return FakeInterpreter(self, model_content, num_threads, experimental_delegates)


class FakeInterpreter:
    def __init__(self, backend, model_content, num_threads, delegates):
        if model_content == b"garbage":
            raise ValueError("Model provided has model identifier 'garb'")
        self.backend = backend
        self.model_content = model_content
        self.num_threads = num_threads
        self.delegates = delegates
        self.allocated = False
        self.tensor = None
        backend.interpreters.append(self)

    def allocate_tensors(self):
        self.allocated = True

    def get_input_details(self):
        return [{
            'name': 'images',
            'index': 0,
            'shape': np.array(self.backend.input_shape, dtype=np.int32),
            'dtype': self.backend.input_dtype,
        }]

    def get_output_details(self):
        return [{
            'name': 'output0',
            'index': 1,
            'shape': np.array(self.backend.output_shape, dtype=np.int32),
            'dtype': np.float32,
        }]

    def set_tensor(self, index, value):
        assert index == 0
        self.tensor = value
        self.backend.inputs.append(value)

    def invoke(self):
        if self.backend.invoke_delay:
            time.sleep(self.backend.invoke_delay)
        if self.backend.invoke_error is not None:
            raise self.backend.invoke_error

    def get_tensor(self, index):
        assert index == 1
        if self.backend.output is not None:
            return self.backend.output
        return np.zeros(self.backend.output_shape, dtype=np.float32)


@pytest.fixture
def fake_litert(monkeypatch):
    """Replace the LiteRT runtime with a controllable fake."""
    backend = FakeLiteRT()
    monkeypatch.setattr(
        inference, "_load_litert",
        lambda: (backend.make_interpreter, backend.load_delegate),
    )
    return backend


def make_records(confidences, record_width=6):
    """Flat records layout: [cx, cy, w, h, conf, extra] per candidate."""
    rows = []
    for i, conf in enumerate(confidences):
        row = [0.1 * (i % 10), 0.5, 0.05, 0.05, conf] + [0.0] * (record_width - 5)
        rows.append(row)
    return np.array(rows, dtype=np.float32).ravel()


@pytest.fixture
def records():
    """Builder for flat records-layout output buffers."""
    return make_records


@pytest.fixture
def model_file(tmp_path):
    """A non-empty model file."""
    path = tmp_path / "model.tflite"
    path.write_bytes(b"TFL3" + b"\x00" * 64)
    return path


@pytest.fixture
def label_file(tmp_path):
    """A three-label catalog."""
    path = tmp_path / "labels.txt"
    path.write_text("person\nbicycle\ncar\n", encoding="utf-8")
    return path


@pytest.fixture
def session_config(model_file, label_file):
    """Configuration pointing at the temporary assets."""
    return Config(
        model=ModelConfig(
            model_path=str(model_file),
            label_path=str(label_file),
            tensor_width=320,
            tensor_height=320,
            num_threads=2,
        ),
        decoder=DecoderConfig(),
    )
