"""
Configuration management using Pydantic for validation and type checking.
"""

import os
import yaml
from pathlib import Path
from typing import Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .inference import DEFAULT_GPU_DELEGATE


class VideoConfig(BaseModel):
    """Frame source configuration."""
    device: str = Field(default="/dev/video0", description="Camera device, video or image path")
    width: int = Field(default=1280, ge=160, le=3840, description="Capture width")
    height: int = Field(default=720, ge=120, le=2160, description="Capture height")
    fps: int = Field(default=30, ge=1, le=120, description="Capture FPS")


class ModelConfig(BaseModel):
    """Model asset and accelerator configuration."""
    model_config = ConfigDict(protected_namespaces=())

    model_path: str = Field(
        default="models/yolov8n_float32.tflite",
        description="Path to the .tflite model file"
    )
    label_path: Optional[str] = Field(
        default=None, description="Label file, one per line (COCO names if unset)"
    )
    tensor_width: int = Field(default=320, ge=32, le=2048, description="Input tensor width")
    tensor_height: int = Field(default=320, ge=32, le=2048, description="Input tensor height")
    num_threads: int = Field(default=2, ge=1, le=64, description="CPU threads")
    use_gpu: bool = Field(default=True, description="Bind the GPU delegate")
    gpu_delegate_path: str = Field(
        default=DEFAULT_GPU_DELEGATE, description="GPU delegate shared library"
    )
    inference_timeout: Optional[float] = Field(
        default=None, gt=0.0, description="Per-frame inference timeout in seconds"
    )


class DecoderConfig(BaseModel):
    """Output decoding and selection configuration."""
    confidence_threshold: float = Field(
        default=0.4, ge=0.0, le=1.0, description="Confidence gate (strictly greater)"
    )
    max_detections: int = Field(default=10, ge=1, le=1000, description="Result cap K")
    selection: Literal["top_k", "nms"] = Field(
        default="top_k", description="Selection policy"
    )
    iou_threshold: float = Field(
        default=0.5, ge=0.0, le=1.0, description="NMS IOU threshold"
    )
    class_strategy: Literal["fixed", "argmax"] = Field(
        default="fixed", description="Class index resolution"
    )
    fixed_class_index: int = Field(default=0, ge=0, description="Class for 'fixed' strategy")
    layout: Literal["records", "channels_first"] = Field(
        default="records", description="Output tensor layout"
    )
    record_width: int = Field(default=6, ge=5, description="Values per record ('records' layout)")
    confidence_offset: int = Field(
        default=4, ge=4, description="Confidence position within a record"
    )
    num_channels: int = Field(
        default=84, ge=5, description="Channels per candidate ('channels_first' layout)"
    )

    @model_validator(mode="after")
    def check_record_layout(self) -> "DecoderConfig":
        """Confidence must fall inside the record."""
        if self.confidence_offset >= self.record_width:
            raise ValueError(
                f"confidence_offset ({self.confidence_offset}) must be less than "
                f"record_width ({self.record_width})"
            )
        return self


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default="INFO", description="Logging level")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate logging level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v = v.upper()
        if v not in valid_levels:
            raise ValueError(f"Invalid logging level. Must be one of {valid_levels}")
        return v


class Config(BaseModel):
    """Main configuration class."""
    video: VideoConfig = Field(default_factory=VideoConfig)
    model: ModelConfig = Field(default_factory=ModelConfig)
    decoder: DecoderConfig = Field(default_factory=DecoderConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(config_path: Optional[str] = None) -> Config:
    """
    Load configuration from YAML file with sensible defaults.

    Args:
        config_path: Path to configuration file. If None, uses default location.

    Returns:
        Config object with loaded settings.
    """
    if config_path is None:
        config_path = "config.yaml"

    # If config file doesn't exist, use defaults
    if not os.path.exists(config_path):
        return Config()

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            config_dict = yaml.safe_load(f)

        # Handle empty file
        if config_dict is None:
            return Config()

        return Config(**config_dict)
    except Exception as e:
        raise RuntimeError(f"Failed to load configuration from {config_path}: {e}")


def save_example_config(output_path: str) -> None:
    """
    Save an example configuration file with comments.

    Args:
        output_path: Where to save the example config.
    """
    example_yaml = """# Frame source for the command line runner
video:
  device: "/dev/video0"  # Camera device, video file or image file
  width: 1280            # Capture width in pixels
  height: 720            # Capture height in pixels
  fps: 30                # Frames per second

# Model and accelerator
model:
  model_path: "models/yolov8n_float32.tflite"
  label_path: "models/labels.txt"   # One label per line; omit for COCO names
  tensor_width: 320
  tensor_height: 320
  num_threads: 2                    # CPU threads for non-delegated ops
  use_gpu: true                     # Bind the GPU delegate
  gpu_delegate_path: "libtensorflowlite_gpu_delegate.so"
  inference_timeout: null           # Seconds; null blocks until done

# Output decoding
decoder:
  confidence_threshold: 0.4  # Keep boxes with confidence strictly above this
  max_detections: 10         # Result cap
  selection: "top_k"         # top_k (no suppression) or nms
  iou_threshold: 0.5         # Used by nms only
  class_strategy: "fixed"    # fixed or argmax
  fixed_class_index: 0
  layout: "records"          # records or channels_first
  record_width: 6            # records layout: values per candidate
  confidence_offset: 4       # records layout: confidence position
  num_channels: 84           # channels_first layout: 4 + classes

# Logging
logging:
  level: "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
"""

    Path(output_path).parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, 'w', encoding='utf-8') as f:
        f.write(example_yaml)
