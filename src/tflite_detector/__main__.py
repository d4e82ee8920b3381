"""
Command line runner: detect objects in an image, video file or camera stream.
"""

import sys
import time
import signal
import logging
import argparse
from pathlib import Path
from typing import Optional, Sequence

import cv2

from .capture import FrameSource
from .config import load_config, save_example_config
from .detector import DetectionSession
from .errors import DetectorError, FrameError, InferenceError
from .models import BoundingBox
from .utils import draw_detections


# Global shutdown flag
shutdown_flag = False

logger = logging.getLogger(__name__)


def signal_handler(signum, frame):
    """Handle shutdown signals."""
    global shutdown_flag
    logger.info(f"Received signal {signum}, shutting down...")
    shutdown_flag = True


def setup_logging(level: str = "INFO"):
    """
    Setup logging configuration.

    Args:
        level: Logging level
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=numeric_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


class LoggingListener:
    """Logs each frame's outcome."""

    def __init__(self):
        self.empty_frames = 0
        self.detected_frames = 0

    def on_empty_detect(self) -> None:
        self.empty_frames += 1
        logger.debug("No objects detected")

    def on_detect(self, boxes: Sequence[BoundingBox], inference_time_ms: int) -> None:
        self.detected_frames += 1
        summary = ", ".join(f"{b.label} {b.confidence:.2f}" for b in boxes)
        logger.info(f"{len(boxes)} detections in {inference_time_ms} ms: {summary}")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='TFLite object detection runner')
    parser.add_argument(
        '-c', '--config',
        default='config.yaml',
        help='Path to configuration file'
    )
    parser.add_argument(
        '-s', '--source',
        help='Image, video file or camera device (overrides config)'
    )
    parser.add_argument(
        '-o', '--output',
        help='Directory for annotated frames'
    )
    parser.add_argument(
        '-n', '--max-frames',
        type=int,
        default=0,
        help='Stop after this many frames (0 = no limit)'
    )
    parser.add_argument(
        '--write-example-config',
        metavar='PATH',
        help='Write an example configuration file and exit'
    )
    parser.add_argument(
        '-d', '--debug',
        action='store_true',
        help='Enable debug logging'
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main application loop."""
    global shutdown_flag

    args = parse_args(argv)

    if args.write_example_config:
        save_example_config(args.write_example_config)
        print(f"Example configuration written to {args.write_example_config}")
        return 0

    # Load configuration
    try:
        config = load_config(args.config)
    except Exception as e:
        print(f"ERROR: Failed to load configuration: {e}", file=sys.stderr)
        return 1

    if args.source:
        config.video.device = args.source

    log_level = "DEBUG" if args.debug else config.logging.level
    setup_logging(log_level)

    logger.info("=" * 70)
    logger.info("TFLite Object Detection")
    logger.info("=" * 70)

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    output_dir = Path(args.output) if args.output else None
    if output_dir is not None:
        output_dir.mkdir(parents=True, exist_ok=True)

    source = FrameSource(config.video)
    session = DetectionSession(config, listener=LoggingListener())

    try:
        logger.info("Initializing detection session...")
        session.setup()

        if not source.open():
            logger.error(f"Failed to open frame source {config.video.device}")
            return 1

        run_main_loop(source, session, output_dir, args.max_frames)

    except DetectorError as e:
        logger.error(f"Fatal error: {e}")
        return 1

    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1

    finally:
        logger.info("Cleaning up...")
        source.release()
        session.clear()
        logger.info("Shutdown complete")

    return 0


def run_main_loop(source: FrameSource, session: DetectionSession,
                  output_dir: Optional[Path] = None, max_frames: int = 0):
    """
    Main processing loop.

    Args:
        source: Frame source instance
        session: Ready detection session
        output_dir: Where to write annotated frames, if set
        max_frames: Stop after this many frames (0 = no limit)
    """
    global shutdown_flag

    # FPS calculation
    fps = 0.0
    frame_count = 0
    processed = 0
    fps_start_time = time.time()
    last_stats_log_time = time.time()

    while not shutdown_flag:
        frame = source.read()
        if frame is None:
            break

        try:
            result = session.detect(frame)
        except (FrameError, InferenceError) as e:
            # Session stays ready; skip this frame
            logger.warning(f"Frame {source.frame_count} skipped: {e}")
            continue

        processed += 1

        if output_dir is not None:
            boxes = () if result.is_empty else result.boxes
            annotated = draw_detections(frame, boxes)
            out_path = output_dir / f"frame_{source.frame_count:06d}.jpg"
            cv2.imwrite(str(out_path), annotated)

        frame_count += 1
        elapsed = time.time() - fps_start_time
        if elapsed >= 1.0:
            fps = frame_count / elapsed
            frame_count = 0
            fps_start_time = time.time()

        # Log statistics every 30 seconds
        if time.time() - last_stats_log_time >= 30.0:
            logger.info(
                f"Stats: FPS={fps:.1f}, Inference={result.inference_time_ms}ms, "
                f"Frames={processed}"
            )
            last_stats_log_time = time.time()

        if max_frames and processed >= max_frames:
            break

    logger.info(f"Processed {processed} frames")


if __name__ == '__main__':
    sys.exit(main())
