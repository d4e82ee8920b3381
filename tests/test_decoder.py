"""
Tests for raw output decoding, confidence gating and selection policies.
"""

import numpy as np
import pytest

from tflite_detector.config import DecoderConfig
from tflite_detector.decoder import (
    ArgmaxClass, ChannelsFirstLayout, DetectionDecoder, FixedClass,
    RecordLayout, SpatialNMSSelection, TopKSelection, build_decoder,
)
from tflite_detector.errors import ModelLoadError

LABELS = ["person", "bicycle", "car"]


@pytest.fixture
def decoder():
    return DetectionDecoder(LABELS, confidence_threshold=0.4)


class TestRecordsDecoding:
    """Default decoder: 6-wide records, class 0, top-10."""

    def test_single_record_above_threshold(self, decoder):
        """[0,0,0,0,0.5,x, 0,0,0,0,0.3,x] keeps only the 0.5 record."""
        output = np.array([0, 0, 0, 0, 0.5, 9, 0, 0, 0, 0, 0.3, 9], dtype=np.float32)

        boxes = decoder.decode(output)

        assert len(boxes) == 1
        assert boxes[0].confidence == pytest.approx(0.5)
        assert boxes[0].class_id == 0
        assert boxes[0].label == "person"

    def test_all_below_threshold_is_empty(self, decoder, records):
        output = records([0.1] * 20)

        assert decoder.decode(output) == []

    def test_threshold_is_strict(self, decoder, records):
        output = records([0.4, 0.41])

        boxes = decoder.decode(output)

        assert [b.confidence for b in boxes] == [pytest.approx(0.41)]

    def test_fifteen_candidates_capped_at_ten(self, decoder, records):
        confidences = [0.41 + 0.03 * i for i in range(15)]
        np.random.default_rng(0).shuffle(confidences)
        output = records(confidences)

        boxes = decoder.decode(output)

        expected = sorted(confidences, reverse=True)[:10]
        assert len(boxes) == 10
        assert [b.confidence for b in boxes] == pytest.approx(expected)

    def test_geometry_is_read_from_record(self, decoder):
        output = np.array([0.25, 0.75, 0.1, 0.2, 0.9, 0.0], dtype=np.float32)

        box = decoder.decode(output)[0]

        assert (box.cx, box.cy, box.w, box.h) == pytest.approx((0.25, 0.75, 0.1, 0.2))

    def test_decoding_is_deterministic(self, decoder, records):
        output = records([0.5, 0.9, 0.5, 0.7, 0.3])

        assert decoder.decode(output) == decoder.decode(output.copy())

    def test_ties_keep_buffer_order(self, decoder):
        output = np.array([
            0.1, 0.1, 0.1, 0.1, 0.6, 0,
            0.2, 0.2, 0.1, 0.1, 0.6, 0,
        ], dtype=np.float32)

        boxes = decoder.decode(output)

        assert [b.cx for b in boxes] == pytest.approx([0.1, 0.2])

    def test_overlapping_boxes_are_not_suppressed(self, decoder):
        output = np.array([
            0.5, 0.5, 0.2, 0.2, 0.90, 0,
            0.5, 0.5, 0.2, 0.2, 0.89, 0,
        ], dtype=np.float32)

        assert len(decoder.decode(output)) == 2

    def test_nan_confidence_is_dropped(self, decoder):
        output = np.array([0, 0, 0, 0, np.nan, 0, 0, 0, 0, 0, 0.8, 0], dtype=np.float32)

        boxes = decoder.decode(output)

        assert len(boxes) == 1

    def test_partial_record_rejected(self, decoder):
        with pytest.raises(ValueError):
            decoder.decode(np.zeros(7, dtype=np.float32))


@pytest.mark.parametrize("threshold", [0.0, 0.25, 0.5, 0.75, 0.95])
@pytest.mark.parametrize("max_detections", [1, 3, 10])
def test_result_respects_threshold_cap_and_order(threshold, max_detections, records):
    rng = np.random.default_rng(42)
    output = records(rng.random(50).tolist())
    decoder = DetectionDecoder(
        LABELS,
        confidence_threshold=threshold,
        selection=TopKSelection(max_detections),
    )

    boxes = decoder.decode(output)

    assert len(boxes) <= max_detections
    assert all(b.confidence > threshold for b in boxes)
    confidences = [b.confidence for b in boxes]
    assert confidences == sorted(confidences, reverse=True)


class TestRecordLayout:

    def test_yolov8_output_is_whole_records(self):
        RecordLayout(6).validate((1, 84, 8400))

    def test_mismatched_shape_fails_fast(self):
        with pytest.raises(ModelLoadError):
            RecordLayout(6).validate((1, 7))

    def test_invalid_offset(self):
        with pytest.raises(ValueError):
            RecordLayout(record_width=6, confidence_offset=6)

    def test_custom_width(self):
        layout = RecordLayout(record_width=8, confidence_offset=4)
        geometry, objectness, scores = layout.split(np.arange(16, dtype=np.float32))

        assert geometry.shape == (2, 4)
        assert objectness.tolist() == [4.0, 12.0]
        assert scores.shape == (2, 3)


class TestChannelsFirst:
    """YOLOv8 (1, 4 + classes, anchors) output with per-class scores."""

    @staticmethod
    def make_output(candidates, num_classes=3):
        """candidates: list of (cx, cy, w, h, scores...)"""
        matrix = np.array(candidates, dtype=np.float32)
        assert matrix.shape[1] == 4 + num_classes
        return matrix.T[None, ...]

    def test_argmax_picks_best_class(self):
        output = self.make_output([
            (0.5, 0.5, 0.1, 0.1, 0.1, 0.2, 0.8),
            (0.2, 0.2, 0.1, 0.1, 0.6, 0.1, 0.1),
            (0.7, 0.7, 0.1, 0.1, 0.1, 0.3, 0.2),
        ])
        decoder = DetectionDecoder(
            LABELS, 0.4, layout=ChannelsFirstLayout(7), class_strategy=ArgmaxClass()
        )

        boxes = decoder.decode(output)

        assert [(b.label, round(b.confidence, 2)) for b in boxes] == [
            ("car", 0.8), ("person", 0.6),
        ]

    def test_fixed_class_uses_that_class_score(self):
        output = self.make_output([
            (0.5, 0.5, 0.1, 0.1, 0.1, 0.9, 0.1),
            (0.2, 0.2, 0.1, 0.1, 0.9, 0.1, 0.1),
        ])
        decoder = DetectionDecoder(
            LABELS, 0.4, layout=ChannelsFirstLayout(7), class_strategy=FixedClass(1)
        )

        boxes = decoder.decode(output)

        assert len(boxes) == 1
        assert boxes[0].label == "bicycle"
        assert boxes[0].cx == pytest.approx(0.5)

    def test_validate_shape(self):
        ChannelsFirstLayout(84).validate((1, 84, 8400))
        with pytest.raises(ModelLoadError):
            ChannelsFirstLayout(84).validate((1, 8400, 84))

    def test_argmax_requires_enough_labels(self):
        decoder = DetectionDecoder(
            LABELS, layout=ChannelsFirstLayout(84), class_strategy=ArgmaxClass()
        )
        with pytest.raises(ModelLoadError):
            decoder.validate((1, 84, 8400))

    def test_fixed_class_outside_model_classes(self):
        decoder = DetectionDecoder(
            LABELS, layout=ChannelsFirstLayout(6), class_strategy=FixedClass(2)
        )
        with pytest.raises(ModelLoadError):
            decoder.validate((1, 6, 100))


class TestClassStrategies:

    def test_fixed_class_outside_catalog(self):
        decoder = DetectionDecoder(LABELS, class_strategy=FixedClass(3))
        with pytest.raises(ModelLoadError):
            decoder.validate((1, 84, 8400))

    def test_argmax_over_record_slots(self):
        layout = RecordLayout(record_width=8, confidence_offset=4)
        output = np.array([0.5, 0.5, 0.1, 0.1, 0.7, 0.1, 0.2, 0.9], dtype=np.float32)
        decoder = DetectionDecoder(LABELS, 0.4, layout=layout, class_strategy=ArgmaxClass())

        box = decoder.decode(output)[0]

        assert box.class_id == 2
        assert box.label == "car"
        # Records layout keeps the objectness slot as confidence
        assert box.confidence == pytest.approx(0.7)


class TestSpatialNMS:

    def test_suppresses_overlapping_lower_confidence(self):
        geometry = np.array([
            [0.5, 0.5, 0.2, 0.2],
            [0.51, 0.5, 0.2, 0.2],
            [0.1, 0.1, 0.1, 0.1],
        ], dtype=np.float32)
        confidence = np.array([0.8, 0.9, 0.7], dtype=np.float32)

        keep = SpatialNMSSelection(iou_threshold=0.5).select(geometry, confidence)

        assert keep.tolist() == [1, 2]

    def test_keeps_disjoint_boxes_up_to_cap(self):
        geometry = np.array([[0.1 * i, 0.5, 0.05, 0.05] for i in range(8)], dtype=np.float32)
        confidence = np.linspace(0.5, 0.9, 8).astype(np.float32)

        keep = SpatialNMSSelection(0.5, max_detections=3).select(geometry, confidence)

        assert keep.tolist() == [7, 6, 5]

    def test_empty_input(self):
        keep = SpatialNMSSelection().select(np.zeros((0, 4)), np.zeros(0))
        assert keep.size == 0

    def test_decoder_with_nms_result_has_low_overlap(self):
        output = np.array([
            0.5, 0.5, 0.2, 0.2, 0.90, 0,
            0.5, 0.5, 0.2, 0.2, 0.89, 0,
            0.1, 0.1, 0.1, 0.1, 0.50, 0,
        ], dtype=np.float32)
        decoder = DetectionDecoder(LABELS, 0.4, selection=SpatialNMSSelection(0.5))

        boxes = decoder.decode(output)

        assert [b.confidence for b in boxes] == pytest.approx([0.90, 0.50])
        assert boxes[0].iou(boxes[1]) <= 0.5


class TestBuildDecoder:

    def test_defaults(self):
        decoder = build_decoder(DecoderConfig(), LABELS)

        assert isinstance(decoder.layout, RecordLayout)
        assert decoder.layout.record_width == 6
        assert isinstance(decoder.class_strategy, FixedClass)
        assert decoder.class_strategy.index == 0
        assert isinstance(decoder.selection, TopKSelection)
        assert decoder.selection.max_detections == 10
        assert decoder.confidence_threshold == pytest.approx(0.4)

    def test_yolov8_configuration(self):
        config = DecoderConfig(
            layout="channels_first", num_channels=7,
            class_strategy="argmax", selection="nms", iou_threshold=0.45,
            max_detections=5,
        )

        decoder = build_decoder(config, LABELS)

        assert isinstance(decoder.layout, ChannelsFirstLayout)
        assert isinstance(decoder.class_strategy, ArgmaxClass)
        assert isinstance(decoder.selection, SpatialNMSSelection)
        assert decoder.selection.iou_threshold == pytest.approx(0.45)
        assert decoder.selection.max_detections == 5
