"""
Tests for Vision Module
=======================

Tests for:
- Letterbox preprocessing geometry and tensor layout
- Decoder: thresholding, argmax, box conversion, shape validation
- IoU and non-maximum suppression
- Coordinate mapping: inverse letterbox and device mapping
- Class label table
- Display selection and device pixel ratio fallback
- UIDetector: fail-closed behavior and end-to-end detection
"""

import asyncio
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from vio.errors import DecodeError, InferenceError
from vio.vision.coordinates import (
    Point,
    inverse_letterbox,
    to_capture_bounds,
    to_device_point,
)
from vio.vision.decoder import Candidate, decode_detections
from vio.vision.detector import UIDetector
from vio.vision.display import (
    DisplayInfo,
    get_device_pixel_ratio,
    list_displays,
    select_display,
)
from vio.vision.inference import OnnxInferenceOracle, RawTensor
from vio.vision.labels import DEFAULT_CLASS_LABELS, ClassLabelTable
from vio.vision.nms import Survivor, iou, non_max_suppression
from vio.vision.preprocess import PAD_COLOR, letterbox, letterbox_geometry
from tests.conftest import FakeOracle, _make_capture, _make_raw_tensor


def _box(x1, y1, x2, y2, conf=0.9, class_id=0, anchor=0) -> Candidate:
    return Candidate(x1=x1, y1=y1, x2=x2, y2=y2, class_id=class_id, confidence=conf, anchor=anchor)


# ===================================================================
# Letterbox tests
# ===================================================================


class TestLetterbox:
    def test_landscape_geometry(self):
        g = letterbox_geometry(1920, 1080, 640)
        assert g.scale == pytest.approx(640 / 1920)
        assert g.scaled_width == 640
        assert g.scaled_height == 360
        assert g.pad_x == 0
        assert g.pad_y == 140

    def test_portrait_geometry(self):
        g = letterbox_geometry(1080, 2400, 640)
        assert g.scale == pytest.approx(640 / 2400)
        assert g.scaled_height == 640
        assert g.scaled_width == 288
        assert g.pad_x == 176
        assert g.pad_y == 0

    def test_odd_padding_is_fractional(self):
        g = letterbox_geometry(641, 100, 640)
        assert g.pad_y == (640 - g.scaled_height) / 2

    def test_invalid_dimensions(self):
        with pytest.raises(ValueError):
            letterbox_geometry(0, 100, 640)
        with pytest.raises(ValueError):
            letterbox_geometry(100, 100, 0)

    def test_tensor_shape_and_range(self):
        pixels = np.full((1080, 1920, 3), 255, dtype=np.uint8)
        result = letterbox(pixels, 64)
        assert result.tensor.shape == (1, 3, 64, 64)
        assert result.tensor.dtype == np.float32
        assert result.tensor.min() >= 0.0
        assert result.tensor.max() <= 1.0
        assert result.input_size == 64

    def test_padding_is_neutral_gray(self):
        pixels = np.zeros((1080, 1920, 3), dtype=np.uint8)
        result = letterbox(pixels, 64)
        # Top rows are padding, middle rows are the black image
        gray = PAD_COLOR[0] / 255.0
        assert result.tensor[0, :, 0, 0].tolist() == pytest.approx([gray] * 3, abs=1e-6)
        assert result.tensor[0, :, 32, 32].tolist() == pytest.approx([0.0] * 3, abs=1e-6)

    def test_channel_planar_order(self):
        pixels = np.zeros((10, 10, 3), dtype=np.uint8)
        pixels[:, :, 0] = 255  # red
        result = letterbox(pixels, 10)
        assert result.tensor[0, 0].mean() == pytest.approx(1.0)
        assert result.tensor[0, 1].mean() == pytest.approx(0.0)
        assert result.tensor[0, 2].mean() == pytest.approx(0.0)

    def test_alpha_channel_dropped(self):
        pixels = np.zeros((20, 20, 4), dtype=np.uint8)
        pixels[:, :, 3] = 255
        result = letterbox(pixels, 20)
        assert result.tensor.shape == (1, 3, 20, 20)

    def test_rejects_grayscale(self):
        with pytest.raises(ValueError):
            letterbox(np.zeros((10, 10), dtype=np.uint8), 10)


# ===================================================================
# Decoder tests
# ===================================================================


class TestDecoder:
    def test_decodes_boxes_above_threshold(self):
        raw = _make_raw_tensor(
            boxes=[(100, 100, 20, 40), (300, 300, 10, 10)],
            scores=[[0.2, 0.9], [0.3, 0.1]],
        )
        candidates = decode_detections(raw, 0.45)
        assert len(candidates) == 1
        c = candidates[0]
        assert (c.x1, c.y1, c.x2, c.y2) == (90, 80, 110, 120)
        assert c.class_id == 1
        assert c.confidence == pytest.approx(0.9)
        assert c.anchor == 0

    def test_threshold_is_strict(self):
        raw = _make_raw_tensor(boxes=[(10, 10, 4, 4)], scores=[[0.5]])
        assert decode_detections(raw, 0.5) == []

    def test_anchor_order_preserved(self):
        raw = _make_raw_tensor(
            boxes=[(10, 10, 4, 4), (20, 20, 4, 4), (30, 30, 4, 4)],
            scores=[[0.6], [0.99], [0.7]],
        )
        anchors = [c.anchor for c in decode_detections(raw, 0.45)]
        assert anchors == [0, 1, 2]

    def test_negative_size_is_normalized(self):
        raw = _make_raw_tensor(boxes=[(100, 100, -20, -40)], scores=[[0.9]])
        c = decode_detections(raw, 0.45)[0]
        assert (c.x1, c.y1, c.x2, c.y2) == (90, 80, 110, 120)
        assert c.x1 <= c.x2 and c.y1 <= c.y2

    def test_empty_anchor_axis(self):
        raw = RawTensor.from_array("output0", np.zeros((1, 6, 0)))
        assert decode_detections(raw) == []

    @pytest.mark.parametrize("shape", [(1, 4, 10), (2, 6, 10), (6, 10), (1, 1, 6, 10)])
    def test_shape_mismatch_raises(self, shape):
        raw = RawTensor.from_array("output0", np.zeros(shape))
        with pytest.raises(DecodeError) as exc_info:
            decode_detections(raw)
        assert exc_info.value.shape == shape


class TestRawTensor:
    def test_flat_accessor(self):
        raw = RawTensor.from_array("out", np.arange(12).reshape(1, 3, 4))
        assert raw.shape == (1, 3, 4)
        assert raw.get(5) == 5.0
        assert raw.rows().shape == (3, 4)
        assert raw.data.dtype == np.float32


# ===================================================================
# IoU / NMS tests
# ===================================================================


class TestIoU:
    def test_identical_boxes(self):
        a = _box(0, 0, 10, 10)
        assert iou(a, a) == pytest.approx(1.0)

    def test_disjoint_boxes(self):
        assert iou(_box(0, 0, 10, 10), _box(20, 20, 30, 30)) == 0.0

    def test_touching_edges(self):
        assert iou(_box(0, 0, 10, 10), _box(10, 0, 20, 10)) == 0.0

    def test_partial_overlap(self):
        value = iou(_box(0, 0, 10, 10), _box(1, 1, 11, 11))
        assert value == pytest.approx(81 / 119)

    def test_degenerate_boxes(self):
        point = _box(5, 5, 5, 5)
        assert iou(point, point) == 0.0
        assert iou(point, _box(0, 0, 10, 10)) == 0.0

    def test_symmetric_and_bounded(self):
        rng = np.random.default_rng(7)
        for _ in range(50):
            x1, y1 = rng.uniform(0, 100, 2)
            x2, y2 = rng.uniform(0, 100, 2)
            a = _box(x1, y1, x1 + rng.uniform(0, 50), y1 + rng.uniform(0, 50))
            b = _box(x2, y2, x2 + rng.uniform(0, 50), y2 + rng.uniform(0, 50))
            assert 0.0 <= iou(a, b) <= 1.0
            assert iou(a, b) == pytest.approx(iou(b, a))


class TestNMS:
    def test_suppresses_overlapping_box(self):
        candidates = [
            _box(0, 0, 10, 10, conf=0.9, anchor=0),
            _box(1, 1, 11, 11, conf=0.8, anchor=1),
            _box(50, 50, 60, 60, conf=0.7, anchor=2),
        ]
        survivors = non_max_suppression(candidates, 0.45)
        assert [s.candidate.anchor for s in survivors] == [0, 2]
        assert [s.id for s in survivors] == [0, 1]

    def test_sorted_by_confidence(self):
        candidates = [
            _box(0, 0, 10, 10, conf=0.5, anchor=0),
            _box(100, 100, 110, 110, conf=0.95, anchor=1),
            _box(200, 200, 210, 210, conf=0.7, anchor=2),
        ]
        survivors = non_max_suppression(candidates)
        confs = [s.candidate.confidence for s in survivors]
        assert confs == sorted(confs, reverse=True)
        assert survivors[0].candidate.anchor == 1
        assert survivors[0].id == 0

    def test_ties_broken_by_anchor(self):
        candidates = [
            _box(100, 100, 110, 110, conf=0.8, anchor=3),
            _box(0, 0, 10, 10, conf=0.8, anchor=1),
        ]
        survivors = non_max_suppression(candidates)
        assert [s.candidate.anchor for s in survivors] == [1, 3]

    def test_iou_equal_to_threshold_is_kept(self):
        a = _box(0, 0, 10, 10, conf=0.9, anchor=0)
        b = _box(0, 0, 10, 5, conf=0.8, anchor=1)
        assert iou(a, b) == pytest.approx(0.5)
        assert len(non_max_suppression([a, b], iou_threshold=0.5)) == 2

    def test_cross_class_suppression_by_default(self):
        candidates = [
            _box(0, 0, 10, 10, conf=0.9, class_id=0, anchor=0),
            _box(0, 0, 10, 10, conf=0.8, class_id=1, anchor=1),
        ]
        assert len(non_max_suppression(candidates)) == 1

    def test_class_aware_keeps_different_classes(self):
        candidates = [
            _box(0, 0, 10, 10, conf=0.9, class_id=0, anchor=0),
            _box(0, 0, 10, 10, conf=0.8, class_id=1, anchor=1),
            _box(0, 0, 10, 10, conf=0.7, class_id=1, anchor=2),
        ]
        survivors = non_max_suppression(candidates, class_aware=True)
        assert [s.candidate.anchor for s in survivors] == [0, 1]

    def test_degenerate_box_always_selected(self):
        candidates = [
            _box(0, 0, 10, 10, conf=0.9, anchor=0),
            _box(5, 5, 5, 5, conf=0.8, anchor=1),
        ]
        assert len(non_max_suppression(candidates)) == 2

    def test_inputs_not_mutated(self):
        candidates = [
            _box(0, 0, 10, 10, conf=0.5, anchor=0),
            _box(20, 20, 30, 30, conf=0.9, anchor=1),
        ]
        before = list(candidates)
        non_max_suppression(candidates)
        assert candidates == before

    def test_no_surviving_pair_overlaps(self):
        rng = np.random.default_rng(11)
        candidates = []
        for i in range(60):
            x, y = rng.uniform(0, 200, 2)
            w, h = rng.uniform(5, 40, 2)
            candidates.append(_box(x, y, x + w, y + h, conf=float(rng.uniform(0.5, 1)), anchor=i))
        survivors = non_max_suppression(candidates, 0.45)
        assert len(survivors) <= len(candidates)
        for i, a in enumerate(survivors):
            for b in survivors[i + 1:]:
                assert iou(a.candidate, b.candidate) <= 0.45

    def test_empty_input(self):
        assert non_max_suppression([]) == []


# ===================================================================
# Coordinate mapping tests
# ===================================================================


class TestCoordinates:
    def test_inverse_letterbox_scenario(self):
        pixels = np.zeros((1080, 1920, 3), dtype=np.uint8)
        prepared = letterbox(pixels, 640)
        survivor = Survivor(id=0, candidate=_box(100, 150, 200, 250))
        bounds = to_capture_bounds(survivor, prepared, 1920, 1080)
        assert bounds.x1 == pytest.approx(300.3, abs=1.0)
        assert bounds.y1 == pytest.approx(30.0, abs=1.0)
        assert bounds.x2 == pytest.approx(600.6, abs=1.0)
        assert bounds.y2 == pytest.approx(330.3, abs=1.0)

    @pytest.mark.parametrize("width,height,size", [(1920, 1080, 640), (1080, 2400, 640), (1366, 768, 320), (500, 500, 640)])
    def test_forward_then_inverse_recovers_box(self, width, height, size):
        g = letterbox_geometry(width, height, size)
        box = (width * 0.1, height * 0.2, width * 0.6, height * 0.7)
        model = [
            box[0] * g.scale + g.pad_x,
            box[1] * g.scale + g.pad_y,
            box[2] * g.scale + g.pad_x,
            box[3] * g.scale + g.pad_y,
        ]
        top_left = inverse_letterbox(model[0], model[1], g.scale, g.pad_x, g.pad_y)
        bottom_right = inverse_letterbox(model[2], model[3], g.scale, g.pad_x, g.pad_y)
        assert (top_left.x, top_left.y) == pytest.approx(box[:2], abs=1e-6)
        assert (bottom_right.x, bottom_right.y) == pytest.approx(box[2:], abs=1e-6)

    def test_bounds_clamped_to_capture(self):
        prepared = letterbox(np.zeros((1080, 1920, 3), dtype=np.uint8), 640)
        survivor = Survivor(id=0, candidate=_box(-10, 100, 700, 600))
        bounds = to_capture_bounds(survivor, prepared, 1920, 1080)
        assert bounds.x1 == 0
        assert bounds.y1 == 0
        assert bounds.x2 == 1920
        assert bounds.y2 == 1080

    def test_origin_maps_to_display_origin(self, secondary_display):
        point = to_device_point(Point(0, 0), secondary_display, dpr=1.5)
        assert point == Point(-1280 * 1.5, 0.0)

    def test_offset_applied_before_dpr(self, primary_display):
        point = to_device_point(Point(100, 50), primary_display, dpr=2.0, offset_x=10, offset_y=-5)
        assert point == Point(220.0, 90.0)

    def test_missing_display_uses_origin(self):
        assert to_device_point(Point(10, 20), None) == Point(10, 20)


# ===================================================================
# Class label tests
# ===================================================================


class TestClassLabels:
    def test_default_table(self):
        table = ClassLabelTable.default()
        assert len(table) == len(DEFAULT_CLASS_LABELS) == 39
        assert table.label(4) == "button"
        assert table.label(38) == "zip code"

    def test_unknown_index_placeholder(self):
        table = ClassLabelTable.default()
        assert table.label(39) == "class_39"
        assert table.label(-1) == "class_-1"

    def test_overrides(self):
        table = ClassLabelTable.default(["link", "icon"])
        assert table.label(0) == "link"
        assert table.label(1) == "icon"
        assert table.label(2) == "class_2"

    def test_empty_overrides_use_default(self):
        assert ClassLabelTable.default([]).label(4) == "button"


# ===================================================================
# Display tests
# ===================================================================


class TestDisplays:
    def test_select_primary_by_origin(self, primary_display, secondary_display):
        assert select_display([secondary_display, primary_display]) == primary_display

    def test_select_falls_back_to_first(self):
        a = DisplayInfo(id=0, name="A", width=100, height=100, left=100, top=0)
        b = DisplayInfo(id=1, name="B", width=100, height=100, left=200, top=0)
        assert select_display([a, b]) == a

    def test_select_by_id_or_name(self, primary_display, secondary_display):
        displays = [primary_display, secondary_display]
        assert select_display(displays, "1") == secondary_display
        assert select_display(displays, "Display 1") == secondary_display
        assert select_display(displays, "9") is None

    def test_select_with_no_displays(self):
        assert select_display([]) is None

    def test_list_displays_skips_virtual_screen(self):
        sct = MagicMock()
        sct.monitors = [
            {"left": -1280, "top": 0, "width": 3200, "height": 1080},
            {"left": 0, "top": 0, "width": 1920, "height": 1080},
            {"left": -1280, "top": 0, "width": 1280, "height": 1024},
        ]
        with patch("vio.vision.display.mss.mss") as mock_mss:
            mock_mss.return_value.__enter__.return_value = sct
            displays = list_displays()
        assert [d.id for d in displays] == [0, 1]
        assert displays[1].left == -1280
        assert displays[0].is_primary

    def test_list_displays_failure_returns_empty(self):
        with patch("vio.vision.display.mss.mss", side_effect=RuntimeError("no X server")):
            assert list_displays() == []

    def test_dpr_defaults_to_one_on_failure(self):
        with patch("vio.vision.display.sys.platform", "win32"), patch(
            "vio.vision.display.subprocess.run", side_effect=OSError("reg missing")
        ):
            assert get_device_pixel_ratio() == 1.0

    def test_dpr_windows_applied_dpi(self):
        result = MagicMock(stdout="    AppliedDPI    REG_DWORD    0x78\n")
        with patch("vio.vision.display.sys.platform", "win32"), patch(
            "vio.vision.display.subprocess.run", return_value=result
        ):
            assert get_device_pixel_ratio() == pytest.approx(1.25)

    def test_dpr_macos_retina(self):
        result = MagicMock(stdout="Resolution: 2880 x 1800 Retina\nUI Looks like: 1440 x 900 @ 60.00Hz\n")
        with patch("vio.vision.display.sys.platform", "darwin"), patch(
            "vio.vision.display.subprocess.run", return_value=result
        ):
            assert get_device_pixel_ratio() == pytest.approx(2.0)

    def test_dpr_other_platform(self):
        with patch("vio.vision.display.sys.platform", "linux"):
            assert get_device_pixel_ratio() == 1.0


# ===================================================================
# Inference oracle tests
# ===================================================================


class TestOnnxOracle:
    def test_missing_model_disables(self, tmp_path):
        oracle = OnnxInferenceOracle(str(tmp_path / "missing.onnx"))
        assert oracle.initialize() is False
        assert oracle.available is False

    def test_run_without_session_raises(self, tmp_path):
        oracle = OnnxInferenceOracle(str(tmp_path / "missing.onnx"))
        with pytest.raises(InferenceError):
            oracle.run(np.zeros((1, 3, 640, 640), dtype=np.float32))


# ===================================================================
# UIDetector tests
# ===================================================================


class TestUIDetector:
    @pytest.mark.asyncio
    async def test_detects_and_deduplicates(self, capture, two_button_tensor):
        oracle = FakeOracle(two_button_tensor)
        detector = UIDetector(oracle=oracle)
        elements = await detector.detect(capture)

        assert oracle.calls == [(1, 3, 640, 640)]
        assert [e.id for e in elements] == [0, 1]
        assert [e.type for e in elements] == ["button", "checkbox"]
        button = elements[0]
        assert button.bounds.x1 == pytest.approx(300)
        assert button.bounds.y1 == pytest.approx(30)
        assert button.center.x == pytest.approx(450)
        assert button.center.y == pytest.approx(180)
        assert elements[1].center.x == pytest.approx(1200)
        assert elements[1].center.y == pytest.approx(480)

    @pytest.mark.asyncio
    async def test_class_aware_nms_keeps_more(self, capture):
        raw = _make_raw_tensor(
            boxes=[(150, 200, 100, 100), (150, 200, 100, 100)],
            scores=[[0.9, 0.0], [0.0, 0.8]],
        )
        detector = UIDetector(oracle=FakeOracle(raw), class_aware_nms=True)
        assert len(await detector.detect(capture)) == 2

    @pytest.mark.asyncio
    async def test_empty_label_table_is_kept(self, capture, two_button_tensor):
        empty = ClassLabelTable.from_sequence([])
        detector = UIDetector(oracle=FakeOracle(two_button_tensor), labels=empty)

        assert detector.labels is empty
        elements = await detector.detect(capture)
        assert [e.type for e in elements] == ["class_4", "class_5"]

    @pytest.mark.asyncio
    async def test_disabled_without_oracle(self, capture):
        detector = UIDetector(oracle=None)
        assert detector.enabled is False
        assert await detector.detect(capture) == []

    @pytest.mark.asyncio
    async def test_unavailable_oracle(self, capture, two_button_tensor):
        oracle = FakeOracle(two_button_tensor)
        oracle.available = False
        detector = UIDetector(oracle=oracle)
        assert await detector.detect(capture) == []
        assert oracle.calls == []

    @pytest.mark.asyncio
    async def test_no_capture(self, two_button_tensor):
        detector = UIDetector(oracle=FakeOracle(two_button_tensor))
        assert await detector.detect(None) == []

    @pytest.mark.asyncio
    async def test_inference_error_is_fail_closed(self, capture):
        detector = UIDetector(oracle=FakeOracle(error=InferenceError("boom")))
        assert await detector.detect(capture) == []

    @pytest.mark.asyncio
    async def test_inference_timeout_is_fail_closed(self, capture, two_button_tensor):
        detector = UIDetector(oracle=FakeOracle(two_button_tensor), inference_timeout=0.01)

        async def slow_to_thread(func, *args):
            await asyncio.sleep(1)

        with patch("vio.vision.detector.asyncio.to_thread", slow_to_thread):
            assert await detector.detect(capture) == []

    @pytest.mark.asyncio
    async def test_decode_error_propagates(self, capture):
        bad = RawTensor.from_array("output0", np.zeros((1, 3, 8400), dtype=np.float32))
        detector = UIDetector(oracle=FakeOracle(bad))
        with pytest.raises(DecodeError):
            await detector.detect(capture)

    @pytest.mark.asyncio
    async def test_portrait_capture(self):
        capture = _make_capture(width=1080, height=2400)
        # Portrait: scale = 640/2400, pad_x = 176
        raw = _make_raw_tensor(boxes=[(176 + 50, 100, 20, 20)], scores=[[0.9]])
        detector = UIDetector(oracle=FakeOracle(raw))
        elements = await detector.detect(capture)
        assert len(elements) == 1
        assert elements[0].center.x == pytest.approx(50 * 2400 / 640)
        assert elements[0].center.y == pytest.approx(100 * 2400 / 640)
        assert elements[0].type == "DOB"

    def test_from_settings(self):
        from vio.config import VisionSettings

        settings = VisionSettings(
            confidence_threshold=0.3,
            iou_threshold=0.6,
            model_input_size=320,
            nms_class_aware=True,
            class_labels="a,b",
        )
        detector = UIDetector.from_settings(settings, oracle=FakeOracle())
        assert detector.confidence_threshold == 0.3
        assert detector.iou_threshold == 0.6
        assert detector.input_size == 320
        assert detector.class_aware_nms is True
        assert detector.labels.label(1) == "b"
