# -*- coding: utf-8 -*-
"""
户型图识别框与图片处理测试
"""

import pytest
from PIL import Image

from conftest import image_response, text_response
from floor_plan import (
    FULL_BOX,
    BoundingBox,
    analyze_floor_plan,
    clarity_score,
    crop_image,
    draw_star_overlay,
    edit_room_image,
    image_quality_metrics,
    sanitize_box,
)
from flying_stars import annual_flying_stars
from genai_service import RemoteCallError


class TestSanitizeBox:
    """识别框清洗"""

    def test_valid_box(self):
        box = sanitize_box({"ymin": 10, "xmin": 15, "ymax": 90, "xmax": 85})
        assert box == BoundingBox(ymin=10, xmin=15, ymax=90, xmax=85)

    def test_swapped_and_out_of_range(self):
        box = sanitize_box({"ymin": 90, "xmin": -20, "ymax": 10, "xmax": 150})
        assert box == BoundingBox(ymin=10, xmin=0, ymax=90, xmax=100)

    def test_missing_or_bad_keys_fall_back(self):
        box = sanitize_box({"ymin": "10", "xmin": 30, "xmax": None})
        assert box == BoundingBox(ymin=0, xmin=30, ymax=100, xmax=100)

    @pytest.mark.parametrize(
        "raw",
        [
            {"ymin": 40, "xmin": 50, "ymax": 60, "xmax": 50},
            {"ymin": 120, "xmin": 0, "ymax": 130, "xmax": 100},
        ],
    )
    def test_degenerate_box_is_full_image(self, raw):
        assert sanitize_box(raw) == FULL_BOX

    def test_non_finite_values_fall_back(self):
        box = sanitize_box({"ymin": float("nan"), "xmin": 10, "ymax": float("inf"), "xmax": 90})
        assert box == BoundingBox(ymin=0, xmin=10, ymax=100, xmax=90)

    def test_non_dict(self):
        assert sanitize_box(None) == FULL_BOX


class TestCropImage:
    """按识别框裁切"""

    def test_crop_keeps_box_aspect(self):
        image = Image.new("RGB", (1000, 800))
        cropped = crop_image(image, BoundingBox(ymin=10, xmin=20, ymax=60, xmax=70))
        assert cropped.size == (500, 400)

    def test_full_box_is_identity(self):
        image = Image.new("RGB", (400, 200))
        assert crop_image(image, FULL_BOX).size == (400, 200)

    @pytest.mark.parametrize(
        "box",
        [
            BoundingBox(ymin=100, xmin=100, ymax=100, xmax=100),
            BoundingBox(ymin=30, xmin=50, ymax=70, xmax=50),
        ],
    )
    def test_degenerate_box_shows_whole_plan(self, box):
        image = Image.new("RGB", (120, 90))
        assert crop_image(image, box).size == (120, 90)

    def test_analyzed_box_crops_and_overlays(self, make_service):
        service, _ = make_service(text_response({"ymin": 0, "xmin": 25, "ymax": 50, "xmax": 75}))
        plan = Image.new("RGB", (200, 100), (255, 255, 255))
        box = analyze_floor_plan(service, plan)

        zoomed = draw_star_overlay(crop_image(plan, box), annual_flying_stars(2026))
        assert zoomed.size == (100, 50)


class TestImageHelpers:
    """叠加与清晰度"""

    def test_overlay_keeps_size(self):
        image = Image.new("L", (90, 90), 255)
        overlay = draw_star_overlay(image, annual_flying_stars(2025))
        assert overlay.size == (90, 90)
        assert overlay.mode == "RGB"

    def test_flat_small_image_scores_zero(self):
        metrics = image_quality_metrics(Image.new("RGB", (64, 64), (0, 0, 0)))
        assert metrics["width"] == 64
        assert metrics["edge_var"] == pytest.approx(0.0)
        assert clarity_score(metrics) == 0

    def test_sharp_large_image_scores_high(self):
        assert clarity_score({"width": 2000, "height": 1600, "edge_var": 500.0}) == 100


class TestRemoteCalls:
    """远程调用"""

    def test_analyze(self, make_service):
        service, client = make_service(text_response({"ymin": 5, "xmin": 8, "ymax": 95, "xmax": 92}))
        box = analyze_floor_plan(service, Image.new("RGB", (20, 20)))

        assert box == BoundingBox(ymin=5, xmin=8, ymax=95, xmax=92)
        assert client.calls[0]["contents"][0].inline_data.mime_type == "image/png"

    def test_analyze_empty_response(self, make_service):
        service, _ = make_service(text_response(""))
        assert analyze_floor_plan(service, Image.new("RGB", (20, 20))) == FULL_BOX

    def test_edit_room_image(self, make_service, png_bytes):
        service, client = make_service(image_response(png_bytes))
        result = edit_room_image(service, Image.new("RGB", (20, 20)), "  加一盆绿植 ")

        assert result.size == (8, 6)
        assert client.calls[0]["contents"][1].endswith("加一盆绿植")

    def test_edit_requires_instruction(self, make_service):
        service, client = make_service()
        with pytest.raises(ValueError):
            edit_room_image(service, Image.new("RGB", (20, 20)), "   ")
        assert client.calls == []

    def test_edit_with_unreadable_bytes(self, make_service):
        service, _ = make_service(image_response(b"not an image"))
        with pytest.raises(RemoteCallError):
            edit_room_image(service, Image.new("RGB", (20, 20)), "换成木地板")
