"""Tests for Pillow thumbnail rendering of selection regions."""

import base64
from io import BytesIO

import pytest
from PIL import Image

from storyboard_app.services.geometry import Point, RectRegion
from storyboard_app.services.region_thumbnails import (
    ThumbnailError,
    decode_data_url,
    parse_color,
    region_thumbnail_url,
    render_region_thumbnail,
    to_data_url,
)
from storyboard_app.services.regions import BrushSelection, BrushStroke, RectSelection


def test_parse_color_canvas_rgba():
    assert parse_color("rgba(255, 100, 100, 0.7)") == (255, 100, 100, 178)
    assert parse_color("rgb(1,2,3)") == (1, 2, 3, 255)


def test_parse_color_falls_back_to_pillow():
    assert parse_color("#ff0000") == (255, 0, 0, 255)
    assert parse_color("red") == (255, 0, 0, 255)


def test_rect_thumbnail_is_natural_resolution_crop():
    im = Image.new("RGBA", (1000, 800), (10, 20, 30, 255))
    im.paste((200, 0, 0, 255), (200, 240, 300, 360))
    region = RectSelection(id="r1", rect=RectRegion("r1", x=0.2, y=0.3, width=0.1, height=0.15))

    thumb = render_region_thumbnail(im, region)

    assert thumb.size == (100, 120)
    assert thumb.getpixel((0, 0)) == (200, 0, 0, 255)
    assert thumb.getpixel((99, 119)) == (200, 0, 0, 255)


def test_brush_thumbnail_paints_strokes_over_image(gradient_image):
    stroke = BrushStroke(
        points=[Point(0.25, 0.5), Point(0.75, 0.5)],
        color="rgba(0, 255, 0, 1)",
        size=20,
        normalized_size=0.05,
    )
    region = BrushSelection(id="b1", brush_strokes=[stroke])

    thumb = render_region_thumbnail(gradient_image, region)

    w, h = thumb.size
    assert w > 100 and h > 0
    # the middle of the stroke is fully painted
    assert thumb.getpixel((w // 2, h // 2)) == (0, 255, 0, 255)
    # the corners still show the source image, not a cutout
    assert thumb.getpixel((0, 0))[3] == 255
    assert thumb.getpixel((0, 0))[:3] != (0, 255, 0)


def test_brush_stroke_with_one_point_is_not_drawn(gradient_image):
    stroke = BrushStroke(points=[Point(0.5, 0.5)], color="rgba(0, 255, 0, 1)", normalized_size=0.05)
    thumb = render_region_thumbnail(gradient_image, BrushSelection(id="b", brush_strokes=[stroke]))
    w, h = thumb.size
    assert thumb.getpixel((w // 2, h // 2))[:3] != (0, 255, 0)


def test_brush_region_without_strokes_fails(gradient_image):
    with pytest.raises(ThumbnailError):
        render_region_thumbnail(gradient_image, BrushSelection(id="b", brush_strokes=[]))


def test_zero_size_bounds_fail():
    im = Image.new("RGBA", (10, 10))
    region = RectSelection(id="r", rect=RectRegion("r", x=1.0, y=1.0, width=0.5, height=0.5))
    with pytest.raises(ThumbnailError):
        render_region_thumbnail(im, region)


def test_data_url_round_trip(gradient_image):
    region = RectSelection(id="r", rect=RectRegion("r", x=0.0, y=0.0, width=0.5, height=0.5))
    url = region_thumbnail_url(gradient_image, region)

    assert url.startswith("data:image/png;base64,")
    decoded = Image.open(BytesIO(decode_data_url(url)))
    assert decoded.format == "PNG"
    assert decoded.size == (100, 80)


def test_decode_data_url_rejects_plain_urls():
    with pytest.raises(ValueError):
        decode_data_url("https://example.com/a.png")


def test_to_data_url_is_base64_png():
    url = to_data_url(Image.new("RGBA", (2, 2)))
    raw = base64.b64decode(url.split(",", 1)[1])
    assert raw[:8] == b"\x89PNG\r\n\x1a\n"
