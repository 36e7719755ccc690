"""
Raster thumbnails for selection regions (Pillow).

Rect regions are a plain crop of the source image at natural resolution.
Brush regions crop the strokes' bounding box and paint the strokes on top,
so the thumbnail shows "image + highlighted strokes" rather than a cutout.
"""
from __future__ import annotations
from io import BytesIO
from typing import Tuple
import base64
import re

from PIL import Image, ImageColor, ImageDraw

from storyboard_app.services.geometry import LEGACY_CANVAS_WIDTH, PixelBounds, rect_pixel_bounds, stroke_pixel_bounds
from storyboard_app.services.regions import BrushSelection, BrushStroke, RectSelection, SelectionRegion

_CSS_RGBA = re.compile(
    r"^rgba?\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})\s*(?:,\s*([0-9]*\.?[0-9]+)\s*)?\)$"
)
_DATA_URL_PREFIX = "data:image/png;base64,"


class ThumbnailError(Exception):
    """A region could not be turned into a thumbnail."""


def parse_color(color: str) -> Tuple[int, int, int, int]:
    """CSS color -> RGBA. Accepts canvas-style `rgba(r, g, b, 0.7)`."""
    m = _CSS_RGBA.match(color.strip())
    if m:
        r, g, b = (min(255, int(v)) for v in m.group(1, 2, 3))
        alpha = float(m.group(4)) if m.group(4) is not None else 1.0
        return (r, g, b, round(max(0.0, min(1.0, alpha)) * 255))
    rgb = ImageColor.getrgb(color)
    if len(rgb) == 4:
        return rgb  # type: ignore[return-value]
    return (rgb[0], rgb[1], rgb[2], 255)


def _crop(image: Image.Image, bounds: PixelBounds) -> Image.Image:
    if bounds.width <= 0 or bounds.height <= 0:
        raise ThumbnailError(f"Empty thumbnail bounds: {bounds}")
    return image.convert("RGBA").crop(bounds.box())


def _draw_stroke(canvas: Image.Image, stroke: BrushStroke, bounds: PixelBounds,
                 natural_w: int, natural_h: int) -> None:
    # One layer per stroke so overlapping segments of the same path
    # don't stack their alpha, the way a single canvas path stroke behaves.
    layer = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(layer)
    fill = parse_color(stroke.color)
    norm = stroke.normalized_size or stroke.size / LEGACY_CANVAS_WIDTH
    width = max(1, round(norm * natural_w))
    pts = [(p.x * natural_w - bounds.x, p.y * natural_h - bounds.y) for p in stroke.points]

    draw.line(pts, fill=fill, width=width, joint="curve")
    # round caps
    r = width / 2
    for cx, cy in (pts[0], pts[-1]):
        draw.ellipse((cx - r, cy - r, cx + r, cy + r), fill=fill)
    canvas.alpha_composite(layer)


def render_region_thumbnail(image: Image.Image, region: SelectionRegion) -> Image.Image:
    natural_w, natural_h = image.size

    if isinstance(region, RectSelection):
        return _crop(image, rect_pixel_bounds(region.rect, natural_w, natural_h))

    if isinstance(region, BrushSelection):
        if not region.brush_strokes:
            raise ThumbnailError(f"Brush region {region.id} has no strokes")
        bounds = stroke_pixel_bounds(region.brush_strokes, natural_w, natural_h)
        if bounds is None:
            raise ThumbnailError(f"Brush region {region.id} has no points")
        canvas = _crop(image, bounds)
        for stroke in region.brush_strokes:
            if stroke.committable:
                _draw_stroke(canvas, stroke, bounds, natural_w, natural_h)
        return canvas

    raise ThumbnailError(f"Unsupported region: {region!r}")


def to_data_url(image: Image.Image) -> str:
    buf = BytesIO()
    image.save(buf, format="PNG")
    return _DATA_URL_PREFIX + base64.b64encode(buf.getvalue()).decode("ascii")


def decode_data_url(url: str) -> bytes:
    if not url.startswith("data:"):
        raise ValueError("Not a data URL")
    _, _, payload = url.partition(",")
    return base64.b64decode(payload, validate=True)


def region_thumbnail_url(image: Image.Image, region: SelectionRegion) -> str:
    return to_data_url(render_region_thumbnail(image, region))
