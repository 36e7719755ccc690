"""
Normalized rectangle math for the region selector.

All positions and sizes are fractions of the image (0..1), so a region keeps
its meaning regardless of how large the canvas is drawn on screen.
"""
from __future__ import annotations
from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple
import math

HANDLE_THRESHOLD = 0.02
MIN_DRAW_SIZE = 0.002
MIN_RESIZE_SIZE = 0.02
BRUSH_PADDING = 0.02
# brush sizes recorded before normalized_size existed were relative to a 500px canvas
LEGACY_CANVAS_WIDTH = 500.0


@dataclass(frozen=True)
class Point:
    x: float
    y: float


@dataclass(frozen=True)
class RectRegion:
    id: str
    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class PixelBounds:
    x: int
    y: int
    width: int
    height: int

    def box(self) -> Tuple[int, int, int, int]:
        """(left, upper, right, lower) as Pillow expects it."""
        return (self.x, self.y, self.x + self.width, self.y + self.height)


class ResizeHandle(str, Enum):
    NW = "nw"
    N = "n"
    NE = "ne"
    E = "e"
    SE = "se"
    S = "s"
    SW = "sw"
    W = "w"


def to_normalized(px: float, py: float, canvas_width: float, canvas_height: float) -> Point:
    """Canvas-relative pixel position -> normalized point."""
    if canvas_width <= 0 or canvas_height <= 0:
        return Point(0.0, 0.0)
    return Point(px / canvas_width, py / canvas_height)


def fit_to_container(natural_w: float, natural_h: float, max_w: float, max_h: float) -> Tuple[float, float]:
    """Largest display size with the image aspect ratio that fits the container."""
    if natural_w <= 0 or natural_h <= 0 or max_w <= 0 or max_h <= 0:
        return (0.0, 0.0)
    aspect = natural_w / natural_h
    display_w = max_w
    display_h = max_w / aspect
    if display_h > max_h:
        display_h = max_h
        display_w = max_h * aspect
    return (display_w, display_h)


def clamp_rect(rect: RectRegion, min_size: float) -> RectRegion:
    """Pull every edge back into the unit square and floor the size."""
    x, y, w, h = rect.x, rect.y, rect.width, rect.height
    if x < 0:
        w += x
        x = 0.0
    if y < 0:
        h += y
        y = 0.0
    if x + w > 1:
        w = 1 - x
    if y + h > 1:
        h = 1 - y
    w = max(min_size, w)
    h = max(min_size, h)
    # the floor may push a rect that hugs the far edge past it
    x = min(x, 1 - w)
    y = min(y, 1 - h)
    return replace(rect, x=x, y=y, width=w, height=h)


def normalize_rect(rect: RectRegion) -> RectRegion:
    """Turn a freshly dragged rect (possibly negative size) into a valid region."""
    x, y, w, h = rect.x, rect.y, rect.width, rect.height
    if w < 0:
        x = x + w
        w = abs(w)
    if h < 0:
        y = y + h
        h = abs(h)
    return clamp_rect(replace(rect, x=x, y=y, width=w, height=h), MIN_DRAW_SIZE)


def rect_contains(rect: RectRegion, point: Point) -> bool:
    return (rect.x <= point.x <= rect.x + rect.width
            and rect.y <= point.y <= rect.y + rect.height)


def handle_anchors(rect: RectRegion) -> List[Tuple[ResizeHandle, Point]]:
    """Corners and edge midpoints, clockwise from the top-left corner."""
    x, y, w, h = rect.x, rect.y, rect.width, rect.height
    return [
        (ResizeHandle.NW, Point(x, y)),
        (ResizeHandle.N, Point(x + w / 2, y)),
        (ResizeHandle.NE, Point(x + w, y)),
        (ResizeHandle.E, Point(x + w, y + h / 2)),
        (ResizeHandle.SE, Point(x + w, y + h)),
        (ResizeHandle.S, Point(x + w / 2, y + h)),
        (ResizeHandle.SW, Point(x, y + h)),
        (ResizeHandle.W, Point(x, y + h / 2)),
    ]


def hit_handle(rect: RectRegion, point: Point, threshold: float = HANDLE_THRESHOLD) -> Optional[ResizeHandle]:
    for handle, anchor in handle_anchors(rect):
        if abs(point.x - anchor.x) < threshold and abs(point.y - anchor.y) < threshold:
            return handle
    return None


def resize_rect(rect: RectRegion, handle: ResizeHandle, point: Point) -> RectRegion:
    """Apply a resize-handle drag to *rect*, then clamp with the resize floor."""
    x, y, w, h = rect.x, rect.y, rect.width, rect.height
    handle = ResizeHandle(handle)

    if handle in (ResizeHandle.NW, ResizeHandle.W, ResizeHandle.SW):
        w += x - point.x
        x = point.x
    if handle in (ResizeHandle.NE, ResizeHandle.E, ResizeHandle.SE):
        w = point.x - x
    if handle in (ResizeHandle.NW, ResizeHandle.N, ResizeHandle.NE):
        h += y - point.y
        y = point.y
    if handle in (ResizeHandle.SW, ResizeHandle.S, ResizeHandle.SE):
        h = point.y - y

    return clamp_rect(replace(rect, x=x, y=y, width=w, height=h), MIN_RESIZE_SIZE)


def move_rect(rect: RectRegion, dx: float, dy: float) -> RectRegion:
    """Translate without resizing; the rect stops at the image edges."""
    x = rect.x + dx
    y = rect.y + dy
    if x < 0:
        x = 0.0
    if y < 0:
        y = 0.0
    if x + rect.width > 1:
        x = 1 - rect.width
    if y + rect.height > 1:
        y = 1 - rect.height
    return replace(rect, x=x, y=y)


def _clamp_bounds(left: float, top: float, width: float, height: float,
                  natural_w: int, natural_h: int) -> PixelBounds:
    x = max(0, math.floor(left))
    y = max(0, math.floor(top))
    w = min(natural_w - x, math.ceil(width))
    h = min(natural_h - y, math.ceil(height))
    return PixelBounds(x=x, y=y, width=max(0, w), height=max(0, h))


def rect_pixel_bounds(rect: RectRegion, natural_w: int, natural_h: int) -> PixelBounds:
    return _clamp_bounds(
        rect.x * natural_w,
        rect.y * natural_h,
        rect.width * natural_w,
        rect.height * natural_h,
        natural_w,
        natural_h,
    )


def stroke_radius(normalized_size: Optional[float], size: float) -> float:
    """Normalized brush radius; old strokes only carry a pixel size."""
    return (normalized_size or size / LEGACY_CANVAS_WIDTH) / 2


def stroke_pixel_bounds(
    strokes: Iterable,
    natural_w: int,
    natural_h: int,
    padding: float = BRUSH_PADDING,
) -> Optional[PixelBounds]:
    """
    Bounding box of every point of every stroke, inflated by the stroke radius
    and *padding*. Returns None when there are no points at all.
    """
    min_x = min_y = math.inf
    max_x = max_y = -math.inf
    for stroke in strokes:
        radius = stroke_radius(stroke.normalized_size, stroke.size)
        for p in stroke.points:
            min_x = min(min_x, p.x - radius)
            min_y = min(min_y, p.y - radius)
            max_x = max(max_x, p.x + radius)
            max_y = max(max_y, p.y + radius)
    if not math.isfinite(min_x):
        return None
    return _clamp_bounds(
        (min_x - padding) * natural_w,
        (min_y - padding) * natural_h,
        (max_x - min_x + padding * 2) * natural_w,
        (max_y - min_y + padding * 2) * natural_h,
        natural_w,
        natural_h,
    )


def find_rect_at(rects: Sequence[RectRegion], point: Point) -> Optional[RectRegion]:
    """Topmost (last drawn) rect that contains *point*."""
    for rect in reversed(rects):
        if rect_contains(rect, point):
            return rect
    return None
