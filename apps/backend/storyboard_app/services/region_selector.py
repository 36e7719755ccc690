"""
Region selection session.

Mirrors the selection dialog: pointer events move the session through
idle -> drawing -> committed -> idle, and `confirm()` renders a thumbnail for
each region. Pointer coordinates come in as canvas pixels and are normalized
right away, so the stored regions never depend on the on-screen canvas size.
"""
from __future__ import annotations
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple
import time
import uuid

from PIL import Image

from storyboard_app.logger import console
from storyboard_app.services.geometry import (
    LEGACY_CANVAS_WIDTH,
    MIN_DRAW_SIZE,
    Point,
    RectRegion,
    ResizeHandle,
    find_rect_at,
    fit_to_container,
    hit_handle,
    move_rect,
    normalize_rect,
    resize_rect,
    to_normalized,
)
from storyboard_app.services.image_source import ImageSource
from storyboard_app.services.region_thumbnails import ThumbnailError, region_thumbnail_url
from storyboard_app.services.regions import (
    BRUSH_COLOR,
    BrushSelection,
    BrushStroke,
    RectSelection,
    SelectionRegion,
    region_to_dict,
)

MIN_BRUSH_SIZE = 5
MAX_BRUSH_SIZE = 50
DEFAULT_BRUSH_SIZE = 20

Renderer = Callable[[Image.Image, SelectionRegion], str]


class SelectionMode(str, Enum):
    RECT = "rect"
    BRUSH = "brush"


class ImageNotLoadedError(Exception):
    """Confirm was attempted before the source image loaded."""


class RegionConfirmError(Exception):
    """Every region failed to render; nothing can be confirmed."""


@dataclass
class _Drag:
    region_id: str
    start: Point


@dataclass
class _Resize:
    region_id: str
    handle: ResizeHandle


@dataclass
class ConfirmResult:
    regions: List[SelectionRegion]
    failed: int


def _new_id(kind: str) -> str:
    return f"{kind}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}"


class RegionSelectorSession:
    def __init__(
        self,
        image: ImageSource,
        initial_regions: Optional[List[SelectionRegion]] = None,
        session_id: Optional[str] = None,
    ):
        self.id = session_id or uuid.uuid4().hex
        self.image = image
        self.mode = SelectionMode.RECT
        self.brush_size = DEFAULT_BRUSH_SIZE
        self.regions: List[SelectionRegion] = list(initial_regions or [])
        self.current_brush_strokes: List[BrushStroke] = []
        self.current_stroke: Optional[BrushStroke] = None
        self.drawing_rect: Optional[RectRegion] = None
        self.selected_region_id: Optional[str] = None
        self.resizing: Optional[_Resize] = None
        self.dragging: Optional[_Drag] = None
        self.canvas_size: Tuple[float, float] = (0.0, 0.0)

    # --------------------
    # State
    # --------------------
    @property
    def state(self) -> str:
        if self.current_stroke is not None or self.drawing_rect is not None:
            return "drawing"
        if self.resizing is not None:
            return "resizing"
        if self.dragging is not None:
            return "dragging"
        if self.selected_region_id is not None:
            return "selected"
        return "idle"

    @property
    def pending_count(self) -> int:
        """Regions that a confirm would submit (pending strokes count as one)."""
        return len(self.regions) + (1 if self.current_brush_strokes else 0)

    def _find_region(self, region_id: str) -> Optional[SelectionRegion]:
        return next((r for r in self.regions if r.id == region_id), None)

    def _rects(self) -> List[RectRegion]:
        return [r.rect for r in self.regions if isinstance(r, RectSelection)]

    def _replace_rect(self, region_id: str, fn: Callable[[RectRegion], RectRegion]) -> None:
        for i, region in enumerate(self.regions):
            if region.id == region_id and isinstance(region, RectSelection):
                self.regions[i] = replace(region, rect=fn(region.rect))
                return

    # --------------------
    # Canvas / tools
    # --------------------
    def layout(self, container_width: float, container_height: float) -> Tuple[float, float]:
        """Resize the canvas to the largest image-shaped box inside the container."""
        nw, nh = self.image.natural_size
        self.canvas_size = fit_to_container(nw, nh, container_width, container_height)
        return self.canvas_size

    def set_mode(self, mode: SelectionMode) -> None:
        self.mode = SelectionMode(mode)

    def set_brush_size(self, size: float) -> None:
        self.brush_size = max(MIN_BRUSH_SIZE, min(MAX_BRUSH_SIZE, int(size)))

    def _normalize(self, px: float, py: float) -> Point:
        cw, ch = self.canvas_size
        return to_normalized(px, py, cw, ch)

    # --------------------
    # Pointer events
    # --------------------
    def pointer_down(self, px: float, py: float) -> None:
        coords = self._normalize(px, py)

        if self.mode == SelectionMode.BRUSH:
            cw = self.canvas_size[0]
            normalized_size = self.brush_size / cw if cw > 0 else self.brush_size / LEGACY_CANVAS_WIDTH
            self.current_stroke = BrushStroke(
                points=[coords],
                color=BRUSH_COLOR,
                size=self.brush_size,
                normalized_size=normalized_size,
            )
            return

        hit = find_rect_at(self._rects(), coords)
        if hit is not None:
            region = next(r for r in self.regions if isinstance(r, RectSelection) and r.rect is hit)
            self.selected_region_id = region.id
            handle = hit_handle(hit, coords)
            if handle is not None:
                self.resizing = _Resize(region_id=region.id, handle=handle)
            else:
                self.dragging = _Drag(region_id=region.id, start=coords)
        else:
            self.selected_region_id = None
            self.drawing_rect = RectRegion(id=_new_id("rect"), x=coords.x, y=coords.y, width=0.0, height=0.0)

    def pointer_move(self, px: float, py: float) -> None:
        coords = self._normalize(px, py)

        if self.mode == SelectionMode.BRUSH:
            if self.current_stroke is not None:
                self.current_stroke.points.append(coords)
            return

        if self.drawing_rect is not None:
            r = self.drawing_rect
            self.drawing_rect = replace(r, width=coords.x - r.x, height=coords.y - r.y)
        elif self.resizing is not None and self.selected_region_id:
            handle = self.resizing.handle
            self._replace_rect(self.selected_region_id, lambda rect: resize_rect(rect, handle, coords))
        elif self.dragging is not None and self.selected_region_id:
            dx = coords.x - self.dragging.start.x
            dy = coords.y - self.dragging.start.y
            self._replace_rect(self.selected_region_id, lambda rect: move_rect(rect, dx, dy))
            self.dragging = _Drag(region_id=self.dragging.region_id, start=coords)

    def pointer_up(self) -> Optional[SelectionRegion]:
        """Finish the gesture. Returns the rect region committed by it, if any."""
        committed: Optional[SelectionRegion] = None

        if self.mode == SelectionMode.BRUSH and self.current_stroke is not None and self.current_stroke.committable:
            self.current_brush_strokes.append(self.current_stroke)
        self.current_stroke = None

        r = self.drawing_rect
        if r is not None and abs(r.width) > MIN_DRAW_SIZE and abs(r.height) > MIN_DRAW_SIZE:
            rect = normalize_rect(r)
            committed = RectSelection(id=rect.id, rect=rect)
            self.regions.append(committed)
            self.selected_region_id = rect.id

        self.drawing_rect = None
        self.resizing = None
        self.dragging = None
        return committed

    # leaving the canvas ends the gesture the same way
    pointer_leave = pointer_up

    # --------------------
    # Editing
    # --------------------
    def select(self, region_id: Optional[str]) -> None:
        """Toggle selection of *region_id* (None clears it)."""
        if region_id is None or region_id == self.selected_region_id:
            self.selected_region_id = None
            return
        if self._find_region(region_id) is None:
            raise KeyError(region_id)
        self.selected_region_id = region_id

    def undo(self) -> None:
        if self.mode == SelectionMode.BRUSH and self.current_brush_strokes:
            self.current_brush_strokes.pop()
        elif self.regions:
            self.regions.pop()
            self.selected_region_id = None

    def delete_selected(self) -> bool:
        if not self.selected_region_id:
            return False
        self.regions = [r for r in self.regions if r.id != self.selected_region_id]
        self.selected_region_id = None
        return True

    def save_brush_as_region(self) -> Optional[BrushSelection]:
        if not self.current_brush_strokes:
            return None
        region = BrushSelection(id=_new_id("brush"), brush_strokes=list(self.current_brush_strokes))
        self.regions.append(region)
        self.current_brush_strokes = []
        return region

    # --------------------
    # Confirm
    # --------------------
    def confirm(self, renderer: Renderer = region_thumbnail_url) -> ConfirmResult:
        if not self.image.loaded or self.image.image is None:
            raise ImageNotLoadedError("Image is not loaded")

        final: List[SelectionRegion] = list(self.regions)
        if self.current_brush_strokes:
            final.append(BrushSelection(id=_new_id("brush"), brush_strokes=list(self.current_brush_strokes)))

        result = render_thumbnails(self.image.image, final, renderer)
        self.regions = final
        self.current_brush_strokes = []
        return result

    def snapshot(self) -> Dict[str, Any]:
        nw, nh = self.image.natural_size
        cw, ch = self.canvas_size
        return {
            "session_id": self.id,
            "state": self.state,
            "mode": self.mode.value,
            "brush_size": self.brush_size,
            "regions": [region_to_dict(r) for r in self.regions],
            "pending_strokes": len(self.current_brush_strokes),
            "pending_count": self.pending_count,
            "selected_region_id": self.selected_region_id,
            "canvas": {"width": cw, "height": ch},
            "image": {
                "url": self.image.url,
                "request_url": self.image.request_url,
                "loaded": self.image.loaded,
                "error": self.image.error,
                "retry_count": self.image.retry_count,
                "natural_width": nw,
                "natural_height": nh,
            },
        }


def render_thumbnails(
    image: Image.Image,
    regions: List[SelectionRegion],
    renderer: Renderer = region_thumbnail_url,
) -> ConfirmResult:
    """
    Attach a thumbnail to every region. A region whose rendering fails is
    dropped; if all of them fail the whole confirm is refused.
    """
    valid: List[SelectionRegion] = []
    for region in regions:
        try:
            url = renderer(image, region)
        except (ThumbnailError, OSError, ValueError) as e:
            console.log(f"[red]Failed to generate thumbnail[/red] for {region.id}: {e!r}")
            continue
        if url:
            valid.append(replace(region, thumbnail_url=url))

    failed = len(regions) - len(valid)
    if regions and not valid:
        raise RegionConfirmError("Failed to generate region thumbnails. Please retry loading the image.")
    if failed:
        console.log(f"[yellow]{failed} region(s) failed to generate thumbnails[/yellow]")
    return ConfirmResult(regions=valid, failed=failed)
