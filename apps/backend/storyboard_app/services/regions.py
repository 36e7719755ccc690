"""
Selection region types.

A region is either a rectangle or a bundle of brush strokes; the two shapes
are separate classes so code never has to guess which optional fields are set.
Wire form (what the browser sends and receives):

    {"id", "type": "rect"|"brush", "rect"?, "brushStrokes"?, "thumbnailUrl"?}
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from storyboard_app.services.geometry import Point, RectRegion

BRUSH_COLOR = "rgba(255, 100, 100, 0.7)"


@dataclass
class BrushStroke:
    points: List[Point]
    color: str = BRUSH_COLOR
    size: float = 20
    normalized_size: Optional[float] = None

    @property
    def committable(self) -> bool:
        return len(self.points) >= 2


@dataclass
class RectSelection:
    id: str
    rect: RectRegion
    thumbnail_url: Optional[str] = None
    type: str = field(default="rect", init=False)


@dataclass
class BrushSelection:
    id: str
    brush_strokes: List[BrushStroke]
    thumbnail_url: Optional[str] = None
    type: str = field(default="brush", init=False)


SelectionRegion = Union[RectSelection, BrushSelection]


def stroke_to_dict(stroke: BrushStroke) -> Dict[str, Any]:
    return {
        "points": [{"x": p.x, "y": p.y} for p in stroke.points],
        "color": stroke.color,
        "size": stroke.size,
        "normalizedSize": stroke.normalized_size,
    }


def stroke_from_dict(d: Dict[str, Any]) -> BrushStroke:
    return BrushStroke(
        points=[Point(float(p["x"]), float(p["y"])) for p in d.get("points") or []],
        color=d.get("color") or BRUSH_COLOR,
        size=float(d.get("size") or 20),
        normalized_size=d.get("normalizedSize"),
    )


def region_to_dict(region: SelectionRegion) -> Dict[str, Any]:
    out: Dict[str, Any] = {"id": region.id, "type": region.type}
    if isinstance(region, RectSelection):
        r = region.rect
        out["rect"] = {"id": r.id, "x": r.x, "y": r.y, "width": r.width, "height": r.height}
    else:
        out["brushStrokes"] = [stroke_to_dict(s) for s in region.brush_strokes]
    if region.thumbnail_url:
        out["thumbnailUrl"] = region.thumbnail_url
    return out


def region_from_dict(d: Dict[str, Any]) -> SelectionRegion:
    kind = d.get("type")
    if kind == "rect":
        r = d.get("rect")
        if not r:
            raise ValueError(f"rect region {d.get('id')!r} has no rect")
        rect = RectRegion(
            id=r.get("id") or d["id"],
            x=float(r["x"]),
            y=float(r["y"]),
            width=float(r["width"]),
            height=float(r["height"]),
        )
        return RectSelection(id=d["id"], rect=rect, thumbnail_url=d.get("thumbnailUrl"))
    if kind == "brush":
        strokes = [stroke_from_dict(s) for s in d.get("brushStrokes") or []]
        return BrushSelection(id=d["id"], brush_strokes=strokes, thumbnail_url=d.get("thumbnailUrl"))
    raise ValueError(f"Unknown region type: {kind!r}")
