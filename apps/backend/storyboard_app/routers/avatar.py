from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
import io
import math

from storyboard_app.logger import console
from storyboard_app.services.avatar_crop import (
    DEFAULT_AVATAR_SIZE,
    avatar_pixel_offsets,
    avatar_styles,
    initial_zoom,
    normalize_crop,
    render_avatar,
    resolve_avatar,
)
from storyboard_app.services.image_source import ImageSource

router = APIRouter(prefix="/avatar", tags=["avatar"])


class CropModel(BaseModel):
    # new format carries width/height, legacy records only zoom
    x: float = 0
    y: float = 0
    width: Optional[float] = None
    height: Optional[float] = None
    zoom: Optional[float] = None

class StylesRequest(BaseModel):
    crop: Optional[CropModel] = None
    size: int = Field(DEFAULT_AVATAR_SIZE, ge=1, le=1024)

class RenderRequest(BaseModel):
    image_url: str
    crop: Optional[CropModel] = None
    size: int = Field(DEFAULT_AVATAR_SIZE, ge=1, le=1024)

class ResolveRequest(BaseModel):
    cards: List[Dict[str, Any]] = []
    avatar_profiles: Optional[Dict[str, Dict[str, Any]]] = None
    style_id: Optional[str] = None


def _raw(crop: Optional[CropModel]) -> Optional[Dict[str, Any]]:
    return crop.model_dump(exclude_none=True) if crop else None


@router.post("/normalize")
def normalize(crop: CropModel):
    """Canonical {x, y, width, height} for either stored format."""
    c = normalize_crop(_raw(crop))
    if not all(math.isfinite(v) for v in c.as_dict().values()):
        raise HTTPException(status_code=422, detail="Crop has no usable size")
    return {"crop": c.as_dict(), "zoom": initial_zoom(c)}

@router.post("/styles")
def styles(req: StylesRequest):
    raw = _raw(req.crop)
    out = avatar_styles(raw, req.size)
    out["pixels"] = avatar_pixel_offsets(raw, req.size)
    return out

@router.post("/render")
def render(req: RenderRequest):
    source = ImageSource(req.image_url)
    if not source.load():
        raise HTTPException(status_code=422, detail=f"Failed to load image: {req.image_url}")

    try:
        avatar = render_avatar(source.image, _raw(req.crop), req.size)
        mem = io.BytesIO()
        avatar.save(mem, format="PNG")
        mem.seek(0)
    except Exception as e:
        console.print_exception()
        raise HTTPException(status_code=500, detail=f"/avatar/render failed: {e}")
    return StreamingResponse(mem, media_type="image/png")

@router.post("/resolve")
def resolve(req: ResolveRequest):
    return {"avatar": resolve_avatar(req.cards, req.avatar_profiles, req.style_id)}
