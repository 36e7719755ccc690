"""
Circular avatar crops.

A crop is stored per character per style as percentages of the source image:
top-left offset (x, y) and size (width, height). Older records only carry
(x, y, zoom); they are converted to the canonical shape as soon as they are
read, so nothing past `normalize_crop` ever sees a zoom.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple
import math

from PIL import Image, ImageDraw, ImageOps

DEFAULT_AVATAR_SIZE = 40
MIN_ZOOM = 1.0
MAX_ZOOM = 3.0


@dataclass(frozen=True)
class AvatarCrop:
    x: float
    y: float
    width: float
    height: float

    def as_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


FULL_CROP = AvatarCrop(x=0.0, y=0.0, width=100.0, height=100.0)


def _div(a: float, b: float) -> float:
    """Division that yields inf/nan instead of raising, like the layout math it feeds."""
    if b == 0:
        return math.copysign(math.inf, a) if a else math.nan
    return a / b


def normalize_crop(raw: Any) -> Optional[AvatarCrop]:
    """Read a stored crop in either format; None means no crop configured."""
    if raw is None:
        return None
    if isinstance(raw, AvatarCrop):
        return raw
    if not isinstance(raw, Mapping):
        raise TypeError(f"Unsupported crop value: {raw!r}")

    width = raw.get("width")
    height = raw.get("height")
    if width is None or height is None:
        zoom = raw.get("zoom")
        zoom = 1.0 if zoom is None else float(zoom)
        width = height = _div(100.0, zoom)
    return AvatarCrop(
        x=float(raw.get("x") or 0),
        y=float(raw.get("y") or 0),
        width=float(width),
        height=float(height),
    )


def is_default_crop(crop: Optional[AvatarCrop]) -> bool:
    return crop is None or (
        crop.x == 0 and crop.y == 0 and crop.width >= 100 and crop.height >= 100
    )


def _pct(value: float) -> str:
    if not math.isfinite(value):
        return "0%"
    # +0.0 folds -0.0 into 0.0
    return f"{value + 0.0:g}%"


def crop_scale(crop: AvatarCrop) -> Tuple[float, float]:
    return (_div(100.0, crop.width), _div(100.0, crop.height))


def container_style(size: int = DEFAULT_AVATAR_SIZE) -> Dict[str, Any]:
    return {
        "width": size,
        "height": size,
        "borderRadius": "50%",
        "overflow": "hidden",
        "position": "relative",
        "backgroundColor": "hsl(var(--muted))",
    }


def image_style(crop: Optional[AvatarCrop]) -> Dict[str, Any]:
    """
    CSS for the <img> inside the circular container.

    The image is scaled so the crop's width fills the container and shifted so
    the crop's top-left corner lands on the container origin. Crops are square
    relative to the image, so the same scale fills the height too.
    """
    if is_default_crop(crop):
        return {
            "width": "100%",
            "height": "100%",
            "objectFit": "cover",
            "objectPosition": "top center",
        }
    scale_x, scale_y = crop_scale(crop)
    return {
        "position": "absolute",
        "width": _pct(scale_x * 100),
        "height": "auto",
        "left": _pct(-crop.x * scale_x),
        "top": _pct(-crop.y * scale_y),
        "maxWidth": "none",
    }


def avatar_styles(raw_crop: Any, size: int = DEFAULT_AVATAR_SIZE) -> Dict[str, Any]:
    crop = normalize_crop(raw_crop)
    return {
        "default": is_default_crop(crop),
        "container": container_style(size),
        "image": image_style(crop),
    }


def avatar_pixel_offsets(raw_crop: Any, size: int = DEFAULT_AVATAR_SIZE) -> Dict[str, float]:
    """Same placement as `image_style`, in pixels of a *size* x *size* container."""
    crop = normalize_crop(raw_crop)
    if is_default_crop(crop):
        return {"width": float(size), "left": 0.0, "top": 0.0}
    scale_x, scale_y = crop_scale(crop)

    def px(v: float) -> float:
        return v + 0.0 if math.isfinite(v) else 0.0

    return {
        "width": px(scale_x * size),
        "left": px(-crop.x * scale_x * size / 100),
        "top": px(-crop.y * scale_y * size / 100),
    }


def _circle_mask(size: int) -> Image.Image:
    mask = Image.new("L", (size, size), 0)
    ImageDraw.Draw(mask).ellipse((0, 0, size - 1, size - 1), fill=255)
    return mask


def render_avatar(image: Image.Image, raw_crop: Any, size: int = DEFAULT_AVATAR_SIZE) -> Image.Image:
    """Circular *size* x *size* RGBA avatar showing exactly the crop."""
    crop = normalize_crop(raw_crop)
    im = image.convert("RGBA")
    w, h = im.size

    if is_default_crop(crop) or not (math.isfinite(crop.width) and math.isfinite(crop.height)) \
            or crop.width <= 0 or crop.height <= 0:
        face = ImageOps.fit(im, (size, size), method=Image.LANCZOS, centering=(0.5, 0.0))
    else:
        left = crop.x / 100 * w
        top = crop.y / 100 * h
        right = left + crop.width / 100 * w
        bottom = top + crop.height / 100 * h
        # crop() pads with transparency where the crop runs past the image
        box = (round(left), round(top), max(round(right), round(left) + 1), max(round(bottom), round(top) + 1))
        face = im.crop(box).resize((size, size), Image.LANCZOS)

    out = Image.new("RGBA", (size, size), (0, 0, 0, 0))
    out.paste(face, (0, 0), _circle_mask(size))
    return out


def initial_zoom(raw_crop: Any) -> float:
    """Zoom slider position for a stored crop (1 when there is none)."""
    crop = normalize_crop(raw_crop)
    if crop is None:
        return MIN_ZOOM
    scale_x, scale_y = crop_scale(crop)
    zoom = min(scale_x, scale_y)
    if math.isnan(zoom):
        return MIN_ZOOM
    return min(MAX_ZOOM, max(MIN_ZOOM, zoom))


def crop_for_save(area: Optional[Mapping[str, float]]) -> AvatarCrop:
    """Crop to persist from the editor's last cropped area."""
    if not area:
        return FULL_CROP
    return AvatarCrop(
        x=float(area.get("x", 0)),
        y=float(area.get("y", 0)),
        width=float(area.get("width", 100)),
        height=float(area.get("height", 100)),
    )


def resolve_avatar(
    cards: Optional[List[Mapping[str, Any]]],
    avatar_profiles: Optional[Mapping[str, Mapping[str, Any]]],
    style_id: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """
    Pick the avatar image of a character.

    Order: the profile of *style_id*, then any profile whose card has an image,
    then the first card with an image (uncropped). None when nothing fits.
    """
    cards = cards or []
    profiles = avatar_profiles or {}

    def card_image(card_id: Optional[str]) -> Optional[str]:
        if not card_id:
            return None
        card = next((c for c in cards if c.get("id") == card_id), None)
        return card.get("imageUrl") if card else None

    candidates = []
    if style_id and profiles.get(style_id):
        candidates.append(profiles[style_id])
    candidates.extend(p for p in profiles.values() if p)

    for profile in candidates:
        url = card_image(profile.get("cardId"))
        if url:
            crop = normalize_crop(profile.get("crop"))
            return {"imageUrl": url, "crop": crop.as_dict() if crop else None}

    first = next((c for c in cards if c.get("imageUrl")), None)
    if first:
        return {"imageUrl": first["imageUrl"], "crop": None}
    return None
