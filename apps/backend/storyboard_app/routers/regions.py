# apps/backend/storyboard_app/routers/regions.py
from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel
from typing import Any, Dict, List, Literal, Optional
from dataclasses import replace

from storyboard_app.logger import console
from storyboard_app.services.image_source import ImageSource
from storyboard_app.services.kie_upload import KieUploader, KieUploadError
from storyboard_app.services.region_selector import (
    ConfirmResult,
    ImageNotLoadedError,
    RegionConfirmError,
    RegionSelectorSession,
    SelectionMode,
    render_thumbnails,
)
from storyboard_app.services.region_thumbnails import decode_data_url
from storyboard_app.services.regions import SelectionRegion, region_from_dict, region_to_dict
from storyboard_app.services.session_store import SessionNotFound, session_store

router = APIRouter(prefix="/regions", tags=["regions"])


# ---------- wire models ----------

class PointModel(BaseModel):
    x: float
    y: float

class RectModel(BaseModel):
    id: Optional[str] = None
    x: float
    y: float
    width: float
    height: float

class StrokeModel(BaseModel):
    points: List[PointModel]
    color: Optional[str] = None
    size: float = 20
    normalizedSize: Optional[float] = None

class RegionModel(BaseModel):
    id: str
    type: Literal["rect", "brush"]
    rect: Optional[RectModel] = None
    brushStrokes: Optional[List[StrokeModel]] = None
    thumbnailUrl: Optional[str] = None

class OpenSessionRequest(BaseModel):
    image_url: str
    initial_regions: List[RegionModel] = []
    container_width: Optional[float] = None
    container_height: Optional[float] = None

class LayoutRequest(BaseModel):
    container_width: float
    container_height: float

class ModeRequest(BaseModel):
    mode: SelectionMode
    brush_size: Optional[int] = None

class PointerRequest(BaseModel):
    event: Literal["down", "move", "up", "leave"]
    x: float = 0.0   # canvas pixels
    y: float = 0.0

class SelectRequest(BaseModel):
    region_id: Optional[str] = None

class ThumbnailsRequest(BaseModel):
    image_url: str
    regions: List[RegionModel]


# ---------- helpers ----------

def _regions(models: List[RegionModel]) -> List[SelectionRegion]:
    try:
        return [region_from_dict(m.model_dump()) for m in models]
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

def _session(session_id: str) -> RegionSelectorSession:
    try:
        return session_store.get(session_id)
    except SessionNotFound:
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")

def _render(image, regions: List[SelectionRegion]) -> ConfirmResult:
    try:
        return render_thumbnails(image, regions)
    except RegionConfirmError as e:
        raise HTTPException(status_code=422, detail=str(e))

def _upload(result: ConfirmResult) -> ConfirmResult:
    """Swap data-URL thumbnails for hosted URLs."""
    uploader = KieUploader()
    hosted: List[SelectionRegion] = []
    try:
        for region in result.regions:
            buf = decode_data_url(region.thumbnail_url)
            uploaded = uploader.upload_buffer(buf, f"{region.id}.png")
            hosted.append(replace(region, thumbnail_url=uploaded.file_url))
    except KieUploadError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return ConfirmResult(regions=hosted, failed=result.failed)

def _result_payload(result: ConfirmResult) -> Dict[str, Any]:
    return {
        "regions": [region_to_dict(r) for r in result.regions],
        "failed": result.failed,
    }


# ---------- sessions ----------

@router.post("/sessions")
def open_session(req: OpenSessionRequest):
    session = RegionSelectorSession(ImageSource(req.image_url), initial_regions=_regions(req.initial_regions))
    try:
        session.image.load()
        if req.container_width and req.container_height:
            session.layout(req.container_width, req.container_height)
    except Exception as e:
        console.print_exception()
        raise HTTPException(status_code=500, detail=f"/regions/sessions failed: {e}")
    session_store.add(session)
    return session.snapshot()

@router.get("/sessions")
def list_sessions(limit: int = Query(10, ge=1, le=100)):
    return [s.snapshot() for s in session_store.recent(limit)]

@router.get("/sessions/{session_id}")
def get_session(session_id: str):
    return _session(session_id).snapshot()

@router.delete("/sessions/{session_id}")
def close_session(session_id: str):
    if not session_store.close(session_id):
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
    return {"closed": session_id}

@router.post("/sessions/{session_id}/image/retry")
def retry_image(session_id: str):
    session = _session(session_id)
    session.image.retry()
    return session.snapshot()

@router.post("/sessions/{session_id}/layout")
def layout(session_id: str, req: LayoutRequest):
    session = _session(session_id)
    session.layout(req.container_width, req.container_height)
    return session.snapshot()

@router.post("/sessions/{session_id}/mode")
def set_mode(session_id: str, req: ModeRequest):
    session = _session(session_id)
    session.set_mode(req.mode)
    if req.brush_size is not None:
        session.set_brush_size(req.brush_size)
    return session.snapshot()

@router.post("/sessions/{session_id}/pointer")
def pointer(session_id: str, req: PointerRequest):
    session = _session(session_id)
    if req.event == "down":
        session.pointer_down(req.x, req.y)
    elif req.event == "move":
        session.pointer_move(req.x, req.y)
    else:
        session.pointer_up()
    return session.snapshot()

@router.post("/sessions/{session_id}/undo")
def undo(session_id: str):
    session = _session(session_id)
    session.undo()
    return session.snapshot()

@router.post("/sessions/{session_id}/select")
def select(session_id: str, req: SelectRequest):
    session = _session(session_id)
    try:
        session.select(req.region_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Region not found: {req.region_id}")
    return session.snapshot()

@router.delete("/sessions/{session_id}/selected")
def delete_selected(session_id: str):
    session = _session(session_id)
    session.delete_selected()
    return session.snapshot()

@router.post("/sessions/{session_id}/brush/save")
def save_brush(session_id: str):
    session = _session(session_id)
    session.save_brush_as_region()
    return session.snapshot()

@router.post("/sessions/{session_id}/confirm")
def confirm(session_id: str, upload: bool = Query(False)):
    session = _session(session_id)
    try:
        result = session.confirm()
        if upload:
            result = _upload(result)
    except ImageNotLoadedError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except RegionConfirmError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        console.print_exception()
        raise HTTPException(status_code=500, detail=f"/regions/sessions/{session_id}/confirm failed: {e}")
    # a confirmed dialog is done; drop the session and its decoded image
    session_store.close(session_id)
    return _result_payload(result)


# ---------- stateless ----------

@router.post("/thumbnails")
def thumbnails(req: ThumbnailsRequest, upload: bool = Query(False)):
    """Render thumbnails for already-drawn regions in one call."""
    regions = _regions(req.regions)
    source = ImageSource(req.image_url)
    if not source.load():
        raise HTTPException(status_code=422, detail=f"Failed to load image: {req.image_url}")
    try:
        result = _render(source.image, regions)
        if upload:
            result = _upload(result)
    except HTTPException:
        raise
    except Exception as e:
        console.print_exception()
        raise HTTPException(status_code=500, detail=f"/regions/thumbnails failed: {e}")
    return _result_payload(result)
