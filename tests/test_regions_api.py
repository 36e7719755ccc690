"""API tests for the /regions router."""

import requests

from storyboard_app.routers import regions as regions_router
from storyboard_app.services.kie_upload import KieUploadError, UploadedFile


def open_session(client, image_path, **extra):
    payload = {"image_url": str(image_path), "container_width": 400, "container_height": 400}
    payload.update(extra)
    r = client.post("/regions/sessions", json=payload)
    assert r.status_code == 200, r.text
    return r.json()


def draw_rect(client, sid, start, end):
    for event, (x, y) in (("down", start), ("move", end), ("up", end)):
        r = client.post(f"/regions/sessions/{sid}/pointer", json={"event": event, "x": x, "y": y})
        assert r.status_code == 200, r.text
    return r.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


def test_open_session_loads_image_and_lays_out_canvas(client, image_path):
    snap = open_session(client, image_path)
    assert snap["image"]["loaded"] is True
    assert snap["canvas"] == {"width": 400, "height": 320}
    assert snap["state"] == "idle"


def test_open_session_with_initial_regions(client, image_path):
    initial = [{"id": "r0", "type": "rect", "rect": {"x": 0.1, "y": 0.1, "width": 0.2, "height": 0.2}}]
    snap = open_session(client, image_path, initial_regions=initial)
    assert [r["id"] for r in snap["regions"]] == ["r0"]
    assert snap["regions"][0]["rect"]["id"] == "r0"


def test_rect_region_without_rect_is_rejected(client, image_path):
    r = client.post("/regions/sessions", json={
        "image_url": str(image_path),
        "initial_regions": [{"id": "r0", "type": "rect"}],
    })
    assert r.status_code == 422


def test_unknown_session_is_404(client):
    assert client.get("/regions/sessions/nope").status_code == 404
    assert client.post("/regions/sessions/nope/undo").status_code == 404


def test_draw_undo_and_confirm(client, image_path):
    sid = open_session(client, image_path)["session_id"]

    snap = draw_rect(client, sid, (40, 32), (120, 96))
    assert len(snap["regions"]) == 1
    assert snap["state"] == "selected"

    draw_rect(client, sid, (200, 200), (300, 300))
    snap = client.post(f"/regions/sessions/{sid}/undo").json()
    assert len(snap["regions"]) == 1

    r = client.post(f"/regions/sessions/{sid}/confirm")
    assert r.status_code == 200
    body = r.json()
    assert body["failed"] == 0
    assert body["regions"][0]["thumbnailUrl"].startswith("data:image/png;base64,")


def test_brush_mode_and_save(client, image_path):
    sid = open_session(client, image_path)["session_id"]
    snap = client.post(f"/regions/sessions/{sid}/mode", json={"mode": "brush", "brush_size": 30}).json()
    assert snap["mode"] == "brush"
    assert snap["brush_size"] == 30

    snap = draw_rect(client, sid, (100, 100), (200, 120))
    assert snap["pending_strokes"] == 1

    snap = client.post(f"/regions/sessions/{sid}/brush/save").json()
    assert snap["pending_strokes"] == 0
    assert snap["regions"][0]["type"] == "brush"
    assert snap["regions"][0]["brushStrokes"][0]["normalizedSize"] == 30 / 400


def test_select_and_delete(client, image_path):
    sid = open_session(client, image_path)["session_id"]
    rid = draw_rect(client, sid, (40, 32), (120, 96))["regions"][0]["id"]

    snap = client.post(f"/regions/sessions/{sid}/select", json={"region_id": rid}).json()
    assert snap["selected_region_id"] is None
    snap = client.post(f"/regions/sessions/{sid}/select", json={"region_id": rid}).json()
    assert snap["selected_region_id"] == rid
    assert client.post(f"/regions/sessions/{sid}/select", json={"region_id": "zzz"}).status_code == 404

    snap = client.delete(f"/regions/sessions/{sid}/selected").json()
    assert snap["regions"] == []


def test_confirm_without_image_is_conflict(client, tmp_path):
    snap = client.post("/regions/sessions", json={"image_url": str(tmp_path / "missing.png")}).json()
    assert snap["image"]["error"] is True

    r = client.post(f"/regions/sessions/{snap['session_id']}/confirm")
    assert r.status_code == 409

    snap = client.post(f"/regions/sessions/{snap['session_id']}/image/retry").json()
    assert snap["image"]["retry_count"] == 1
    assert "retry=1" in snap["image"]["request_url"]


def test_confirm_all_failing_is_422(client, image_path):
    # a rect sitting on the bottom-right edge crops to nothing
    edge = [{"id": "e", "type": "rect", "rect": {"x": 1.0, "y": 1.0, "width": 0.5, "height": 0.5}}]
    sid = open_session(client, image_path, initial_regions=edge)["session_id"]

    r = client.post(f"/regions/sessions/{sid}/confirm")
    assert r.status_code == 422
    assert "retry loading the image" in r.json()["detail"]


def test_layout_endpoint(client, image_path):
    sid = open_session(client, image_path)["session_id"]
    snap = client.post(f"/regions/sessions/{sid}/layout", json={"container_width": 100, "container_height": 40}).json()
    assert snap["canvas"] == {"width": 50, "height": 40}


def test_close_and_list_sessions(client, image_path):
    sid = open_session(client, image_path)["session_id"]
    assert [s["session_id"] for s in client.get("/regions/sessions").json()] == [sid]
    assert client.delete(f"/regions/sessions/{sid}").status_code == 200
    assert client.delete(f"/regions/sessions/{sid}").status_code == 404


def test_stateless_thumbnails(client, image_path):
    r = client.post("/regions/thumbnails", json={
        "image_url": str(image_path),
        "regions": [
            {"id": "a", "type": "rect", "rect": {"x": 0.0, "y": 0.0, "width": 0.5, "height": 0.5}},
            {"id": "b", "type": "rect", "rect": {"x": 1.0, "y": 1.0, "width": 0.5, "height": 0.5}},
        ],
    })
    assert r.status_code == 200
    body = r.json()
    assert [reg["id"] for reg in body["regions"]] == ["a"]
    assert body["failed"] == 1


def test_stateless_thumbnails_bad_image(client, tmp_path):
    r = client.post("/regions/thumbnails", json={"image_url": str(tmp_path / "x.png"), "regions": []})
    assert r.status_code == 422


class _FakeUploader:
    def __init__(self, fail=False):
        self.fail = fail
        self.names = []

    def upload_buffer(self, buffer, file_name, upload_path="cropped-regions"):
        if self.fail:
            raise KieUploadError("KIE upload failed: quota")
        assert buffer[:4] == b"\x89PNG"
        self.names.append(file_name)
        return UploadedFile(file_url=f"https://files.kie/{file_name}", file_name=file_name, original_name=file_name)


def test_confirm_with_upload_replaces_data_urls(client, image_path, monkeypatch):
    fake = _FakeUploader()
    monkeypatch.setattr(regions_router, "KieUploader", lambda: fake)
    sid = open_session(client, image_path)["session_id"]
    rid = draw_rect(client, sid, (40, 32), (120, 96))["regions"][0]["id"]

    body = client.post(f"/regions/sessions/{sid}/confirm", params={"upload": "true"}).json()

    assert body["regions"][0]["thumbnailUrl"] == f"https://files.kie/{rid}.png"
    assert fake.names == [f"{rid}.png"]


def test_upload_failure_is_bad_gateway(client, image_path, monkeypatch):
    monkeypatch.setattr(regions_router, "KieUploader", lambda: _FakeUploader(fail=True))
    r = client.post("/regions/thumbnails", params={"upload": "true"}, json={
        "image_url": str(image_path),
        "regions": [{"id": "a", "type": "rect", "rect": {"x": 0.0, "y": 0.0, "width": 0.5, "height": 0.5}}],
    })
    assert r.status_code == 502
    assert "quota" in r.json()["detail"]


def test_confirm_closes_the_session(client, image_path):
    sid = open_session(client, image_path)["session_id"]
    draw_rect(client, sid, (40, 32), (120, 96))

    assert client.post(f"/regions/sessions/{sid}/confirm").status_code == 200
    assert client.get(f"/regions/sessions/{sid}").status_code == 404


def test_confirm_upload_with_non_json_reply_is_bad_gateway(client, image_path, monkeypatch):
    class _HtmlReply:
        ok = True
        status_code = 200
        text = "<html>gateway</html>"

        def json(self):
            raise ValueError("not json")

    monkeypatch.setenv("KIE_API_KEY", "secret")
    monkeypatch.setattr(requests.Session, "post", lambda self, *a, **kw: _HtmlReply())
    sid = open_session(client, image_path)["session_id"]
    draw_rect(client, sid, (40, 32), (120, 96))

    r = client.post(f"/regions/sessions/{sid}/confirm", params={"upload": "true"})

    assert r.status_code == 502
    assert "invalid JSON" in r.json()["detail"]
    # a failed upload leaves the session open for another try
    assert client.get(f"/regions/sessions/{sid}").status_code == 200
