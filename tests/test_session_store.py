import itertools

import pytest

from storyboard_app.services.image_source import ImageSource
from storyboard_app.services.region_selector import RegionSelectorSession
from storyboard_app.services.session_store import SessionNotFound, SessionStore


def make_session(sid):
    return RegionSelectorSession(ImageSource("unused.png", session_id=1), session_id=sid)


def test_add_get_close():
    store = SessionStore()
    s = make_session("a")
    assert store.add(s) == "a"
    assert store.get("a") is s
    assert store.close("a")
    assert not store.close("a")
    with pytest.raises(SessionNotFound):
        store.get("a")


def test_recent_orders_by_last_touch(monkeypatch):
    from storyboard_app.services import session_store as mod

    clock = itertools.count(1.0)
    monkeypatch.setattr(mod.time, "time", lambda: next(clock))

    store = SessionStore()
    store.add(make_session("a"))  # t=1
    store.add(make_session("b"))  # t=2
    store.get("a")                # t=3

    assert [s.id for s in store.recent()] == ["a", "b"]
    assert [s.id for s in store.recent(limit=1)] == ["a"]


def test_idle_sessions_expire_on_add(monkeypatch):
    from storyboard_app.services import session_store as mod

    now = [0.0]
    monkeypatch.setattr(mod.time, "time", lambda: now[0])

    store = SessionStore(ttl=60, max_sessions=10)
    store.add(make_session("old"))
    now[0] = 30.0
    store.add(make_session("fresh"))
    now[0] = 75.0
    store.add(make_session("new"))

    assert sorted(store.sessions) == ["fresh", "new"]


def test_oldest_session_is_evicted_past_the_cap(monkeypatch):
    from storyboard_app.services import session_store as mod

    clock = itertools.count(1.0)
    monkeypatch.setattr(mod.time, "time", lambda: next(clock))

    store = SessionStore(ttl=3600, max_sessions=2)
    store.add(make_session("a"))
    store.add(make_session("b"))
    store.get("a")  # b is now the least recently touched
    store.add(make_session("c"))

    assert sorted(store.sessions) == ["a", "c"]


def test_close_releases_the_decoded_image(image_path):
    source = ImageSource(str(image_path), session_id=1)
    assert source.load()
    store = SessionStore()
    store.add(RegionSelectorSession(source, session_id="s"))

    store.close("s")

    assert source.image is None
    assert not source.loaded
