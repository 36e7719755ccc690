import pytest
from PIL import Image

from storyboard_app.services.session_store import session_store


def make_gradient(width: int, height: int) -> Image.Image:
    """RGBA test image whose pixel at (x, y) encodes its own position."""
    im = Image.new("RGBA", (width, height))
    im.putdata([
        (x * 255 // max(1, width - 1), y * 255 // max(1, height - 1), 128, 255)
        for y in range(height)
        for x in range(width)
    ])
    return im


@pytest.fixture
def gradient_image() -> Image.Image:
    return make_gradient(200, 160)


@pytest.fixture
def image_path(tmp_path, gradient_image):
    path = tmp_path / "source.png"
    gradient_image.save(path)
    return path


@pytest.fixture
def client():
    from fastapi.testclient import TestClient
    from storyboard_app.main import app

    session_store.clear()
    with TestClient(app) as c:
        yield c
    session_store.clear()
