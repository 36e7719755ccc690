"""
Source image of a region-selection session.

The browser loads the picture cross-origin, so every dialog session tags the
request with its own id (and retry attempt) to keep a failed load from being
served out of cache. Here the same URL scheme is used for http(s) fetches;
`data:` URLs and local paths are read directly.
"""
from __future__ import annotations
from io import BytesIO
from pathlib import Path
from typing import Optional
import base64
import os
import time

import requests
from PIL import Image

from storyboard_app.logger import console


def cache_busted_url(url: str, session_id: int, retry_count: int = 0) -> str:
    """
    Tag *url* with the dialog session (and retry attempt) so a failed
    cross-origin load is never answered from cache.
    """
    sep = "&" if "?" in url else "?"
    out = f"{url}{sep}cors={session_id}"
    if retry_count > 0:
        out += f"&retry={retry_count}"
    return out


def _new_session_id() -> int:
    return int(time.time() * 1000)


class ImageSource:
    """Source image of a region-selection session plus its load state."""

    def __init__(self, url: str, session_id: Optional[int] = None, timeout: Optional[float] = None):
        self.url = url
        self.session_id = session_id or _new_session_id()
        self.retry_count = 0
        self.timeout = timeout or float(os.getenv("IMAGE_FETCH_TIMEOUT") or 30)
        self.image: Optional[Image.Image] = None
        self.loaded = False
        self.error = False

    @property
    def natural_size(self) -> tuple:
        if self.image is None:
            return (0, 0)
        return self.image.size

    @property
    def request_url(self) -> str:
        return cache_busted_url(self.url, self.session_id, self.retry_count)

    def load(self) -> bool:
        """Fetch and decode the image. Failures flip `error`, they are not raised."""
        try:
            data = self._read_bytes()
            im = Image.open(BytesIO(data))
            im.load()
        except (requests.RequestException, OSError, ValueError, Image.DecompressionBombError) as e:
            console.log(f"[red]Image load failed[/red] {self.url}: {e!r}")
            self.image = None
            self.loaded = False
            self.error = True
            return False

        self.image = im.convert("RGBA")
        self.loaded = True
        self.error = False
        return True

    def retry(self) -> bool:
        self.error = False
        self.retry_count += 1
        return self.load()

    def reopen(self) -> bool:
        """New dialog session: fresh cache-busting id, retry counter reset."""
        self.session_id = _new_session_id()
        self.retry_count = 0
        self.loaded = False
        self.error = False
        return self.load()

    def release(self) -> None:
        """Drop the decoded pixels; the source can be loaded again later."""
        if self.image is not None:
            self.image.close()
        self.image = None
        self.loaded = False

    def _read_bytes(self) -> bytes:
        if self.url.startswith("data:"):
            _, _, payload = self.url.partition(",")
            return base64.b64decode(payload, validate=True)
        if self.url.startswith(("http://", "https://")):
            r = requests.get(self.request_url, timeout=self.timeout)
            r.raise_for_status()
            return r.content
        p = Path(self.url.replace("\\", "/"))
        if not p.is_absolute():
            p = Path.cwd() / p
        if not p.exists():
            raise FileNotFoundError(f"Source image not found: {p}")
        return p.read_bytes()
