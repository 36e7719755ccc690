from __future__ import annotations
from dataclasses import dataclass
from typing import Optional
import os

import requests

from storyboard_app.logger import console

KIE_FILE_UPLOAD_URL = "https://kieai.redpandaai.co/api/file-stream-upload"
REGION_UPLOAD_PATH = "cropped-regions"


class KieUploadError(Exception):
    pass


@dataclass
class UploadedFile:
    file_url: str
    file_name: str
    original_name: str


class KieUploader:
    def __init__(self, api_key: Optional[str] = None, upload_url: Optional[str] = None, timeout: int = 60):
        self.api_key = (api_key or os.getenv("KIE_API_KEY") or "").strip()
        self.upload_url = upload_url or os.getenv("KIE_UPLOAD_URL") or KIE_FILE_UPLOAD_URL
        self.session = requests.Session()
        self.timeout = timeout

    def upload_buffer(self, buffer: bytes, file_name: str, upload_path: str = REGION_UPLOAD_PATH) -> UploadedFile:
        """Stream-upload *buffer* and return where KIE stored it."""
        if not self.api_key:
            raise KieUploadError("KIE_API_KEY is not set in environment")

        try:
            r = self.session.post(
                self.upload_url,
                headers={"Authorization": f"Bearer {self.api_key}"},
                files={"file": (file_name, buffer)},
                data={"uploadPath": upload_path, "fileName": file_name},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise KieUploadError(f"Failed to upload buffer to KIE: {e}") from e

        if not r.ok:
            raise KieUploadError(f"Failed to upload buffer to KIE: {r.status_code} {r.text}")

        try:
            result = r.json()
        except ValueError as e:
            raise KieUploadError(f"KIE upload returned invalid JSON: {e}") from e
        if not isinstance(result, dict):
            raise KieUploadError(f"KIE upload returned unexpected body: {result!r}")
        if not result.get("success") or result.get("code") != 200:
            raise KieUploadError(f"KIE upload failed: {result.get('msg') or 'Unknown error'}")

        data = result.get("data")
        if not isinstance(data, dict):
            data = {}
        file_url = data.get("fileUrl") or data.get("downloadUrl")
        if not file_url:
            raise KieUploadError(f"KIE upload returned no file URL for {file_name}")

        uploaded = UploadedFile(
            file_url=file_url,
            file_name=data.get("fileName") or file_name,
            original_name=file_name,
        )
        console.log(f"[green]Uploaded[/green] {file_name} -> {uploaded.file_url}")
        return uploaded
