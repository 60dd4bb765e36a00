import logging
from pathlib import Path
from typing import Optional, Tuple
from urllib.parse import quote

import requests

from stagingpro.config import Settings, get_settings
from stagingpro.utils.images import InvalidImageData, decode_data_url

logger = logging.getLogger(__name__)


class UploadError(Exception):
    """A blob could not be stored. Nothing was written for the caller to reference."""


class MediaStore:
    """Stores data-URL encoded blobs and returns their public URL.

    With `UPLOAD_ENDPOINT` set, the blob is posted as `{path, file}` to that
    endpoint, which answers `{url}` or `{message}`. Otherwise files are written
    below `MEDIA_ROOT` and served by `/api/media`.
    """

    def __init__(self, settings: Optional[Settings] = None, timeout: int = 30):
        self.settings = settings or get_settings()
        self.root = Path(self.settings.media_root)
        self.timeout = timeout

    def _safe_path(self, path: str) -> Path:
        cleaned = (path or "").strip().lstrip("/")
        if not cleaned or ".." in Path(cleaned).parts:
            raise UploadError(f"invalid storage path: {path!r}")
        return self.root / cleaned

    def public_url(self, path: str) -> str:
        path = path.lstrip("/")
        if self.settings.public_media_base:
            return f"{self.settings.public_media_base}/{path}"
        return f"{self.settings.public_base_url}/api/media?path={quote(path)}"

    def upload(self, path: str, data_url: str) -> str:
        if not path or not data_url:
            raise UploadError("Path and File are required.")
        if self.settings.upload_endpoint:
            return self._upload_remote(path, data_url)
        return self._upload_local(path, data_url)

    def _upload_remote(self, path: str, data_url: str) -> str:
        try:
            resp = requests.post(self.settings.upload_endpoint, json={"path": path, "file": data_url}, timeout=self.timeout)
        except requests.RequestException as e:
            logger.exception("Upload of %s failed: %s", path, e)
            raise UploadError(str(e))
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not resp.ok or not body.get("url"):
            message = body.get("message") or f"upload endpoint returned {resp.status_code}"
            logger.error("Upload of %s rejected: %s", path, message)
            raise UploadError(message)
        logger.info("Uploaded %s via remote endpoint", path)
        return body["url"]

    def _upload_local(self, path: str, data_url: str) -> str:
        target = self._safe_path(path)
        try:
            content, mime = decode_data_url(data_url)
        except InvalidImageData as e:
            raise UploadError(str(e))
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
        except OSError as e:
            logger.exception("Writing %s failed: %s", target, e)
            raise UploadError(str(e))
        logger.info("Stored %s (%s, %d bytes)", path, mime, len(content))
        return self.public_url(path)

    def open(self, path: str) -> Tuple[bytes, str]:
        """Return (content, content type) of a stored blob. Raises FileNotFoundError."""
        target = self._safe_path(path)
        if not target.is_file():
            raise FileNotFoundError(path)
        suffix = target.suffix.lower()
        content_type = {
            ".png": "image/png",
            ".webp": "image/webp",
            ".gif": "image/gif",
        }.get(suffix, "image/jpeg")
        return target.read_bytes(), content_type
