"""Image uploads to a Cloudinary-style hosting service."""
import logging
from typing import Optional

import requests

import config

logger = logging.getLogger(__name__)


class UploadError(RuntimeError):
    pass


class MediaUploader:
    """Uploads raw image bytes and returns the hosted URL."""

    def __init__(self, cloud_name: str = "", upload_preset: str = "", timeout: float = 30):
        self.cloud_name = cloud_name
        self.upload_preset = upload_preset
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.cloud_name and self.upload_preset)

    def upload(self, content: bytes, filename: str, folder: str) -> str:
        if not self.configured:
            raise UploadError("Image upload not configured in this environment")
        url = f"https://api.cloudinary.com/v1_1/{self.cloud_name}/image/upload"
        try:
            resp = requests.post(
                url,
                data={"upload_preset": self.upload_preset, "folder": folder},
                files={"file": (filename, content)},
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.error("Upload of %s to %s failed: %s", filename, folder, e)
            raise UploadError(f"Image upload failed: {e}") from e
        secure_url: Optional[str] = resp.json().get("secure_url")
        if not secure_url:
            raise UploadError("Upload service returned no URL")
        logger.info("Uploaded %s to %s", filename, folder)
        return secure_url


def default_uploader() -> MediaUploader:
    return MediaUploader(config.CLOUDINARY_CLOUD_NAME, config.CLOUDINARY_UPLOAD_PRESET, config.UPLOAD_TIMEOUT)
