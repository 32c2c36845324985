from __future__ import annotations

import hashlib
import logging
import time
from typing import Any, Protocol

import httpx

from classifieds.core.config import Settings
from classifieds.services.errors import UpstreamError

logger = logging.getLogger(__name__)


class ImageUploadError(UpstreamError):
    """Raised when the image host rejects or fails an upload."""


class ImageUploader(Protocol):
    async def upload(self, data: bytes, *, filename: str | None = None) -> str: ...


class CloudinaryImageUploader:
    """Signed uploads to the Cloudinary REST API; returns the durable ``secure_url``."""

    def __init__(
        self,
        *,
        cloud_name: str | None,
        api_key: str | None,
        api_secret: str | None,
        base_url: str = "https://api.cloudinary.com/v1_1",
        folder: str = "classifieds",
        max_width: int = 1000,
        timeout_seconds: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.api_secret = api_secret
        self.base_url = base_url.rstrip("/")
        self.folder = folder
        self.max_width = max_width
        self.timeout_seconds = timeout_seconds
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> CloudinaryImageUploader:
        return cls(
            cloud_name=settings.cloudinary_cloud_name,
            api_key=settings.cloudinary_api_key,
            api_secret=settings.cloudinary_api_secret,
            base_url=settings.cloudinary_upload_url,
            folder=settings.upload_folder,
            max_width=settings.upload_max_width,
            timeout_seconds=settings.upload_timeout_seconds,
        )

    @property
    def configured(self) -> bool:
        return bool(self.cloud_name and self.api_key and self.api_secret)

    async def upload(self, data: bytes, *, filename: str | None = None) -> str:
        api_secret = self.api_secret
        if not self.configured or api_secret is None:
            raise ImageUploadError("image hosting is not configured")
        if not data:
            raise ImageUploadError("cannot upload an empty image")

        params = {
            "folder": self.folder,
            "timestamp": str(int(time.time())),
            "transformation": f"c_limit,w_{self.max_width}",
        }
        form = {
            **params,
            "api_key": self.api_key,
            "signature": self._sign(params, api_secret),
        }
        files = {"file": (filename or "upload", data, "application/octet-stream")}
        url = f"{self.base_url}/{self.cloud_name}/image/upload"

        try:
            if self._client is not None:
                response = await self._client.post(url, data=form, files=files)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                    response = await client.post(url, data=form, files=files)
        except httpx.HTTPError as exc:
            logger.warning("image upload transport failure filename=%s error=%s", filename, exc)
            raise ImageUploadError("image upload failed") from exc

        if response.status_code >= 400:
            logger.warning(
                "image upload rejected filename=%s status=%s body=%s",
                filename,
                response.status_code,
                response.text[:200],
            )
            raise ImageUploadError("image upload failed")

        try:
            payload: Any = response.json()
        except ValueError as exc:
            raise ImageUploadError("image host returned an unreadable response") from exc
        secure_url = payload.get("secure_url") if isinstance(payload, dict) else None
        if not isinstance(secure_url, str) or not secure_url:
            raise ImageUploadError("image host returned no URL")
        return secure_url

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def _sign(params: dict[str, str], api_secret: str) -> str:
        to_sign = "&".join(f"{key}={params[key]}" for key in sorted(params))
        return hashlib.sha1(f"{to_sign}{api_secret}".encode("utf-8")).hexdigest()
