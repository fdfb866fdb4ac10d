"""
SkinXS diagnostic API client.

Downloads the session photos from their signed URLs and submits them as a
multipart form to the SkinXS analyze endpoint.
"""

import asyncio
from typing import Any

import httpx

from skinwellness.config.config import Settings, get_settings
from skinwellness.config.logging_config import get_logger
from skinwellness.exceptions import DiagnosticApiError
from skinwellness.models.analysis_models import PhotoUrls

logger = get_logger(__name__)


class SkinXSClient:
    """
    Client for the SkinXS analyze_images endpoint.

    The request timeout is not set here: the orchestrator bounds the whole
    call (downloads included) with its own deadline.
    """

    def __init__(
        self,
        api_url: str | None = None,
        client: httpx.AsyncClient | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.api_url = api_url or self.settings.skinxs_api_url
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=None, follow_redirects=True)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def download_photo(self, signed_url: str) -> bytes | None:
        """Fetch photo bytes; None if the download failed."""
        try:
            response = await self.client.get(signed_url)
        except httpx.HTTPError as e:
            logger.error("Error downloading photo", error=str(e))
            return None

        if not response.is_success:
            logger.error("Failed to download photo", status=response.status_code)
            return None
        return response.content

    async def _download_optional(self, signed_url: str | None) -> bytes | None:
        if not signed_url:
            return None
        return await self.download_photo(signed_url)

    async def call_diagnostic_api(
        self,
        photos: PhotoUrls,
        api_key: str,
        language: str = "en",
    ) -> dict[str, Any]:
        """
        Submit photos to SkinXS and return the decoded response body.

        Args:
            photos: Signed URLs; only the frontal photo is required.
            api_key: SkinXS key, sent as the raw Authorization header.
            language: Response language.

        Returns:
            Decoded JSON body (not validated here).

        Raises:
            DiagnosticApiError: Frontal download failed, transport error,
                non-2xx status or a body that is not JSON.
        """
        frontal = await self.download_photo(photos.frontal)
        if frontal is None:
            raise DiagnosticApiError("Failed to download frontal photo")

        left, right = await asyncio.gather(
            self._download_optional(photos.left_profile),
            self._download_optional(photos.right_profile),
        )

        files: dict[str, tuple[str, bytes, str]] = {
            "frontal_image": ("frontal.jpg", frontal, "image/jpeg"),
        }
        if left is not None:
            files["left_side_image"] = ("left_side.jpg", left, "image/jpeg")
        if right is not None:
            files["right_side_image"] = ("right_side.jpg", right, "image/jpeg")

        logger.info(
            "Calling SkinXS API",
            photo_count=len(files),
            language=language,
        )

        try:
            response = await self.client.post(
                self.api_url,
                headers={"Authorization": api_key, "Accept": "application/json"},
                data={"language": language, "main_skin_concern": ""},
                files=files,
            )
        except httpx.HTTPError as e:
            raise DiagnosticApiError(f"SkinXS API request failed: {e}") from e

        if not response.is_success:
            raise DiagnosticApiError(
                f"SkinXS API error: {response.status_code} - {response.text}",
                status=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise DiagnosticApiError("SkinXS API returned a non-JSON response", status=response.status_code) from e
