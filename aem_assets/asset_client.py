# ============================================================================
# aem_assets/asset_client.py
# ============================================================================
# Async client for the AEM Assets HTTP API.
#
# Paths are accepted either as DAM paths (/content/dam/folder/file.jpg) or as
# API paths (/folder/file.jpg); listing and metadata responses go through the
# normalizers so callers always receive canonical records.
#
# Configuration comes from an explicit Settings value:
#   - settings.aem_host (base URL of every request)
#   - settings.access_token / settings.api_key / settings.ims_org (headers)
#   - settings.api_timeout (default per-request timeout, seconds)
#   - settings.max_upload_size (upload guard, bytes)
#   - settings.download_path (default target of download_to_directory)
# ============================================================================

from __future__ import annotations

import asyncio
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from .config import Settings
from .errors import (
    AemAssetsError,
    ApiError,
    RequestCancelledError,
    ValidationError,
)
from .models import (
    DAM_ROOT,
    AccessToken,
    AssetListing,
    CanonicalMetadataSchema,
    ConnectionTestResult,
    DownloadResult,
    UploadResult,
)
from .normalization import normalize_asset_list, normalize_metadata_response, normalize_metadata_schema
from .transport import HttpTransport

RENDITIONS = {
    "original": "renditions/original",
    "web": "renditions/cq5dam.web.1280.1280.jpeg",
    "thumbnail": "renditions/cq5dam.thumbnail.140.100.png",
}


def to_api_path(path: str) -> str:
    """``/content/dam/folder`` -> ``/folder``; the DAM root itself maps to ``""``."""
    if not path:
        return ""
    converted = re.sub(r"^/content/dam/?", "/", path)
    return re.sub(r"^/+", "/", converted).rstrip("/")


def to_dam_path(path: str) -> str:
    """Ensure ``path`` is rooted at the DAM root."""
    if path.startswith(DAM_ROOT):
        return path
    return f"{DAM_ROOT}{'' if path.startswith('/') else '/'}{path}"


class AssetClient:
    """
    Async client for listing, reading, editing, uploading and downloading assets.

    Every request method accepts ``timeout`` (seconds) and ``cancel_event``
    (asyncio.Event); see HttpTransport for the error mapping.
    """

    def __init__(
        self,
        settings: Settings,
        access_token: Optional[AccessToken | str] = None,
        transport: Optional[HttpTransport] = None,
    ) -> None:
        if not settings.aem_host and transport is None:
            raise ValidationError("AssetClient requires a host. Set AEM_HOST or settings.aem_host")

        self._logger = logging.getLogger("aem_assets.assets")
        self.settings = settings
        self.base_url = settings.aem_host.rstrip("/")
        if isinstance(access_token, AccessToken):
            access_token = access_token.value
        self.access_token = access_token or settings.access_token
        self._owns_transport = transport is None
        self._transport = transport or HttpTransport(
            base_url=self.base_url,
            timeout=settings.api_timeout,
            verify=settings.verify_ssl,
        )

    async def aclose(self) -> None:
        if self._owns_transport:
            await self._transport.aclose()

    async def __aenter__(self) -> "AssetClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # =========================================================================
    # REQUEST HELPERS
    # =========================================================================

    def headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "x-api-key": self.settings.api_key,
            "x-gw-ims-org-id": self.settings.ims_org,
        }
        if extra:
            headers.update(extra)
        return headers

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        response = await self._transport.request(
            method,
            endpoint,
            headers=self.headers(headers),
            timeout=timeout,
            cancel_event=cancel_event,
            **kwargs,
        )
        if not response.is_success:
            self._logger.warning(f"{method} {endpoint} -> HTTP {response.status_code}")
            raise ApiError(
                f"API request failed: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
                body=response.text,
            )
        return response

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        content_type = response.headers.get("content-type", "")
        if "json" in content_type or "javascript" in content_type:
            try:
                return response.json()
            except json.JSONDecodeError as exc:
                raise ApiError(
                    "API returned malformed JSON",
                    status_code=response.status_code,
                    body=response.text,
                ) from exc
        return response.text

    async def _request_json(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        response = await self._request(method, endpoint, **kwargs)
        return self._decode(response)

    # =========================================================================
    # LISTING & SEARCH
    # =========================================================================

    async def list_assets(
        self,
        path: str = DAM_ROOT,
        *,
        limit: int = 20,
        offset: int = 0,
        order_by: str = "name",
        order_direction: str = "asc",
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AssetListing:
        """List a folder and normalize the response."""
        params = {
            "limit": str(limit),
            "offset": str(offset),
            "orderby": order_by,
            "orderby.sort": order_direction,
        }
        payload = await self._request_json(
            "GET",
            f"/api/assets{to_api_path(path)}.json",
            params=params,
            timeout=timeout,
            cancel_event=cancel_event,
        )
        return normalize_asset_list(payload)

    async def search_assets(
        self,
        text: Optional[str] = None,
        path: Optional[str] = None,
        type: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AssetListing:
        params: Dict[str, str] = {}
        if text:
            params["fulltext"] = text
        if path:
            params["path"] = path
        if type:
            params["type"] = type
        payload = await self._request_json(
            "GET", "/api/assets.json", params=params, timeout=timeout, cancel_event=cancel_event
        )
        return normalize_asset_list(payload)

    async def test_connection(self, *, timeout: Optional[float] = None) -> ConnectionTestResult:
        """List the DAM root with limit=1; failures are reported, not raised."""
        try:
            await self.list_assets(DAM_ROOT, limit=1, timeout=timeout)
        except AemAssetsError as exc:
            return ConnectionTestResult(success=False, message=str(exc))
        return ConnectionTestResult(success=True, message="Connection successful")

    # =========================================================================
    # METADATA
    # =========================================================================

    async def get_metadata(
        self,
        path: str,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Dict[str, Any]:
        payload = await self._request_json(
            "GET", f"/api/assets{to_api_path(path)}.json", timeout=timeout, cancel_event=cancel_event
        )
        return normalize_metadata_response(payload)

    async def get_metadata_schema(
        self,
        path: str,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> CanonicalMetadataSchema:
        """Read every property of ``jcr:content/metadata`` (infinity depth)."""
        payload = await self._request_json(
            "GET",
            f"{to_dam_path(path)}/jcr:content/metadata.infinity.json",
            timeout=timeout,
            cancel_event=cancel_event,
        )
        return normalize_metadata_schema(payload)

    async def update_metadata(
        self,
        path: str,
        metadata: Dict[str, Any],
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Any:
        self._logger.info(f"Updating {len(metadata)} metadata field(s) on {path}")
        return await self._request_json(
            "PUT",
            f"/api/assets{to_api_path(path)}",
            json={"class": "asset", "properties": metadata},
            headers={"Content-Type": "application/json"},
            timeout=timeout,
            cancel_event=cancel_event,
        )

    # =========================================================================
    # FOLDER & ASSET OPERATIONS
    # =========================================================================

    async def create_folder(
        self,
        path: str,
        title: str,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Any:
        name = path.rstrip("/").split("/")[-1]
        return await self._request_json(
            "POST",
            f"/api/assets{to_api_path(path)}",
            json={"class": "folder", "properties": {"jcr:title": title, "name": name}},
            timeout=timeout,
            cancel_event=cancel_event,
        )

    async def delete_asset(
        self,
        path: str,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> bool:
        await self._request("DELETE", f"/api/assets{to_api_path(path)}", timeout=timeout, cancel_event=cancel_event)
        self._logger.info(f"Deleted {path}")
        return True

    async def copy_asset(
        self,
        source_path: str,
        destination_path: str,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Any:
        return await self._request_json(
            "COPY",
            f"/api/assets{to_api_path(source_path)}",
            headers={"X-Destination": destination_path},
            timeout=timeout,
            cancel_event=cancel_event,
        )

    async def move_asset(
        self,
        source_path: str,
        destination_path: str,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Any:
        return await self._request_json(
            "MOVE",
            f"/api/assets{to_api_path(source_path)}",
            headers={"X-Destination": destination_path},
            timeout=timeout,
            cancel_event=cancel_event,
        )

    # =========================================================================
    # UPLOAD & DOWNLOAD
    # =========================================================================

    async def upload_asset(
        self,
        filename: str,
        content: bytes,
        destination_path: Optional[str] = None,
        content_type: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> UploadResult:
        """PUT the binary into ``destination_path`` (defaults to settings.upload_path)."""
        destination = (destination_path or self.settings.upload_path).rstrip("/")
        if len(content) > self.settings.max_upload_size:
            raise ValidationError(
                f"{filename} is {len(content)} bytes; the upload limit is {self.settings.max_upload_size} bytes"
            )

        endpoint = f"/api/assets{to_api_path(destination)}/{quote(filename)}"
        response = await self._request(
            "PUT",
            endpoint,
            content=content,
            headers={"Content-Type": content_type or "application/octet-stream"},
            timeout=timeout,
            cancel_event=cancel_event,
        )
        try:
            body = response.json()
        except json.JSONDecodeError:
            body = None
        self._logger.info(f"Uploaded {filename} to {destination} (HTTP {response.status_code})")
        return UploadResult(path=f"{destination}/{filename}", status_code=response.status_code, response=body)

    def rendition_url(self, path: str, rendition: str = "original") -> str:
        try:
            suffix = RENDITIONS[rendition]
        except KeyError as exc:
            raise ValidationError(
                f"Unknown rendition '{rendition}' (expected one of: {', '.join(RENDITIONS)})"
            ) from exc
        return f"/api/assets{to_api_path(path)}/{suffix}"

    async def download_asset(
        self,
        path: str,
        rendition: str = "original",
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> bytes:
        response = await self._request(
            "GET",
            self.rendition_url(path, rendition),
            follow_redirects=True,
            timeout=timeout,
            cancel_event=cancel_event,
        )
        return response.content

    async def download_to_directory(
        self,
        path: str,
        rendition: str = "original",
        directory: Optional[str | Path] = None,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> DownloadResult:
        """
        Stream a rendition into ``directory`` (defaults to settings.download_path).

        The file is named after the last segment of the asset path. Redirects
        to the binary store are followed. ``timeout`` bounds the whole
        download and ``cancel_event`` aborts it even while the server stalls
        mid-body; a partial file is removed on any failure.
        """
        target_dir = Path(directory or self.settings.download_path)
        target_dir.mkdir(parents=True, exist_ok=True)
        filename = path.rstrip("/").split("/")[-1]
        destination = target_dir / filename

        if cancel_event is not None and cancel_event.is_set():
            raise RequestCancelledError(f"Download of {path} cancelled before it was sent")

        request = self._transport.build_request(
            "GET", self.rendition_url(path, rendition), headers=self.headers(), timeout=timeout
        )
        try:
            size = await self._transport.guard(
                request,
                self._stream_to_file(request, destination),
                timeout=timeout,
                cancel_event=cancel_event,
            )
        except (AemAssetsError, OSError, asyncio.CancelledError):
            destination.unlink(missing_ok=True)
            raise

        self._logger.info(f"Saved {destination} ({size} bytes)")
        return DownloadResult(filename=filename, path=str(destination), size=size)

    async def _stream_to_file(self, request: httpx.Request, destination: Path) -> int:
        response = await self._transport.client.send(request, stream=True, follow_redirects=True)
        try:
            if not response.is_success:
                body = (await response.aread()).decode("utf-8", errors="replace")
                raise ApiError(
                    f"Download failed: {response.status_code}",
                    status_code=response.status_code,
                    body=body,
                )
            size = 0
            with open(destination, "wb") as handle:
                async for chunk in response.aiter_bytes():
                    handle.write(chunk)
                    size += len(chunk)
            return size
        finally:
            await response.aclose()
