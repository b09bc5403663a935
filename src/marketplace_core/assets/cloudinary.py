"""Cloudinary — async HTTP adapter implementing ``ObjectStorageProvider``.

Uses the REST upload API (signed requests) for upload / context /
destroy, and the Admin search API (basic auth) to find assets by their
``status`` context value.  Lifecycle metadata is stored as Cloudinary
contextual metadata, so no local database is needed.
"""

from __future__ import annotations

import hashlib
import logging
import re
import time
from datetime import datetime

import httpx

from marketplace_core.assets.models import (
    AssetStatus,
    SearchPage,
    StoredAsset,
    UploadOptions,
    UploadResult,
)
from marketplace_core.errors import StorageError

logger = logging.getLogger(__name__)

API_BASE_URL = "https://api.cloudinary.com/v1_1"
SEARCH_PAGE_SIZE = 100

# https://res.cloudinary.com/{cloud}/image/upload/v{version}/{folder}/{id}.{ext}
_VERSIONED_PATH = re.compile(r"/upload/v\d+/(.+)\.\w+$")
_PLAIN_PATH = re.compile(r"/upload/(.+)\.\w+$")


def sign(params: dict[str, object], api_secret: str) -> str:
    """Cloudinary request signature: SHA-1 of sorted ``k=v`` pairs + secret."""
    payload = "&".join(
        f"{key}={value}" for key, value in sorted(params.items()) if value not in (None, "")
    )
    return hashlib.sha1(f"{payload}{api_secret}".encode()).hexdigest()


def encode_context(fields: dict[str, str]) -> str:
    """Encode metadata as Cloudinary context (``k=v|k=v``, with ``=``/``|`` escaped)."""

    def escape(value: str) -> str:
        return str(value).replace("=", r"\=").replace("|", r"\|")

    return "|".join(f"{key}={escape(value)}" for key, value in fields.items())


class CloudinaryStorageProvider:
    """Async wrapper around the Cloudinary image endpoints."""

    def __init__(
        self,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 60.0,
    ) -> None:
        self._cloud_name = cloud_name
        self._api_key = api_key
        self._api_secret = api_secret
        self._client = client
        self._timeout = timeout
        self._base_url = f"{API_BASE_URL}/{cloud_name}"

    # ── ObjectStorageProvider ────────────────────────────

    async def upload_stream(self, data: bytes, options: UploadOptions) -> UploadResult:
        limit = f"c_limit,h_{options.max_height},w_{options.max_width}"
        params = {
            "folder": options.folder,
            "context": encode_context(options.metadata),
            "transformation": f"{limit}/q_{options.quality}",
            "eager": f"{limit},q_{options.quality},f_auto",
        }
        result = await self._signed_post(
            "/image/upload", params, files={"file": ("upload", data)}
        )
        try:
            uploaded = UploadResult(
                key=result["public_id"],
                url=result["secure_url"],
                bytes=int(result.get("bytes", len(data))),
            )
        except KeyError as exc:
            raise StorageError("Upload response missing fields") from exc

        logger.info("Image uploaded: %s (%d bytes)", uploaded.key, uploaded.bytes)
        return uploaded

    async def set_metadata(self, key: str, fields: dict[str, str]) -> None:
        params = {"command": "add", "context": encode_context(fields), "public_ids": key}
        result = await self._signed_post("/image/context", params)
        if key not in result.get("public_ids", []):
            raise StorageError(f"Asset not found: {key}")

    async def delete(self, key: str) -> bool:
        result = await self._signed_post("/image/destroy", {"public_id": key, "invalidate": "true"})
        success = result.get("result") == "ok"
        logger.info("Cloudinary delete %s: %s", key, "success" if success else "not found")
        return success

    async def search(
        self, namespace: str, status: AssetStatus, cursor: str | None = None
    ) -> SearchPage:
        body: dict[str, object] = {
            "expression": (
                f'(folder="{namespace}" OR folder:"{namespace}/*") '
                f"AND context.status={status.value}"
            ),
            "max_results": SEARCH_PAGE_SIZE,
            "with_field": ["context"],
        }
        if cursor:
            body["next_cursor"] = cursor

        url = f"{self._base_url}/resources/search"
        try:
            resp = await self._request(
                "POST", url, json=body, auth=(self._api_key, self._api_secret)
            )
        except httpx.HTTPError as exc:
            logger.exception("Cloudinary search request error: %s", exc)
            raise StorageError("Storage provider unreachable") from exc
        data = self._parse(resp, "search")

        items = [self._to_asset(resource) for resource in data.get("resources", [])]
        return SearchPage(items=items, next_cursor=data.get("next_cursor") or None)

    def key_for_url(self, url: str) -> str | None:
        """Extract the public ID (folder/name, no extension) from a delivery URL."""
        if not url or "cloudinary.com" not in url:
            return None
        clean = url.split("?")[0]
        match = _VERSIONED_PATH.search(clean) or _PLAIN_PATH.search(clean)
        return match.group(1) if match else None

    # ── Private helpers ──────────────────────────────────

    async def _signed_post(
        self, path: str, params: dict[str, object], files: dict | None = None
    ) -> dict:
        params = {**params, "timestamp": int(time.time())}
        form = {
            **{key: str(value) for key, value in params.items()},
            "api_key": self._api_key,
            "signature": sign(params, self._api_secret),
        }
        try:
            resp = await self._request("POST", f"{self._base_url}{path}", data=form, files=files)
        except httpx.HTTPError as exc:
            logger.exception("Cloudinary request error on %s: %s", path, exc)
            raise StorageError("Storage provider unreachable") from exc
        return self._parse(resp, path)

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        if self._client is not None:
            return await self._client.request(method, url, **kwargs)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.request(method, url, **kwargs)

    @staticmethod
    def _parse(resp: httpx.Response, operation: str) -> dict:
        if resp.status_code >= 400:
            logger.error("Cloudinary %s failed: %s %s", operation, resp.status_code, resp.text)
            raise StorageError(f"Storage provider returned HTTP {resp.status_code}")
        try:
            return resp.json()
        except ValueError as exc:
            raise StorageError("Storage provider returned malformed response") from exc

    @staticmethod
    def _to_asset(resource: dict) -> StoredAsset:
        context = resource.get("context") or {}
        # The search API flattens context; the resource API nests it
        metadata = context.get("custom", context)

        created_at = None
        if raw := resource.get("created_at"):
            try:
                created_at = datetime.fromisoformat(raw.replace("Z", "+00:00"))
            except ValueError:
                logger.warning("Unparseable created_at for %s: %r", resource.get("public_id"), raw)

        return StoredAsset(
            key=resource["public_id"],
            url=resource.get("secure_url", ""),
            created_at=created_at,
            metadata=dict(metadata),
        )
