"""Object-storage provider interface and the in-memory backend."""

from __future__ import annotations

import logging
import uuid
from typing import Protocol

from marketplace_core.assets.models import (
    STATUS_FIELD,
    AssetStatus,
    SearchPage,
    StoredAsset,
    UploadOptions,
    UploadResult,
)
from marketplace_core.clock import Clock
from marketplace_core.errors import StorageError

logger = logging.getLogger(__name__)


class ObjectStorageProvider(Protocol):
    """What the asset core needs from an object store.

    Asset lifecycle state lives in the provider's own per-object
    metadata; nothing is cached locally.  Every method raises
    ``StorageError`` when the provider cannot be reached.
    """

    async def upload_stream(self, data: bytes, options: UploadOptions) -> UploadResult: ...

    async def set_metadata(self, key: str, fields: dict[str, str]) -> None: ...

    async def delete(self, key: str) -> bool: ...

    async def search(
        self, namespace: str, status: AssetStatus, cursor: str | None = None
    ) -> SearchPage: ...

    def key_for_url(self, url: str) -> str | None: ...


class InMemoryStorageProvider:
    """Process-local object store for offline development and tests.

    Cursors are opaque offsets into a snapshot ordered by key.
    """

    URL_PREFIX = "memory://assets/"

    def __init__(self, clock: Clock, page_size: int = 50) -> None:
        self._clock = clock
        self.page_size = page_size
        self._objects: dict[str, StoredAsset] = {}
        self._payloads: dict[str, bytes] = {}

    async def upload_stream(self, data: bytes, options: UploadOptions) -> UploadResult:
        key = f"{options.folder}/{uuid.uuid4().hex}"
        url = f"{self.URL_PREFIX}{key}"
        self._objects[key] = StoredAsset(
            key=key,
            url=url,
            created_at=self._clock.now(),
            metadata=dict(options.metadata),
        )
        self._payloads[key] = data
        logger.info("Stored %s in memory (%d bytes)", key, len(data))
        return UploadResult(key=key, url=url, bytes=len(data))

    async def set_metadata(self, key: str, fields: dict[str, str]) -> None:
        asset = self._objects.get(key)
        if asset is None:
            raise StorageError(f"Asset not found: {key}")
        asset.metadata.update(fields)

    async def delete(self, key: str) -> bool:
        self._payloads.pop(key, None)
        return self._objects.pop(key, None) is not None

    async def search(
        self, namespace: str, status: AssetStatus, cursor: str | None = None
    ) -> SearchPage:
        matches = [
            asset
            for key, asset in sorted(self._objects.items())
            if key.startswith(f"{namespace}/")
            and asset.metadata.get(STATUS_FIELD) == status.value
        ]
        start = int(cursor) if cursor else 0
        end = start + self.page_size
        next_cursor = str(end) if end < len(matches) else None
        return SearchPage(items=matches[start:end], next_cursor=next_cursor)

    def key_for_url(self, url: str) -> str | None:
        if not url or not url.startswith(self.URL_PREFIX):
            return None
        return url[len(self.URL_PREFIX):]

    # ── Introspection ────────────────────────────────────

    def get(self, key: str) -> StoredAsset | None:
        return self._objects.get(key)

    def __len__(self) -> int:
        return len(self._objects)
