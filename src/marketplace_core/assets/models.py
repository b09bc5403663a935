"""Value objects for uploaded assets and the storage provider contract."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

STATUS_FIELD = "status"
UPLOADED_AT_FIELD = "uploaded_at"


class AssetStatus(str, enum.Enum):
    TEMPORARY = "temporary"
    PERMANENT = "permanent"


@dataclass(frozen=True)
class AssetRef:
    """Stable handle to a stored asset: provider key plus public URL."""

    key: str
    url: str


@dataclass
class UploadFile:
    """A user-submitted binary as received from the HTTP layer."""

    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class UploadOptions:
    """How the provider should store and transform one upload."""

    folder: str
    max_width: int
    max_height: int
    quality: str
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class UploadResult:
    key: str
    url: str
    bytes: int


@dataclass
class StoredAsset:
    """An asset as reported by the provider's search."""

    key: str
    url: str
    created_at: datetime | None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def status(self) -> AssetStatus | None:
        try:
            return AssetStatus(self.metadata.get(STATUS_FIELD))
        except ValueError:
            return None

    @property
    def uploaded_at(self) -> datetime | None:
        """Explicit upload timestamp from metadata, if present and parseable."""
        raw = self.metadata.get(UPLOADED_AT_FIELD)
        if not raw:
            return None
        try:
            parsed = datetime.fromisoformat(str(raw))
        except ValueError:
            return None
        # Naive timestamps are written in UTC
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)

    def ref(self) -> AssetRef:
        return AssetRef(key=self.key, url=self.url)


@dataclass
class SearchPage:
    items: list[StoredAsset]
    next_cursor: str | None = None


@dataclass
class DeletionReport:
    """Aggregate outcome of a batch deletion."""

    deleted: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)
