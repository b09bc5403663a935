"""Upload gateway — validates user images and stores them as temporary assets."""

from __future__ import annotations

import asyncio
import io
import logging
from collections.abc import Sequence

from PIL import Image, UnidentifiedImageError

from marketplace_core.assets.models import (
    STATUS_FIELD,
    UPLOADED_AT_FIELD,
    AssetRef,
    AssetStatus,
    UploadFile,
    UploadOptions,
)
from marketplace_core.assets.storage import ObjectStorageProvider
from marketplace_core.clock import Clock
from marketplace_core.errors import DimensionsExceeded, InvalidUpload, UploadTooLarge

logger = logging.getLogger(__name__)

QUALITY_GOOD = "auto:good"
QUALITY_LOW = "auto:low"


class AssetUploadGateway:
    """Accepts user-submitted images and persists them through the provider.

    Every stored asset is tagged ``status=temporary`` with an explicit
    ``uploaded_at`` timestamp; the owning business flow claims it later
    through ``AssetLifecycleManager.mark_permanent``.  Nothing reaches the
    provider until validation has passed.

    Uploads land in ``default_folder`` or one of its subfolders, the
    namespace the lifecycle manager sweeps.
    """

    def __init__(
        self,
        provider: ObjectStorageProvider,
        clock: Clock,
        *,
        max_bytes: int = 5 * 1024 * 1024,
        compress_threshold: int = 1024 * 1024,
        max_dimension: int = 5000,
        resize_bound: int = 1200,
        max_batch: int = 10,
        default_folder: str = "listings",
    ) -> None:
        self._provider = provider
        self._clock = clock
        self.max_bytes = max_bytes
        self.compress_threshold = compress_threshold
        self.max_dimension = max_dimension
        self.resize_bound = resize_bound
        self.max_batch = max_batch
        self.default_folder = default_folder

    async def upload(self, file: UploadFile, folder: str | None = None) -> AssetRef:
        """Validate and store one image; returns its public reference.

        Raises ``InvalidUpload`` (or a subclass) before any provider call,
        and ``StorageError`` if the provider fails.
        """
        target = self.folder_for(folder)
        self.validate(file)

        quality = self.quality_for(file.size)
        options = UploadOptions(
            folder=target,
            max_width=self.resize_bound,
            max_height=self.resize_bound,
            quality=quality,
            metadata={
                STATUS_FIELD: AssetStatus.TEMPORARY.value,
                UPLOADED_AT_FIELD: self._clock.now().isoformat(),
            },
        )
        result = await self._provider.upload_stream(file.data, options)
        logger.info(
            "Uploaded %s as %s (%d → %d bytes, quality %s)",
            file.filename,
            result.key,
            file.size,
            result.bytes,
            quality,
        )
        return AssetRef(key=result.key, url=result.url)

    async def upload_many(
        self, files: Sequence[UploadFile], folder: str | None = None
    ) -> list[AssetRef]:
        """Upload a batch concurrently.

        The whole batch is refused up front when it is empty or larger
        than ``max_batch``.  The first failing upload cancels the rest and
        is re-raised on its own; assets that already landed stay
        temporary for the orphan sweep.
        """
        if not files:
            raise InvalidUpload("No files provided")
        if len(files) > self.max_batch:
            raise InvalidUpload(f"Maximum {self.max_batch} images allowed")
        target = self.folder_for(folder)

        try:
            async with asyncio.TaskGroup() as group:
                tasks = [group.create_task(self.upload(file, target)) for file in files]
        except ExceptionGroup as failures:
            raise failures.exceptions[0] from failures
        return [task.result() for task in tasks]

    # ── Validation ───────────────────────────────────────

    def folder_for(self, folder: str | None) -> str:
        """Resolve *folder*, which must sit inside the swept namespace."""
        if not folder:
            return self.default_folder
        folder = folder.strip("/")
        if folder != self.default_folder and not folder.startswith(f"{self.default_folder}/"):
            raise InvalidUpload(f"Uploads must be stored under {self.default_folder}/")
        return folder

    def validate(self, file: UploadFile | None) -> None:
        if file is None or not file.data:
            raise InvalidUpload("No file provided")

        if not (file.content_type or "").lower().startswith("image/"):
            raise InvalidUpload("File must be an image")

        if file.size > self.max_bytes:
            raise UploadTooLarge(
                f"Image must be less than {self.max_bytes // (1024 * 1024)}MB"
            )

        size = self._probe_dimensions(file)
        if size is not None:
            width, height = size
            if width > self.max_dimension or height > self.max_dimension:
                raise DimensionsExceeded(
                    f"Image dimensions must not exceed "
                    f"{self.max_dimension}x{self.max_dimension} pixels"
                )

    def quality_for(self, size: int) -> str:
        """Compression tier: more aggressive above the size threshold."""
        return QUALITY_LOW if size > self.compress_threshold else QUALITY_GOOD

    def _probe_dimensions(self, file: UploadFile) -> tuple[int, int] | None:
        """Read pixel dimensions from the image header.

        Returns ``None`` when the header cannot be parsed; the provider's
        transformation pipeline decides what to do with such files.
        """
        try:
            with Image.open(io.BytesIO(file.data)) as image:
                return image.size
        except Image.DecompressionBombError as exc:
            raise DimensionsExceeded() from exc
        except (UnidentifiedImageError, OSError, ValueError) as exc:
            logger.warning("Could not read dimensions of %s: %s", file.filename, exc)
            return None
