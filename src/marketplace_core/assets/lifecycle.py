"""Asset lifecycle — claiming temporary uploads and reclaiming orphans."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import timedelta

from marketplace_core.assets.models import (
    STATUS_FIELD,
    AssetRef,
    AssetStatus,
    DeletionReport,
    StoredAsset,
)
from marketplace_core.assets.storage import ObjectStorageProvider
from marketplace_core.clock import Clock
from marketplace_core.errors import StorageError

logger = logging.getLogger(__name__)


class AssetLifecycleManager:
    """Moves assets from ``temporary`` to ``permanent`` and sweeps orphans.

    Both operations are idempotent and isolate per-asset failures: a
    stale reference or a failed delete is logged and skipped.
    """

    def __init__(self, provider: ObjectStorageProvider, clock: Clock, namespace: str) -> None:
        self._provider = provider
        self._clock = clock
        self.namespace = namespace

    # ── Claiming ─────────────────────────────────────────

    async def mark_permanent(self, refs: Iterable[AssetRef | str]) -> int:
        """Claim assets for a committed business entity.

        Call only after the owning entity's write has succeeded.  *refs*
        may be ``AssetRef`` objects or public URLs.  Returns how many were
        marked; claiming an already permanent asset counts as success.
        """
        claimed = 0
        for ref in refs:
            key = self._resolve(ref)
            if key is None:
                logger.warning("Cannot claim unrecognised asset reference: %s", ref)
                continue
            try:
                await self._provider.set_metadata(key, {STATUS_FIELD: AssetStatus.PERMANENT.value})
            except StorageError as exc:
                logger.warning("Failed to mark %s permanent: %s", key, exc)
                continue
            claimed += 1

        logger.info("Marked %d asset(s) permanent", claimed)
        return claimed

    # ── Deleting ─────────────────────────────────────────

    async def release(self, refs: Iterable[AssetRef | str]) -> DeletionReport:
        """Delete assets whose owning entity was deleted or replaced them."""
        report = DeletionReport()
        for ref in refs:
            key = self._resolve(ref)
            if key is None:
                report.failed += 1
                report.errors.append(f"Could not extract key from: {ref}")
                continue
            try:
                deleted = await self._provider.delete(key)
            except StorageError as exc:
                logger.warning("Failed to delete %s: %s", key, exc)
                deleted = False
            if deleted:
                report.deleted += 1
            else:
                report.failed += 1
                report.errors.append(f"Failed to delete: {key}")

        logger.info("Bulk delete: %d deleted, %d failed", report.deleted, report.failed)
        return report

    async def sweep_orphans(self, max_age_hours: float) -> int:
        """Delete temporary assets older than *max_age_hours*.

        Candidates are collected across every search page first, then
        deleted one at a time.  Returns the number actually deleted.
        Raises ``StorageError`` only when the provider cannot be searched.
        """
        cutoff = self._clock.now() - timedelta(hours=max_age_hours)
        candidates: list[StoredAsset] = []
        cursor: str | None = None
        pages = 0

        while True:
            page = await self._provider.search(self.namespace, AssetStatus.TEMPORARY, cursor)
            pages += 1
            for asset in page.items:
                # The search filter is the provider's; re-check locally
                if asset.status is not AssetStatus.TEMPORARY:
                    continue
                age_from = asset.uploaded_at or asset.created_at
                if age_from is None:
                    logger.warning("No timestamp for %s; keeping it", asset.key)
                    continue
                if age_from < cutoff:
                    candidates.append(asset)
            cursor = page.next_cursor
            if cursor is None:
                break

        logger.info(
            "Found %d orphaned asset(s) older than %sh across %d page(s)",
            len(candidates),
            max_age_hours,
            pages,
        )

        deleted = 0
        for asset in candidates:
            try:
                if await self._provider.delete(asset.key):
                    deleted += 1
                else:
                    logger.warning("Orphan %s was already gone", asset.key)
            except StorageError as exc:
                logger.error("Failed to delete orphan %s: %s", asset.key, exc)
        return deleted

    def _resolve(self, ref: AssetRef | str) -> str | None:
        if isinstance(ref, AssetRef):
            return ref.key
        return self._provider.key_for_url(ref)
