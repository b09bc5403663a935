"""Service wiring — builds every core component once per process."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

from marketplace_core.assets.cloudinary import CloudinaryStorageProvider
from marketplace_core.assets.gateway import AssetUploadGateway
from marketplace_core.assets.lifecycle import AssetLifecycleManager
from marketplace_core.assets.storage import InMemoryStorageProvider, ObjectStorageProvider
from marketplace_core.clock import Clock, SystemClock
from marketplace_core.config import Settings
from marketplace_core.messaging.sender import MessageSender, OfflineSender
from marketplace_core.messaging.thinkx import ThinkXSmsSender
from marketplace_core.scheduling import CleanupScheduler, OtpHousekeeper
from marketplace_core.verification.codes import CodeGenerator
from marketplace_core.verification.rate_limiter import RateLimiter
from marketplace_core.verification.service import DeliveryMode, DeliveryPolicy, OtpService
from marketplace_core.verification.store import VerificationStore

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything the HTTP layer and the schedulers need."""

    otp: OtpService
    uploads: AssetUploadGateway
    assets: AssetLifecycleManager
    cleanup: CleanupScheduler
    housekeeper: OtpHousekeeper

    def start(self) -> None:
        self.cleanup.start()
        self.housekeeper.start()

    async def stop(self) -> None:
        await self.cleanup.stop()
        await self.housekeeper.stop()


def build_services(
    settings: Settings,
    *,
    clock: Clock | None = None,
    sender: MessageSender | None = None,
    provider: ObjectStorageProvider | None = None,
) -> Services:
    """Construct the service graph from *settings*.

    *sender* and *provider* override the settings-derived adapters,
    which is how tests inject doubles.
    """
    clock = clock or SystemClock()

    if sender is None:
        if settings.sms_configured:
            sender = ThinkXSmsSender(settings.thinkx_api_key, settings.thinkx_base_url)
        else:
            sender = OfflineSender()
    mode = DeliveryMode.CONFIGURED if sender.configured else DeliveryMode.OFFLINE
    if mode is DeliveryMode.OFFLINE and settings.is_production:
        logger.error("No SMS provider configured in production; OTP requests will be refused")

    if provider is None:
        if settings.storage_configured:
            provider = CloudinaryStorageProvider(
                settings.cloudinary_cloud_name,
                settings.cloudinary_api_key,
                settings.cloudinary_api_secret,
            )
        else:
            logger.warning("Cloudinary not configured; using in-memory asset storage")
            provider = InMemoryStorageProvider(clock)

    otp = OtpService(
        VerificationStore(clock),
        RateLimiter(
            settings.otp_max_requests_per_window,
            timedelta(seconds=settings.otp_rate_window_seconds),
            clock,
        ),
        CodeGenerator(settings.otp_code_length),
        sender,
        mode=mode,
        policy=(
            DeliveryPolicy.FALLBACK_OFFLINE
            if settings.fallback_to_offline
            else DeliveryPolicy.ROLLBACK
        ),
        ttl=timedelta(seconds=settings.otp_ttl_seconds),
        max_attempts=settings.otp_max_attempts,
        bypass_code=settings.otp_bypass_code,
        production=settings.is_production,
        app_name=settings.app_name,
    )

    uploads = AssetUploadGateway(
        provider,
        clock,
        max_bytes=settings.upload_max_bytes,
        compress_threshold=settings.upload_compress_threshold_bytes,
        max_dimension=settings.upload_max_dimension,
        resize_bound=settings.upload_resize_bound,
        max_batch=settings.upload_max_batch,
        default_folder=settings.upload_folder,
    )
    assets = AssetLifecycleManager(provider, clock, settings.upload_folder)

    return Services(
        otp=otp,
        uploads=uploads,
        assets=assets,
        cleanup=CleanupScheduler(
            assets,
            max_age_hours=settings.asset_sweep_max_age_hours,
            interval=timedelta(seconds=settings.asset_sweep_interval_seconds),
        ),
        housekeeper=OtpHousekeeper(
            otp, interval=timedelta(seconds=settings.otp_housekeeping_interval_seconds)
        ),
    )
