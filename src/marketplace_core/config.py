"""Marketplace core — configuration loaded from environment."""

from pydantic_settings import BaseSettings

_PLACEHOLDER_PREFIX = "your_"


class Settings(BaseSettings):
    """Application-wide settings, loaded from .env or environment variables."""

    # ── App ───────────────────────────────────────────────
    app_name: str = "Tekka"
    environment: str = "development"
    debug: bool = True
    host: str = "127.0.0.1"
    port: int = 8000

    # ── OTP verification ──────────────────────────────────
    otp_code_length: int = 6
    otp_ttl_seconds: int = 600
    otp_max_attempts: int = 3
    otp_max_requests_per_window: int = 5
    otp_rate_window_seconds: int = 3600
    otp_housekeeping_interval_seconds: int = 300
    # Accepted in place of a real code outside production only
    otp_bypass_code: str = ""
    # None → fall back to offline delivery everywhere except production
    otp_fallback_to_offline: bool | None = None
    default_country_code: str = "256"

    # ── ThinkX Cloud SMS ──────────────────────────────────
    thinkx_api_key: str = ""
    thinkx_base_url: str = "https://sms.thinkxcloud.com/api"

    # ── Cloudinary ────────────────────────────────────────
    cloudinary_cloud_name: str = ""
    cloudinary_api_key: str = ""
    cloudinary_api_secret: str = ""

    # ── Uploads ───────────────────────────────────────────
    upload_folder: str = "listings"
    upload_max_bytes: int = 5 * 1024 * 1024
    upload_compress_threshold_bytes: int = 1024 * 1024
    upload_max_dimension: int = 5000
    upload_resize_bound: int = 1200
    upload_max_batch: int = 10

    # ── Orphan sweep ──────────────────────────────────────
    asset_sweep_max_age_hours: int = 24
    asset_sweep_interval_seconds: int = 24 * 60 * 60

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def sms_configured(self) -> bool:
        """True when a real ThinkX API key (not the sample placeholder) is set."""
        key = self.thinkx_api_key.strip()
        return bool(key) and not key.startswith(_PLACEHOLDER_PREFIX)

    @property
    def storage_configured(self) -> bool:
        return all(
            value and not value.startswith(_PLACEHOLDER_PREFIX)
            for value in (
                self.cloudinary_cloud_name,
                self.cloudinary_api_key,
                self.cloudinary_api_secret,
            )
        )

    @property
    def fallback_to_offline(self) -> bool:
        if self.otp_fallback_to_offline is None:
            return not self.is_production
        return self.otp_fallback_to_offline


# Singleton settings instance
settings = Settings()
