"""Exception taxonomy shared by the verification and asset cores.

Every exception carries a ``detail`` string that is safe to show to an
end user.  The HTTP layer maps each kind to a status code; nothing in
the services depends on HTTP.
"""

from __future__ import annotations

from datetime import datetime


class MarketplaceCoreError(Exception):
    """Base class for all errors raised by this package."""

    detail = "Something went wrong. Please try again."

    def __init__(self, detail: str | None = None) -> None:
        if detail is not None:
            self.detail = detail
        super().__init__(self.detail)


# ── Verification ─────────────────────────────────────────

class VerificationError(MarketplaceCoreError):
    """A phone verification request or attempt was refused."""


class InvalidIdentity(VerificationError):
    detail = "Invalid phone number format."


class RateLimited(VerificationError):
    detail = "Too many verification code requests. Please try again later."

    def __init__(self, identity: str, reset_at: datetime) -> None:
        self.identity = identity
        self.reset_at = reset_at
        super().__init__()


class DeliveryFailed(VerificationError):
    detail = "Failed to send verification code. Please try again."


class OtpNotFound(VerificationError):
    detail = "No pending verification code. Please request a new one."


class OtpExpired(VerificationError):
    detail = "Verification code has expired. Please request a new one."


class AttemptsExhausted(VerificationError):
    detail = "Too many incorrect attempts. Please request a new code."


# ── Providers ────────────────────────────────────────────

class ProviderError(MarketplaceCoreError):
    """An external provider (SMS gateway, object storage) failed."""

    detail = "An upstream service is unavailable. Please try again later."


class DeliveryError(ProviderError):
    """The SMS provider refused or failed to deliver a message."""


class StorageError(ProviderError):
    """The object-storage provider failed."""


# ── Uploads ──────────────────────────────────────────────

class UploadError(MarketplaceCoreError):
    """An upload was refused."""


class InvalidUpload(UploadError):
    detail = "Invalid upload."


class UploadTooLarge(InvalidUpload):
    detail = "Image is too large."


class DimensionsExceeded(InvalidUpload):
    detail = "Image dimensions are too large."
