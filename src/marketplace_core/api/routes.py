"""HTTP routes — phone verification and image upload endpoints.

Endpoints
---------
POST /auth/otp/send      → issue a verification code
POST /auth/otp/verify    → check a verification code
POST /upload/image       → upload one image (temporary)
POST /upload/images      → upload up to N images (temporary)

Claiming uploads is not exposed over HTTP; the owning business flow
calls ``AssetLifecycleManager.mark_permanent`` after its own write.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, HTTPException, Request
from fastapi import UploadFile as IncomingFile
from pydantic import BaseModel

from marketplace_core.assets.models import UploadFile
from marketplace_core.bootstrap import Services
from marketplace_core.config import settings
from marketplace_core.errors import (
    MarketplaceCoreError,
    ProviderError,
    RateLimited,
    UploadError,
    VerificationError,
)
from marketplace_core.phone import normalize_phone

logger = logging.getLogger(__name__)

router = APIRouter()


def get_services(request: Request) -> Services:
    return request.app.state.services


def _http_error(exc: MarketplaceCoreError) -> HTTPException:
    """Map a core error kind to an HTTP status the client can act on."""
    if isinstance(exc, RateLimited):
        return HTTPException(
            status_code=429,
            detail=exc.detail,
            headers={"X-RateLimit-Reset": exc.reset_at.isoformat()},
        )
    if isinstance(exc, ProviderError):
        return HTTPException(status_code=502, detail=exc.detail)
    if isinstance(exc, (VerificationError, UploadError)):
        return HTTPException(status_code=400, detail=exc.detail)
    return HTTPException(status_code=500, detail=exc.detail)


# ── Request / response models ────────────────────────────

class OTPSendRequest(BaseModel):
    phone: str


class OTPSendResponse(BaseModel):
    success: bool
    message: str


class OTPVerifyRequest(BaseModel):
    phone: str
    code: str


class OTPVerifyResponse(BaseModel):
    valid: bool


class ImageResponse(BaseModel):
    url: str


class ImagesResponse(BaseModel):
    urls: list[str]


# ── Verification ─────────────────────────────────────────

@router.post("/auth/otp/send", response_model=OTPSendResponse, tags=["auth"])
async def send_otp(body: OTPSendRequest, services: Services = Depends(get_services)):
    """Send a verification code to the given phone number."""
    try:
        phone = normalize_phone(body.phone, settings.default_country_code)
        result = await services.otp.request_code(phone)
    except MarketplaceCoreError as exc:
        raise _http_error(exc) from exc

    message = (
        "Verification code sent via SMS"
        if result.channel == "sms"
        else "Verification code sent (development mode)"
    )
    return OTPSendResponse(success=True, message=message)


@router.post("/auth/otp/verify", response_model=OTPVerifyResponse, tags=["auth"])
async def verify_otp(body: OTPVerifyRequest, services: Services = Depends(get_services)):
    """Check a verification code; ``valid=false`` means try again."""
    try:
        phone = normalize_phone(body.phone, settings.default_country_code)
        valid = await services.otp.verify_code(phone, body.code.strip())
    except MarketplaceCoreError as exc:
        logger.info("OTP verification refused for %s: %s", body.phone, type(exc).__name__)
        raise _http_error(exc) from exc
    return OTPVerifyResponse(valid=valid)


# ── Uploads ──────────────────────────────────────────────

async def _read(incoming: IncomingFile) -> UploadFile:
    return UploadFile(
        filename=incoming.filename or "upload",
        content_type=incoming.content_type or "",
        data=await incoming.read(),
    )


@router.post("/upload/image", response_model=ImageResponse, tags=["upload"])
async def upload_image(
    file: IncomingFile = File(...), services: Services = Depends(get_services)
):
    """Upload one image; it stays temporary until claimed."""
    try:
        ref = await services.uploads.upload(await _read(file))
    except MarketplaceCoreError as exc:
        raise _http_error(exc) from exc
    return ImageResponse(url=ref.url)


@router.post("/upload/images", response_model=ImagesResponse, tags=["upload"])
async def upload_images(
    files: list[IncomingFile] = File(...), services: Services = Depends(get_services)
):
    """Upload a batch of images concurrently."""
    try:
        refs = await services.uploads.upload_many([await _read(f) for f in files])
    except MarketplaceCoreError as exc:
        raise _http_error(exc) from exc
    return ImagesResponse(urls=[ref.url for ref in refs])
