"""OTP service — issues and verifies phone verification codes.

Flow
----
1. ``request_code`` checks the per-identity rate limit before doing any
   work, generates a code, stores it (superseding any pending code) and
   hands it to the message sender.
2. ``verify_code`` evaluates one attempt against the pending record.

Delivery behaviour is fixed at construction time:

* ``DeliveryMode.OFFLINE`` never calls a provider; the code is logged.
  In production an offline service refuses every request instead.
* ``DeliveryMode.CONFIGURED`` sends through the provider.  On a provider
  failure the ``DeliveryPolicy`` decides: ``ROLLBACK`` deletes the
  stored code and raises ``DeliveryFailed``; ``FALLBACK_OFFLINE`` keeps
  the code, logs it and reports the offline channel (never in production)."""

from __future__ import annotations

import enum
import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from marketplace_core.errors import DeliveryFailed, InvalidIdentity, ProviderError
from marketplace_core.messaging.sender import MessageSender
from marketplace_core.phone import is_normalized
from marketplace_core.verification.codes import CodeGenerator
from marketplace_core.verification.rate_limiter import RateLimiter
from marketplace_core.verification.store import VerificationStore

logger = logging.getLogger(__name__)


class DeliveryMode(enum.Enum):
    CONFIGURED = "configured"
    OFFLINE = "offline"


class DeliveryPolicy(enum.Enum):
    ROLLBACK = "rollback"
    FALLBACK_OFFLINE = "fallback_offline"


@dataclass
class OtpRequestResult:
    """Outcome of a successful ``request_code`` call."""

    channel: str
    expires_at: datetime
    reference: str | None = None


class OtpService:
    """Orchestrates code generation, throttling, storage and delivery."""

    def __init__(
        self,
        store: VerificationStore,
        rate_limiter: RateLimiter,
        generator: CodeGenerator,
        sender: MessageSender,
        *,
        mode: DeliveryMode,
        policy: DeliveryPolicy = DeliveryPolicy.ROLLBACK,
        ttl: timedelta = timedelta(minutes=10),
        max_attempts: int = 3,
        bypass_code: str | None = None,
        production: bool = False,
        app_name: str = "Tekka",
    ) -> None:
        self._store = store
        self._rate_limiter = rate_limiter
        self._generator = generator
        self._sender = sender
        self.mode = mode
        self.policy = policy
        self.ttl = ttl
        self.max_attempts = max_attempts
        self._app_name = app_name
        self._production = production

        if production and policy is DeliveryPolicy.FALLBACK_OFFLINE:
            logger.warning("Offline delivery fallback is ignored in production")
            self.policy = DeliveryPolicy.ROLLBACK

        self._bypass_code = bypass_code or None
        if self._bypass_code and production:
            logger.warning("OTP bypass code is configured but ignored in production")
            self._bypass_code = None
        elif self._bypass_code:
            logger.warning("OTP bypass code is ENABLED; never deploy this configuration")

        logger.info(
            "OTP service initialised (mode=%s, policy=%s, ttl=%ss, max_attempts=%d)",
            mode.value,
            self.policy.value,
            int(ttl.total_seconds()),
            max_attempts,
        )

    @property
    def bypass_enabled(self) -> bool:
        return self._bypass_code is not None

    # ── Issuing ──────────────────────────────────────────

    async def request_code(self, identity: str) -> OtpRequestResult:
        """Issue a new code for *identity* and deliver it.

        Raises ``InvalidIdentity``, ``RateLimited`` or ``DeliveryFailed``.
        """
        if not is_normalized(identity):
            raise InvalidIdentity()

        self._rate_limiter.check(identity)

        if self.mode is DeliveryMode.OFFLINE and self._production:
            logger.error("SMS service is not configured; refusing OTP request for %s", identity)
            raise DeliveryFailed("SMS service is not configured")

        code = self._generator.generate()
        record = self._store.put(identity, code, self.ttl)
        logger.info("Initiating OTP delivery to %s", identity)

        if self.mode is DeliveryMode.OFFLINE:
            self._log_offline_code(identity, code, record.expires_at)
            return OtpRequestResult(channel="offline", expires_at=record.expires_at)

        try:
            receipt = await self._sender.send(identity, self.build_message(code))
        except ProviderError as exc:
            logger.error("SMS delivery failed for %s: %s", identity, exc)
            if self.policy is DeliveryPolicy.FALLBACK_OFFLINE:
                self._log_offline_code(identity, code, record.expires_at)
                return OtpRequestResult(channel="offline", expires_at=record.expires_at)
            self._store.discard(identity, record)
            raise DeliveryFailed() from exc
        except Exception:
            self._store.discard(identity, record)
            raise

        logger.info("OTP delivered to %s via %s", identity, receipt.channel)
        return OtpRequestResult(
            channel=receipt.channel,
            expires_at=record.expires_at,
            reference=receipt.reference,
        )

    def build_message(self, code: str) -> str:
        minutes = max(int(self.ttl.total_seconds() // 60), 1)
        return (
            f"Your {self._app_name} verification code is: {code}. "
            f"This code expires in {minutes} minutes. "
            "Do not share this code with anyone."
        )

    # ── Verifying ────────────────────────────────────────

    async def verify_code(self, identity: str, code: str) -> bool:
        """Check *code* for *identity*.

        Returns ``True`` on success and ``False`` for a wrong code with
        attempts left.  Raises ``OtpNotFound``, ``OtpExpired`` or
        ``AttemptsExhausted`` for terminal failures.
        """
        if not is_normalized(identity):
            raise InvalidIdentity()

        if self._bypass_code and hmac.compare_digest(self._bypass_code.encode(), code.encode()):
            logger.warning("[DEV] Accepting bypass OTP code for %s", identity)
            self._store.discard(identity)
            return True

        valid = self._store.check(identity, code, self.max_attempts)
        if valid:
            logger.info("OTP verified for %s", identity)
        return valid

    # ── Housekeeping ─────────────────────────────────────

    def purge_expired(self) -> tuple[int, int]:
        """Drop expired codes and reset rate-limit windows.

        Returns ``(codes_removed, windows_removed)``.
        """
        codes = self._store.purge_expired()
        windows = self._rate_limiter.purge_expired()
        if codes or windows:
            logger.info(
                "OTP cleanup: removed %d expired codes, %d expired rate limits",
                codes,
                windows,
            )
        return codes, windows

    @staticmethod
    def _log_offline_code(identity: str, code: str, expires_at: datetime) -> None:
        logger.warning(
            "[OFFLINE] OTP %s for %s (expires at %s)",
            code,
            identity,
            expires_at.isoformat(),
        )
