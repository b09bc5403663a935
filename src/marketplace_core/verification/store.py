"""In-memory pending-code store with expiry and bounded attempts."""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from marketplace_core.clock import Clock
from marketplace_core.errors import AttemptsExhausted, OtpExpired, OtpNotFound
from marketplace_core.verification.locks import KeyedLocks

logger = logging.getLogger(__name__)


@dataclass
class OtpRecord:
    """One pending verification challenge."""

    identity: str
    code: str
    issued_at: datetime
    expires_at: datetime
    attempts_used: int = 0

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class VerificationStore:
    """Holds at most one pending ``OtpRecord`` per identity.

    Expiry is lazy: a stale record is deleted when it is next touched
    or by :meth:`purge_expired`.  Records are consumed, never reset; a
    successful check, expiry or exhaustion removes them.

    When a record is burned by exhaustion, the identity keeps answering
    ``AttemptsExhausted`` (rather than ``OtpNotFound``) until the burned
    code would have expired or a new code is issued.
    """

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._records: dict[str, OtpRecord] = {}
        self._exhausted: dict[str, datetime] = {}
        self._locks = KeyedLocks()

    def put(self, identity: str, code: str, ttl: timedelta) -> OtpRecord:
        """Store a fresh record, superseding any pending one."""
        now = self._clock.now()
        record = OtpRecord(
            identity=identity, code=code, issued_at=now, expires_at=now + ttl
        )
        with self._locks(identity):
            self._records[identity] = record
            self._exhausted.pop(identity, None)
        return record

    def get(self, identity: str) -> OtpRecord | None:
        return self._records.get(identity)

    def discard(self, identity: str, record: OtpRecord | None = None) -> bool:
        """Delete the pending record for *identity*.

        With *record*, only delete if it is still the current one, so a
        rollback never removes a newer code.
        """
        with self._locks(identity):
            current = self._records.get(identity)
            if current is None or (record is not None and current is not record):
                return False
            del self._records[identity]
            return True

    def check(self, identity: str, code: str, max_attempts: int) -> bool:
        """Evaluate one verification attempt.

        Returns ``True`` on a match (record consumed) and ``False`` on a
        mismatch with attempts left.  Raises ``OtpNotFound``,
        ``OtpExpired`` or ``AttemptsExhausted`` for the terminal cases.
        """
        with self._locks(identity):
            now = self._clock.now()
            record = self._records.get(identity)

            if record is None:
                burned_until = self._exhausted.get(identity)
                if burned_until is not None:
                    if now < burned_until:
                        raise AttemptsExhausted()
                    del self._exhausted[identity]
                raise OtpNotFound()

            if record.is_expired(now):
                del self._records[identity]
                logger.info("OTP expired for %s", identity)
                raise OtpExpired()

            record.attempts_used += 1

            if hmac.compare_digest(record.code.encode(), code.encode()):
                del self._records[identity]
                return True

            if record.attempts_used >= max_attempts:
                del self._records[identity]
                self._exhausted[identity] = record.expires_at
                logger.warning(
                    "Max verification attempts reached for %s (%d/%d)",
                    identity,
                    record.attempts_used,
                    max_attempts,
                )
                raise AttemptsExhausted()

            logger.info(
                "Invalid OTP for %s. Attempt %d/%d",
                identity,
                record.attempts_used,
                max_attempts,
            )
            return False

    def purge_expired(self) -> int:
        """Remove expired records and stale exhaustion markers."""
        now = self._clock.now()
        removed = 0
        for identity in list(self._records):
            with self._locks(identity):
                record = self._records.get(identity)
                if record is not None and record.is_expired(now):
                    del self._records[identity]
                    removed += 1
        for identity in list(self._exhausted):
            with self._locks(identity):
                until = self._exhausted.get(identity)
                if until is not None and now >= until:
                    del self._exhausted[identity]
        return removed

    @property
    def pending_count(self) -> int:
        return len(self._records)
