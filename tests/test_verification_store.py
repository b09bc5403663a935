"""Tests for the VerificationStore — expiry, attempts and supersession."""

import threading
from datetime import timedelta

import pytest

from marketplace_core.clock import FixedClock
from marketplace_core.errors import AttemptsExhausted, OtpExpired, OtpNotFound
from marketplace_core.verification.store import VerificationStore

PHONE = "+256700000001"
TTL = timedelta(minutes=10)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def store(clock):
    return VerificationStore(clock)


def test_put_creates_fresh_record(store, clock):
    record = store.put(PHONE, "123456", TTL)

    assert record.issued_at == clock.now()
    assert record.expires_at == clock.now() + TTL
    assert record.attempts_used == 0
    assert store.get(PHONE) is record


def test_matching_code_consumes_record(store):
    store.put(PHONE, "123456", TTL)

    assert store.check(PHONE, "123456", max_attempts=3) is True
    assert store.get(PHONE) is None
    with pytest.raises(OtpNotFound):
        store.check(PHONE, "123456", max_attempts=3)


def test_mismatch_keeps_record_and_counts_attempt(store):
    store.put(PHONE, "123456", TTL)

    assert store.check(PHONE, "000000", max_attempts=3) is False
    assert store.get(PHONE).attempts_used == 1


def test_exhaustion_on_the_attempt_that_uses_the_last_try(store):
    store.put(PHONE, "123456", TTL)

    assert store.check(PHONE, "000000", max_attempts=3) is False
    assert store.check(PHONE, "000000", max_attempts=3) is False
    with pytest.raises(AttemptsExhausted):
        store.check(PHONE, "000000", max_attempts=3)
    assert store.get(PHONE) is None


def test_burned_code_keeps_reporting_exhaustion_until_it_would_expire(store, clock):
    store.put(PHONE, "123456", TTL)
    for _ in range(2):
        store.check(PHONE, "000000", max_attempts=3)
    with pytest.raises(AttemptsExhausted):
        store.check(PHONE, "000000", max_attempts=3)

    # Even the right code is refused now
    with pytest.raises(AttemptsExhausted):
        store.check(PHONE, "123456", max_attempts=3)

    clock.advance(minutes=10)
    with pytest.raises(OtpNotFound):
        store.check(PHONE, "123456", max_attempts=3)


def test_new_code_clears_exhaustion(store):
    store.put(PHONE, "123456", TTL)
    for _ in range(2):
        store.check(PHONE, "000000", max_attempts=3)
    with pytest.raises(AttemptsExhausted):
        store.check(PHONE, "000000", max_attempts=3)

    store.put(PHONE, "654321", TTL)
    assert store.check(PHONE, "654321", max_attempts=3) is True


def test_expired_record_is_deleted(store, clock):
    store.put(PHONE, "123456", TTL)
    clock.advance(minutes=10)

    with pytest.raises(OtpExpired):
        store.check(PHONE, "123456", max_attempts=3)
    assert store.get(PHONE) is None


def test_put_supersedes_previous_code(store):
    store.put(PHONE, "111111", TTL)
    store.put(PHONE, "222222", TTL)

    assert store.check(PHONE, "111111", max_attempts=3) is False
    assert store.check(PHONE, "222222", max_attempts=3) is True


def test_discard_ignores_superseded_record(store):
    old = store.put(PHONE, "111111", TTL)
    store.put(PHONE, "222222", TTL)

    assert store.discard(PHONE, old) is False
    assert store.get(PHONE).code == "222222"
    assert store.discard(PHONE) is True
    assert store.pending_count == 0


def test_purge_expired(store, clock):
    store.put(PHONE, "111111", TTL)
    clock.advance(minutes=5)
    store.put("+256700000002", "222222", TTL)
    clock.advance(minutes=6)

    assert store.purge_expired() == 1
    assert store.pending_count == 1


def test_concurrent_correct_guesses_consume_the_code_once(store):
    store.put(PHONE, "482913", TTL)
    threads_count = 16
    barrier = threading.Barrier(threads_count)
    outcomes = []

    def attempt():
        barrier.wait()
        try:
            outcomes.append(store.check(PHONE, "482913", max_attempts=3))
        except OtpNotFound:
            outcomes.append(None)

    threads = [threading.Thread(target=attempt) for _ in range(threads_count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert outcomes.count(True) == 1
    assert outcomes.count(None) == threads_count - 1
