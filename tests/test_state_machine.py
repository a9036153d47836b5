"""Tests for the OTP session state machine, one group per transition rule."""

from datetime import timedelta

import pytest
import pytest_asyncio

from phone_verify.domain import Channel, OtpSessionRecord, Purpose
from phone_verify.errors import ErrorCode, Failure
from phone_verify.services.otc_state_machine import OtcSessionStateMachine

from conftest import OTHER_PHONE, PHONE

CODE = "123456"
SESSION_ID = "test_session_01"


@pytest.fixture
def machine(store, hasher, clock, tasks):
    return OtcSessionStateMachine(
        store, hasher, max_attempts=5, grace_seconds=0, clock=clock, tasks=tasks
    )


@pytest_asyncio.fixture
async def issued(store, hasher, clock):
    """A fresh signup session for PHONE whose code is CODE."""
    now = clock()
    record = OtpSessionRecord(
        id=SESSION_ID,
        purpose=Purpose.SIGNUP,
        phone=PHONE,
        code_hash=hasher.hash(CODE),
        channel=Channel.WHATSAPP,
        created_at=now,
        expires_at=now + timedelta(minutes=5),
        payload={"name": "John Doe", "email": "john@example.com"},
    )
    await store.create(record)
    return record


# ── Rule 1: missing session ──────────────────────────────
@pytest.mark.asyncio
async def test_unknown_session(machine):
    outcome = await machine.verify("never_issued_1", CODE, PHONE)
    assert isinstance(outcome, Failure)
    assert outcome.code == ErrorCode.SESSION_NOT_FOUND


@pytest.mark.asyncio
async def test_session_of_other_purpose_is_not_found(machine, issued):
    outcome = await machine.verify(SESSION_ID, CODE, PHONE, Purpose.PASSWORD_RESET)
    assert outcome.code == ErrorCode.SESSION_NOT_FOUND


# ── Rule 2: phone binding ────────────────────────────────
@pytest.mark.asyncio
async def test_phone_mismatch_leaves_session_untouched(machine, store, issued):
    outcome = await machine.verify(SESSION_ID, "000000", OTHER_PHONE)
    assert outcome.code == ErrorCode.PHONE_MISMATCH

    record = await store.get_by_id(SESSION_ID)
    assert record.attempts == 0
    assert record.used is False


# ── Rule 3: single use ───────────────────────────────────
@pytest.mark.asyncio
async def test_used_session_is_refused_even_with_correct_code(machine, store, issued):
    await store.update_fields(SESSION_ID, used=True)
    outcome = await machine.verify(SESSION_ID, CODE, PHONE)
    assert outcome.code == ErrorCode.OTP_ALREADY_USED


# ── Rule 4: expiry ───────────────────────────────────────
@pytest.mark.asyncio
async def test_expired_session_is_deleted(machine, store, clock, issued):
    clock.advance(minutes=5, seconds=1)
    outcome = await machine.verify(SESSION_ID, CODE, PHONE)
    assert outcome.code == ErrorCode.EXPIRED_OTP
    assert await store.get_by_id(SESSION_ID) is None


@pytest.mark.asyncio
async def test_exactly_at_expiry_is_still_valid(machine, clock, issued):
    clock.advance(minutes=5)
    outcome = await machine.verify(SESSION_ID, CODE, PHONE)
    assert not isinstance(outcome, Failure)


@pytest.mark.asyncio
async def test_used_is_checked_before_expiry(machine, store, clock, issued):
    # A consumed session reports reuse even once its TTL has passed.
    await store.update_fields(SESSION_ID, used=True)
    clock.advance(minutes=10)
    outcome = await machine.verify(SESSION_ID, CODE, PHONE)
    assert outcome.code == ErrorCode.OTP_ALREADY_USED


# ── Rule 5: attempt limit ────────────────────────────────
@pytest.mark.asyncio
async def test_locked_session_refuses_correct_code_and_is_deleted(machine, store, issued):
    await store.update_fields(SESSION_ID, attempts=5)
    outcome = await machine.verify(SESSION_ID, CODE, PHONE)
    assert outcome.code == ErrorCode.MAX_ATTEMPTS_EXCEEDED
    assert await store.get_by_id(SESSION_ID) is None


# ── Rule 6: wrong code ───────────────────────────────────
@pytest.mark.asyncio
async def test_wrong_code_increments_attempts(machine, store, issued):
    await store.update_fields(SESSION_ID, attempts=2)
    outcome = await machine.verify(SESSION_ID, "999999", PHONE)
    assert outcome.code == ErrorCode.INVALID_OTP
    assert outcome.attempts_remaining == 2
    assert outcome.message == "Incorrect OTP. 2 attempts remaining."
    assert (await store.get_by_id(SESSION_ID)).attempts == 3


@pytest.mark.asyncio
async def test_last_wrong_code_then_locked(machine, store, issued):
    await store.update_fields(SESSION_ID, attempts=4)
    outcome = await machine.verify(SESSION_ID, "999999", PHONE)
    assert outcome.attempts_remaining == 0

    outcome = await machine.verify(SESSION_ID, CODE, PHONE)
    assert outcome.code == ErrorCode.MAX_ATTEMPTS_EXCEEDED


# ── Rule 7: success ──────────────────────────────────────
@pytest.mark.asyncio
async def test_success_marks_used_then_deletes_after_grace(machine, store, tasks, issued):
    outcome = await machine.verify(SESSION_ID, CODE, PHONE)
    assert isinstance(outcome, OtpSessionRecord)
    assert outcome.used is True
    assert outcome.name == "John Doe"

    await tasks.drain()
    assert await store.get_by_id(SESSION_ID) is None


@pytest.mark.asyncio
async def test_session_survives_during_grace_delay(store, hasher, clock, tasks, issued):
    machine = OtcSessionStateMachine(
        store, hasher, grace_seconds=0.2, clock=clock, tasks=tasks
    )
    assert not isinstance(await machine.verify(SESSION_ID, CODE, PHONE), Failure)

    record = await store.get_by_id(SESSION_ID)
    assert record is not None and record.used is True

    again = await machine.verify(SESSION_ID, CODE, PHONE)
    assert again.code == ErrorCode.OTP_ALREADY_USED

    await tasks.drain()
    assert await store.get_by_id(SESSION_ID) is None


@pytest.mark.asyncio
async def test_deferred_consume_keeps_session_live(machine, store, tasks, issued):
    outcome = await machine.verify(SESSION_ID, CODE, PHONE, consume=False)
    assert isinstance(outcome, OtpSessionRecord)
    assert outcome.used is False
    assert (await store.get_by_id(SESSION_ID)).used is False

    consumed = await machine.consume(outcome)
    assert consumed.used is True
    again = await machine.verify(SESSION_ID, CODE, PHONE)
    assert isinstance(again, Failure)

    await tasks.drain()
    assert await store.get_by_id(SESSION_ID) is None
