"""HTTP-level tests: status mapping, camelCase wire format, test-mode exposure."""

import asyncio
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from phone_verify.config import settings
from phone_verify.dependencies import get_otp_service, get_password_reset_service
from phone_verify.domain import DeliveryResult
from phone_verify.errors import ErrorCode, StoreError
from phone_verify.main import app
from phone_verify.services.email_service import EmailService
from phone_verify.services.issuer import OtpIssuer
from phone_verify.services.otc_state_machine import OtcSessionStateMachine
from phone_verify.services.otp_service import OtpService
from phone_verify.services.password_reset import UNKNOWN_ACCOUNT_MESSAGE, PasswordResetService
from phone_verify.services.rate_limiter import RateLimiter

from conftest import PHONE, sent_code


@pytest.fixture
def services(store, hasher, clock, tasks, dispatcher, identity):
    issuer = OtpIssuer(
        store, RateLimiter(store, clock=clock), dispatcher, hasher, test_mode=True, clock=clock
    )
    machine = OtcSessionStateMachine(store, hasher, grace_seconds=0, clock=clock, tasks=tasks)
    return (
        OtpService(issuer, machine, identity, AsyncMock(spec=EmailService), tasks),
        PasswordResetService(issuer, machine, identity),
    )


@pytest_asyncio.fixture
async def client(services):
    otp, reset = services
    app.dependency_overrides[get_otp_service] = lambda: otp
    app.dependency_overrides[get_password_reset_service] = lambda: reset
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def _send(client, **body):
    return await client.post("/otp/send", json={"phone": PHONE, **body})


# ── Health ───────────────────────────────────────────────

@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["version"] == "1.0.0"


# ── /otp/send ────────────────────────────────────────────

@pytest.mark.asyncio
async def test_send_returns_camel_case_and_no_code(client):
    resp = await _send(client, name="John Doe")
    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["messageSid"] == "SM123456789"
    assert data["expiresIn"] == 300
    assert data["message"] == "OTP sent via WhatsApp"
    assert len(data["sessionId"]) >= 8
    assert "testOtp" not in data


@pytest.mark.asyncio
async def test_send_exposes_code_in_test_mode(client, dispatcher, monkeypatch):
    monkeypatch.setattr(settings, "otp_test_mode", True)
    resp = await _send(client)
    assert resp.json()["testOtp"] == sent_code(dispatcher)


@pytest.mark.asyncio
async def test_send_invalid_phone(client):
    resp = await client.post("/otp/send", json={"phone": "08100000000"})
    assert resp.status_code == 400
    assert resp.json() == {
        "success": False,
        "code": "INVALID_PHONE_FORMAT",
        "message": "Phone number must be in E.164 format (e.g., +2348100000000)",
    }


@pytest.mark.asyncio
async def test_send_malformed_body(client):
    resp = await client.post(
        "/otp/send", content="not json", headers={"Content-Type": "application/json"}
    )
    assert resp.status_code == 400
    assert resp.json()["code"] == "MISSING_REQUIRED_FIELDS"


@pytest.mark.asyncio
async def test_send_rate_limited(client):
    for _ in range(3):
        assert (await _send(client)).status_code == 200

    resp = await _send(client)
    assert resp.status_code == 429
    data = resp.json()
    assert data["code"] == "RATE_LIMIT_EXCEEDED"
    assert 0 < data["retryAfterSeconds"] <= 900
    assert resp.headers["Retry-After"] == str(data["retryAfterSeconds"])


@pytest.mark.asyncio
async def test_send_delivery_failure(client, dispatcher):
    dispatcher.send.return_value = DeliveryResult(
        success=False, error_code=ErrorCode.DELIVERY_FAILED, message="Permission denied"
    )
    resp = await _send(client)
    assert resp.status_code == 502
    assert resp.json()["code"] == "DELIVERY_FAILED"


# ── /otp/verify ──────────────────────────────────────────

@pytest.mark.asyncio
async def test_verify_wrong_then_right(client, dispatcher):
    session_id = (await _send(client, name="John Doe")).json()["sessionId"]

    resp = await client.post(
        "/otp/verify", json={"sessionId": session_id, "otp": "000000", "phone": PHONE}
    )
    assert resp.status_code == 403
    assert resp.json()["code"] == "INVALID_OTP"
    assert resp.json()["attemptsRemaining"] == 4

    resp = await client.post(
        "/otp/verify",
        json={"sessionId": session_id, "otp": sent_code(dispatcher), "phone": PHONE},
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["newUser"] is True
    assert data["name"] == "John Doe"
    assert data["accountId"]
    assert data["credential"]
    assert "email" not in data


@pytest.mark.asyncio
async def test_verify_accepts_snake_case(client, dispatcher):
    session_id = (await _send(client)).json()["sessionId"]
    resp = await client.post(
        "/otp/verify",
        json={"session_id": session_id, "otp": sent_code(dispatcher), "phone": PHONE},
    )
    assert resp.status_code == 200


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("body", "status", "code"),
    [
        ({"otp": "123456", "phone": PHONE}, 400, "MISSING_REQUIRED_FIELDS"),
        ({"sessionId": "abcdefgh12345678", "otp": "12", "phone": PHONE}, 400, "INVALID_OTP_FORMAT"),
        ({"sessionId": "abcdefgh12345678", "otp": "123456", "phone": PHONE}, 404, "SESSION_NOT_FOUND"),
    ],
)
async def test_verify_failures(client, body, status, code):
    resp = await client.post("/otp/verify", json=body)
    assert resp.status_code == status
    assert resp.json()["code"] == code


@pytest.mark.asyncio
async def test_verify_phone_mismatch(client):
    session_id = (await _send(client)).json()["sessionId"]
    resp = await client.post(
        "/otp/verify", json={"sessionId": session_id, "otp": "123456", "phone": "+2348111111111"}
    )
    assert resp.status_code == 403
    assert resp.json()["code"] == "PHONE_MISMATCH"


# ── Upstream failures ────────────────────────────────────

@pytest.mark.asyncio
async def test_store_outage_is_internal_error(client):
    broken = AsyncMock(spec=OtpService)
    broken.verify.side_effect = StoreError("connection refused")
    app.dependency_overrides[get_otp_service] = lambda: broken

    resp = await client.post(
        "/otp/verify", json={"sessionId": "abcdefgh12345678", "otp": "123456", "phone": PHONE}
    )
    assert resp.status_code == 500
    data = resp.json()
    assert data["code"] == "INTERNAL_ERROR"
    assert "connection refused" not in data["message"]


@pytest.mark.asyncio
async def test_slow_operation_times_out(client, monkeypatch):
    async def stall(*args, **kwargs):
        await asyncio.sleep(5)

    slow = AsyncMock(spec=OtpService)
    slow.issue.side_effect = stall
    app.dependency_overrides[get_otp_service] = lambda: slow
    monkeypatch.setattr(settings, "request_timeout_seconds", 0.05)

    resp = await _send(client)
    assert resp.status_code == 504
    assert resp.json()["code"] == "TIMEOUT"


# ── /password-reset ──────────────────────────────────────

@pytest.mark.asyncio
async def test_password_reset_unknown_action(client):
    resp = await client.post("/password-reset", json={"action": "delete_everything"})
    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_ACTION"


@pytest.mark.asyncio
async def test_password_reset_unknown_phone_looks_like_success(client, dispatcher):
    resp = await client.post("/password-reset", json={"action": "request_otp", "phone": PHONE})
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "message": UNKNOWN_ACCOUNT_MESSAGE}
    dispatcher.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_password_reset_full_flow(client, dispatcher, identity):
    await identity.resolve_or_create(PHONE)

    resp = await client.post("/password-reset", json={"action": "request_otp", "phone": PHONE})
    assert resp.status_code == 200
    session_id = resp.json()["sessionId"]

    resp = await client.post(
        "/password-reset",
        json={
            "action": "reset_password",
            "sessionId": session_id,
            "otp": sent_code(dispatcher),
            "phone": PHONE,
            "newPassword": "n3w-secret",
        },
    )
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "message": "Password reset successfully"}


@pytest.mark.asyncio
async def test_password_reset_weak_password(client):
    resp = await client.post(
        "/password-reset",
        json={
            "action": "reset_password",
            "sessionId": "abcdefgh12345678",
            "otp": "123456",
            "phone": PHONE,
            "newPassword": "abc",
        },
    )
    assert resp.status_code == 400
    assert resp.json()["code"] == "WEAK_PASSWORD"
