"""Process-wide service wiring.

Services are built once by :func:`init_services` at application startup
and handed to request handlers through FastAPI dependencies.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from phone_verify.config import Settings, settings as default_settings
from phone_verify.database.session_store import SqlSessionStore
from phone_verify.services.background import background_tasks
from phone_verify.services.codes import CodeHasher
from phone_verify.services.dispatcher import DeliveryDispatcher, TwilioDispatcher
from phone_verify.services.email_service import EmailService
from phone_verify.services.identity import LocalIdentityProvider
from phone_verify.services.issuer import OtpIssuer
from phone_verify.services.otc_state_machine import OtcSessionStateMachine
from phone_verify.services.otp_service import OtpService
from phone_verify.services.password_reset import PasswordResetService
from phone_verify.services.rate_limiter import RateLimiter


@dataclass(frozen=True)
class Services:
    otp: OtpService
    password_reset: PasswordResetService


_services: Services | None = None


def build_services(
    session_factory: async_sessionmaker[AsyncSession],
    config: Settings = default_settings,
    dispatcher: DeliveryDispatcher | None = None,
) -> Services:
    """Assemble the object graph from *config*."""
    store = SqlSessionStore(session_factory)
    hasher = CodeHasher(rounds=config.bcrypt_rounds)
    rate_limiter = RateLimiter(
        store,
        max_sessions=config.otp_rate_limit_max_sessions,
        window_seconds=config.otp_rate_limit_window_seconds,
    )
    issuer = OtpIssuer(
        store,
        rate_limiter,
        dispatcher or TwilioDispatcher(),
        hasher,
        ttl_seconds=config.otp_ttl_seconds,
        test_mode=config.otp_test_mode,
    )
    state_machine = OtcSessionStateMachine(
        store,
        hasher,
        max_attempts=config.otp_max_attempts,
        grace_seconds=config.otp_cleanup_grace_seconds,
        tasks=background_tasks,
    )
    identity = LocalIdentityProvider(
        session_factory,
        hasher,
        secret=config.jwt_secret,
        algorithm=config.jwt_algorithm,
        ttl_seconds=config.credential_ttl_seconds,
    )
    return Services(
        otp=OtpService(issuer, state_machine, identity, EmailService(config), background_tasks),
        password_reset=PasswordResetService(
            issuer,
            state_machine,
            identity,
            password_min_length=config.password_min_length,
        ),
    )


def init_services(session_factory: async_sessionmaker[AsyncSession]) -> Services:
    """Build the shared services once; later calls return the same graph."""
    global _services
    if _services is None:
        _services = build_services(session_factory)
    return _services


def _require_services() -> Services:
    if _services is None:
        raise RuntimeError("Services are not initialised; call init_services() at startup")
    return _services


def get_otp_service() -> OtpService:
    return _require_services().otp


def get_password_reset_service() -> PasswordResetService:
    return _require_services().password_reset
