"""Identity provider — maps verified phone numbers to accounts and credentials."""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from datetime import timedelta

import jwt
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from phone_verify.config import settings
from phone_verify.database.repository import AccountRepository
from phone_verify.domain import Clock, ResolvedAccount, utcnow
from phone_verify.errors import IdentityError
from phone_verify.models.account import Account
from phone_verify.services.codes import CodeHasher
from phone_verify.services.masking import mask_phone

logger = logging.getLogger(__name__)


class IdentityProvider(ABC):
    """What the verification flows need from an account system."""

    @abstractmethod
    async def resolve_or_create(
        self, phone: str, *, name: str | None = None, email: str | None = None
    ) -> ResolvedAccount:
        """Return the account for *phone*, creating it if needed."""

    @abstractmethod
    async def mint_credential(self, account_id: str) -> str:
        """Issue a signed session credential for *account_id*."""

    @abstractmethod
    async def find_by_phone(self, phone: str) -> str | None:
        """Return the id of the active account for *phone*, if any."""

    @abstractmethod
    async def set_password(self, account_id: str, new_password: str) -> bool:
        """Replace the account password.  ``False`` if the account is gone."""


class LocalIdentityProvider(IdentityProvider):
    """Accounts in the local database, credentials as HS256 JWTs."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        hasher: CodeHasher,
        *,
        secret: str | None = None,
        algorithm: str | None = None,
        ttl_seconds: int | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._hasher = hasher
        self._secret = secret if secret is not None else settings.jwt_secret
        self._algorithm = algorithm or settings.jwt_algorithm
        self._ttl = timedelta(seconds=ttl_seconds or settings.credential_ttl_seconds)
        self._clock = clock

    async def resolve_or_create(
        self, phone: str, *, name: str | None = None, email: str | None = None
    ) -> ResolvedAccount:
        try:
            async with self._session_factory() as session:
                repo = AccountRepository(session)
                existing = await repo.find_by_phone(phone)
                if existing is not None:
                    return ResolvedAccount(existed=True, account_id=existing.id)

                account = await repo.add(
                    Account(id=uuid.uuid4().hex, phone=phone, name=name, email=email)
                )
                await session.commit()
        except IntegrityError:
            # Another request created the account between our read and write.
            logger.info("Account for %s created concurrently, re-reading", mask_phone(phone))
            account_id = await self.find_by_phone(phone)
            if account_id is None:
                raise IdentityError("Account creation conflicted but no account was found")
            return ResolvedAccount(existed=True, account_id=account_id)
        except SQLAlchemyError as exc:
            raise IdentityError("Could not resolve account") from exc

        logger.info("New account created for %s", mask_phone(phone))
        return ResolvedAccount(existed=False, account_id=account.id)

    async def mint_credential(self, account_id: str) -> str:
        if not self._secret:
            raise IdentityError("Credential signing secret is not configured")
        now = self._clock()
        payload = {
            "sub": account_id,
            "type": "access",
            "iat": int(now.timestamp()),
            "exp": int((now + self._ttl).timestamp()),
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    async def find_by_phone(self, phone: str) -> str | None:
        try:
            async with self._session_factory() as session:
                account = await AccountRepository(session).find_by_phone(phone)
        except SQLAlchemyError as exc:
            raise IdentityError("Could not look up account") from exc
        return account.id if account is not None else None

    async def set_password(self, account_id: str, new_password: str) -> bool:
        password_hash = await self._hasher.hash_async(new_password)
        try:
            async with self._session_factory() as session:
                updated = await AccountRepository(session).set_password_hash(
                    account_id, password_hash
                )
                await session.commit()
        except SQLAlchemyError as exc:
            raise IdentityError("Could not update password") from exc
        return updated
