"""Account repository — data access layer for account lookups."""

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from phone_verify.models.account import Account


class AccountRepository:
    """Encapsulates all database queries related to accounts."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_by_phone(self, phone: str) -> Account | None:
        """Look up an active account by its phone number.

        The phone is expected in E.164 format (e.g. ``+2348100000000``).
        """
        stmt = select(Account).where(Account.phone == phone, Account.is_active.is_(True))
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_by_id(self, account_id: str) -> Account | None:
        stmt = select(Account).where(Account.id == account_id, Account.is_active.is_(True))
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def add(self, account: Account) -> Account:
        self._session.add(account)
        await self._session.flush()
        return account

    async def set_password_hash(self, account_id: str, password_hash: str) -> bool:
        """Replace the stored password hash.  Returns ``False`` if no row matched."""
        result = await self._session.execute(
            update(Account)
            .where(Account.id == account_id, Account.is_active.is_(True))
            .values(password_hash=password_hash)
        )
        return result.rowcount > 0
