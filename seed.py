"""Seed script — populates the database with sample accounts for testing."""

import asyncio
import uuid

from phone_verify.database.engine import async_session_factory, init_db
from phone_verify.database.repository import AccountRepository
from phone_verify.models.account import Account

SAMPLE_ACCOUNTS = [
    ("Ada Obi", "+2348100000001", "ada@example.com"),
    ("Tunde Bello", "+2348100000002", "tunde@example.com"),
    ("Chioma Eze", "+2348100000003", None),
]


async def seed() -> None:
    """Insert sample accounts that don't exist yet."""
    await init_db()
    created = 0
    async with async_session_factory() as session:
        repo = AccountRepository(session)
        for name, phone, email in SAMPLE_ACCOUNTS:
            if await repo.find_by_phone(phone):
                continue
            await repo.add(Account(id=uuid.uuid4().hex, name=name, phone=phone, email=email))
            created += 1
        await session.commit()
    print(f"✅ Seeded {created} accounts into the database.")


if __name__ == "__main__":
    asyncio.run(seed())
