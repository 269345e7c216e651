from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.coin_ledger_entries import CoinLedgerEntry


class CoinLedgerRepo:
    @staticmethod
    async def get_by_idempotency_key(
        session: AsyncSession,
        idempotency_key: str,
    ) -> CoinLedgerEntry | None:
        stmt = select(CoinLedgerEntry).where(CoinLedgerEntry.idempotency_key == idempotency_key)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(session: AsyncSession, *, entry: CoinLedgerEntry) -> CoinLedgerEntry:
        session.add(entry)
        await session.flush()
        return entry

    @staticmethod
    async def list_recent_for_account(
        session: AsyncSession,
        *,
        account_id: int,
        limit: int = 20,
    ) -> list[CoinLedgerEntry]:
        stmt = (
            select(CoinLedgerEntry)
            .where(CoinLedgerEntry.account_id == account_id)
            .order_by(CoinLedgerEntry.created_at.desc(), CoinLedgerEntry.id.desc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())
