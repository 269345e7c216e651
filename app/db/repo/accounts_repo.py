from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.accounts import Account


class AccountsRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, account_id: int) -> Account | None:
        return await session.get(Account, account_id)

    @staticmethod
    async def get_by_id_for_update(session: AsyncSession, account_id: int) -> Account | None:
        stmt = (
            select(Account)
            .where(Account.id == account_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_by_ids_for_update(
        session: AsyncSession,
        account_ids: Sequence[int],
    ) -> list[Account]:
        ids = sorted({int(account_id) for account_id in account_ids})
        if not ids:
            return []
        # Ordered locking keeps concurrent multi-row updates deadlock free.
        stmt = (
            select(Account)
            .where(Account.id.in_(ids))
            .order_by(Account.id.asc())
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def lock_identifier(session: AsyncSession, identifier: str) -> None:
        # Transaction scoped; released on commit or rollback.
        await session.execute(select(func.pg_advisory_xact_lock(func.hashtext(identifier))))

    @staticmethod
    async def get_by_real_id(session: AsyncSession, real_id: str) -> Account | None:
        stmt = select(Account).where(Account.real_id == real_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_visual_id(session: AsyncSession, visual_id: str) -> Account | None:
        stmt = select(Account).where(Account.visual_id == visual_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def find_holding_identifier(session: AsyncSession, identifier: str) -> Account | None:
        stmt = select(Account).where(
            or_(Account.real_id == identifier, Account.visual_id == identifier)
        )
        result = await session.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def find_promotion_candidate(session: AsyncSession, candidate_id: str) -> Account | None:
        has_visual_id = and_(Account.visual_id.is_not(None), Account.visual_id != "")
        stmt = (
            select(Account)
            .where(
                has_visual_id,
                or_(Account.real_id == candidate_id, Account.visual_id == candidate_id),
            )
            .order_by(Account.id.asc())
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_display_id(session: AsyncSession, display_id: str) -> Account | None:
        stmt = select(Account).where(
            or_(
                Account.visual_id == display_id,
                and_(Account.real_id == display_id, Account.visual_id.is_(None)),
            )
        )
        result = await session.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def create(session: AsyncSession, *, real_id: str, now_utc: datetime) -> Account:
        account = Account(
            real_id=real_id,
            visual_id=None,
            coin_balance=0,
            is_redeem_disabled=False,
            created_at=now_utc,
            updated_at=now_utc,
        )
        session.add(account)
        await session.flush()
        return account
