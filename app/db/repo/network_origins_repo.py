from __future__ import annotations

from datetime import datetime

from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.account_network_origins import AccountNetworkOrigin
from app.db.models.accounts import Account
from app.db.repo.search import LIKE_ESCAPE, contains_pattern


class NetworkOriginsRepo:
    @staticmethod
    async def create(
        session: AsyncSession,
        *,
        account_id: int,
        ip: str,
        recorded_at: datetime,
    ) -> AccountNetworkOrigin:
        origin = AccountNetworkOrigin(account_id=account_id, ip=ip, recorded_at=recorded_at)
        session.add(origin)
        await session.flush()
        return origin

    @staticmethod
    async def list_accounts_page(
        session: AsyncSession,
        *,
        search_real_id: str | None,
        search_ip: str | None,
        offset: int,
        limit: int,
    ) -> tuple[list[tuple[int, str, datetime]], int]:
        filters = []
        if search_real_id:
            filters.append(
                Account.real_id.ilike(contains_pattern(search_real_id), escape=LIKE_ESCAPE)
            )
        if search_ip:
            filters.append(
                AccountNetworkOrigin.ip.ilike(contains_pattern(search_ip), escape=LIKE_ESCAPE)
            )

        last_seen = func.max(AccountNetworkOrigin.recorded_at)
        stmt = (
            select(Account.id, Account.real_id, last_seen)
            .join(AccountNetworkOrigin, AccountNetworkOrigin.account_id == Account.id)
            .where(*filters)
            .group_by(Account.id, Account.real_id)
            .order_by(last_seen.desc(), Account.id.desc())
            .offset(offset)
            .limit(limit)
        )
        count_stmt = (
            select(func.count(distinct(Account.id)))
            .select_from(Account)
            .join(AccountNetworkOrigin, AccountNetworkOrigin.account_id == Account.id)
            .where(*filters)
        )
        rows = [
            (int(account_id), str(real_id), recorded_at)
            for account_id, real_id, recorded_at in (await session.execute(stmt)).all()
        ]
        total = int((await session.execute(count_stmt)).scalar_one() or 0)
        return rows, total

    @staticmethod
    async def list_for_accounts(
        session: AsyncSession,
        account_ids: list[int],
    ) -> list[AccountNetworkOrigin]:
        if not account_ids:
            return []
        stmt = (
            select(AccountNetworkOrigin)
            .where(AccountNetworkOrigin.account_id.in_(account_ids))
            .order_by(AccountNetworkOrigin.recorded_at.desc(), AccountNetworkOrigin.id.desc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def list_real_ids_by_ip(session: AsyncSession, ip: str) -> list[str]:
        stmt = (
            select(distinct(Account.real_id))
            .join(AccountNetworkOrigin, AccountNetworkOrigin.account_id == Account.id)
            .where(AccountNetworkOrigin.ip == ip)
            .order_by(Account.real_id.asc())
        )
        result = await session.execute(stmt)
        return [str(real_id) for real_id in result.scalars().all()]
