from __future__ import annotations

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.promotion_records import PromotionRecord
from app.db.repo.search import LIKE_ESCAPE, contains_pattern


class PromotionsRepo:
    @staticmethod
    async def create(session: AsyncSession, *, record: PromotionRecord) -> PromotionRecord:
        session.add(record)
        await session.flush()
        return record

    @staticmethod
    async def list_page(
        session: AsyncSession,
        *,
        search: str | None,
        newest_first: bool,
        offset: int,
        limit: int,
    ) -> tuple[list[PromotionRecord], int]:
        filters = []
        if search:
            pattern = contains_pattern(search)
            filters.append(
                or_(
                    PromotionRecord.old_real_id.ilike(pattern, escape=LIKE_ESCAPE),
                    PromotionRecord.new_real_id.ilike(pattern, escape=LIKE_ESCAPE),
                )
            )

        ordering = (
            (PromotionRecord.promoted_at.desc(), PromotionRecord.id.desc())
            if newest_first
            else (PromotionRecord.promoted_at.asc(), PromotionRecord.id.asc())
        )
        stmt = (
            select(PromotionRecord).where(*filters).order_by(*ordering).offset(offset).limit(limit)
        )
        count_stmt = select(func.count(PromotionRecord.id)).where(*filters)
        items = list((await session.execute(stmt)).scalars().all())
        total = int((await session.execute(count_stmt)).scalar_one() or 0)
        return items, total

    @staticmethod
    async def list_chain_for_account(
        session: AsyncSession,
        account_id: int,
    ) -> list[PromotionRecord]:
        stmt = (
            select(PromotionRecord)
            .where(PromotionRecord.account_id == account_id)
            .order_by(PromotionRecord.promoted_at.asc(), PromotionRecord.id.asc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())
