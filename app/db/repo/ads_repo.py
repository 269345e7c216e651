from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.custom_ads import CustomAd


class AdsRepo:
    @staticmethod
    async def sample_one(session: AsyncSession) -> CustomAd | None:
        stmt = select(CustomAd).order_by(func.random()).limit(1)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()
