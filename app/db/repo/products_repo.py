from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.product_controls import ProductControl
from app.db.models.products import Product


class ProductsRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, product_id: int) -> Product | None:
        return await session.get(Product, product_id)

    @staticmethod
    async def is_hidden_for_account(
        session: AsyncSession,
        *,
        product_id: int,
        account_real_id: str,
    ) -> bool:
        stmt = select(ProductControl.is_hidden).where(
            ProductControl.product_id == product_id,
            ProductControl.account_real_id == account_real_id,
        )
        result = await session.execute(stmt)
        return bool(result.scalar_one_or_none())
