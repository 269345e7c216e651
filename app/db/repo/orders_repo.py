from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.orders import Order


class OrdersRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, order_id: int) -> Order | None:
        return await session.get(Order, order_id)

    @staticmethod
    async def get_by_attempt_id(session: AsyncSession, attempt_id: str) -> Order | None:
        stmt = select(Order).where(Order.attempt_id == attempt_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_payment_reference(
        session: AsyncSession,
        *,
        payment_method: str,
        payment_reference: str,
    ) -> Order | None:
        stmt = select(Order).where(
            Order.payment_method == payment_method,
            Order.payment_reference == payment_reference,
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(session: AsyncSession, *, order: Order) -> Order:
        session.add(order)
        await session.flush()
        return order

    @staticmethod
    async def count_live_for_account_product(
        session: AsyncSession,
        *,
        account_id: int,
        product_id: int,
    ) -> int:
        stmt = select(func.count(Order.id)).where(
            Order.account_id == account_id,
            Order.product_id == product_id,
            Order.status != "FAILED",
        )
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)
