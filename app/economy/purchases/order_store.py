from __future__ import annotations

from datetime import datetime
from typing import Protocol

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.orders import Order
from app.db.repo.orders_repo import OrdersRepo
from app.economy.purchases.errors import OrderRejectedError
from app.economy.purchases.types import ORDER_STATUS_PROCESSING, OrderHandoff


class OrderStore(Protocol):
    async def get_order_for_attempt(
        self,
        session: AsyncSession,
        attempt_id: str,
    ) -> OrderHandoff | None: ...

    async def create_order(
        self,
        session: AsyncSession,
        *,
        attempt_id: str,
        product_id: int,
        account_id: int,
        payment_method: str,
        payment_reference: str,
        amount: int,
        coins_applied: int,
        now_utc: datetime,
    ) -> OrderHandoff: ...

    async def get_status(self, session: AsyncSession, order_id: int) -> str | None: ...


def _as_replay(order: Order) -> OrderHandoff:
    return OrderHandoff(
        order_id=int(order.id),
        payment_reference=str(order.payment_reference),
        replayed=True,
    )


class SqlOrderStore:
    """Order store on the local ``orders`` table.

    Settlement happens elsewhere; orders are created PROCESSING and their
    status is only read back here. At most one order exists per purchase
    attempt: a second handoff for the same attempt returns the first order.
    """

    async def get_order_for_attempt(
        self,
        session: AsyncSession,
        attempt_id: str,
    ) -> OrderHandoff | None:
        order = await OrdersRepo.get_by_attempt_id(session, attempt_id)
        return None if order is None else _as_replay(order)

    async def create_order(
        self,
        session: AsyncSession,
        *,
        attempt_id: str,
        product_id: int,
        account_id: int,
        payment_method: str,
        payment_reference: str,
        amount: int,
        coins_applied: int,
        now_utc: datetime,
    ) -> OrderHandoff:
        existing = await self.get_order_for_attempt(session, attempt_id)
        if existing is not None:
            return existing

        reference_owner = await OrdersRepo.get_by_payment_reference(
            session,
            payment_method=payment_method,
            payment_reference=payment_reference,
        )
        if reference_owner is not None:
            raise OrderRejectedError

        try:
            async with session.begin_nested():
                order = await OrdersRepo.create(
                    session,
                    order=Order(
                        attempt_id=attempt_id,
                        product_id=product_id,
                        account_id=account_id,
                        amount=amount,
                        coins_applied=coins_applied,
                        payment_method=payment_method,
                        payment_reference=payment_reference,
                        status=ORDER_STATUS_PROCESSING,
                        created_at=now_utc,
                        updated_at=now_utc,
                    ),
                )
        except IntegrityError as exc:
            # Lost the race on either unique index; only the attempt one is a replay.
            existing = await self.get_order_for_attempt(session, attempt_id)
            if existing is not None:
                return existing
            raise OrderRejectedError from exc
        return OrderHandoff(order_id=int(order.id), payment_reference=payment_reference)

    async def get_status(self, session: AsyncSession, order_id: int) -> str | None:
        order = await OrdersRepo.get_by_id(session, order_id)
        return None if order is None else str(order.status)
