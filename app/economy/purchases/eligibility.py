from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.accounts import Account
from app.db.models.products import Product
from app.db.repo.orders_repo import OrdersRepo
from app.db.repo.products_repo import ProductsRepo
from app.economy.purchases.types import EligibilityResult

ELIGIBLE = EligibilityResult(eligible=True)


async def check_eligibility(
    session: AsyncSession,
    *,
    product: Product,
    account: Account,
) -> EligibilityResult:
    if not product.is_active:
        return EligibilityResult(eligible=False, reason="PRODUCT_INACTIVE")

    if await ProductsRepo.is_hidden_for_account(
        session,
        product_id=product.id,
        account_real_id=account.real_id,
    ):
        return EligibilityResult(eligible=False, reason="PRODUCT_HIDDEN")

    if product.purchase_limit is not None:
        purchased = await OrdersRepo.count_live_for_account_product(
            session,
            account_id=account.id,
            product_id=product.id,
        )
        if purchased >= product.purchase_limit:
            return EligibilityResult(eligible=False, reason="PURCHASE_LIMIT_REACHED")

    return ELIGIBLE
