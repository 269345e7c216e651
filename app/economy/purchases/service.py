from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.abuse.registry import AbuseRegistry
from app.abuse.types import VisitorIdentifiers
from app.core.config import get_settings
from app.core.enforcement import run_with_policy
from app.db.models.accounts import Account
from app.db.models.products import Product
from app.db.repo.accounts_repo import AccountsRepo
from app.db.repo.orders_repo import OrdersRepo
from app.db.repo.products_repo import ProductsRepo
from app.db.session import SessionLocal
from app.economy.coins.service import CoinService
from app.economy.purchases.attempt_store import PurchaseAttemptStore
from app.economy.purchases.eligibility import check_eligibility
from app.economy.purchases.errors import (
    InvalidTransitionError,
    PaymentMethodNotAllowedError,
    PaymentReferenceRequiredError,
    PriceChangedError,
    ProductNotFoundError,
    PurchaseNotEligibleError,
)
from app.economy.purchases.order_store import OrderStore, SqlOrderStore
from app.economy.purchases.pricing import build_upi_payment_view, quote_price
from app.economy.purchases.state_machine import (
    PurchaseAttempt,
    advance,
    allowed_payment_methods,
    require_step,
)
from app.economy.purchases.types import (
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_FAILED,
    PAYMENT_METHOD_REDEEM_CODE,
    PAYMENT_METHOD_UPI,
    PAYMENT_METHODS,
    STEP_ABANDONED,
    STEP_AWAITING_PAYMENT,
    STEP_COMPLETED,
    STEP_DETAILS_CONFIRMATION,
    STEP_FAILED,
    STEP_PROCESSING,
    STEP_REGISTERING,
    STEP_VERIFYING,
    TERMINAL_STEPS,
    OrderHandoff,
    PriceQuote,
    PurchaseVisitor,
    UpiPaymentView,
)
from app.identity.network_origins import record_network_origin
from app.identity.registration import register_account
from app.identity.types import RegistrationResult
from app.services.ephemeral_store import get_expiring_store

logger = structlog.get_logger(__name__)

_order_store: OrderStore = SqlOrderStore()


def get_order_store() -> OrderStore:
    return _order_store


def set_order_store(order_store: OrderStore) -> None:
    global _order_store
    _order_store = order_store


def _attempt_store() -> PurchaseAttemptStore:
    return PurchaseAttemptStore(
        get_expiring_store(),
        ttl_seconds=get_settings().purchase_attempt_ttl_seconds,
    )


def _now(now_utc: datetime | None) -> datetime:
    return now_utc or datetime.now(timezone.utc)


def _quote_for(product: Product, account: Account) -> PriceQuote:
    return quote_price(
        price=int(product.price),
        max_coin_discount=int(product.max_coin_discount),
        is_coin_product=bool(product.is_coin_product),
        purchase_price=None if product.purchase_price is None else int(product.purchase_price),
        coin_balance=int(account.coin_balance),
    )


def _attempt_quote(attempt: PurchaseAttempt) -> PriceQuote | None:
    if attempt.base_price is None or attempt.final_price is None:
        return None
    return PriceQuote(
        base_price=attempt.base_price,
        coins_applied=attempt.coins_applied,
        final_price=attempt.final_price,
    )


async def _ensure_visitor_allowed(visitor: PurchaseVisitor, account: Account | None) -> None:
    await AbuseRegistry.ensure_not_blocked(
        VisitorIdentifiers(
            ip=visitor.ip,
            fingerprint=visitor.fingerprint,
            account_id=None if account is None else account.real_id,
        )
    )


async def _load_product(session: AsyncSession, product_id: int) -> Product:
    product = await ProductsRepo.get_by_id(session, product_id)
    if product is None:
        raise ProductNotFoundError
    return product


async def _run_verification(
    session: AsyncSession,
    attempt: PurchaseAttempt,
    *,
    account: Account | None,
    now_utc: datetime,
) -> PurchaseAttempt:
    require_step(attempt, STEP_VERIFYING)
    if account is None:
        return advance(attempt, STEP_REGISTERING, now_utc=now_utc)

    product = await _load_product(session, attempt.product_id)
    eligibility = await check_eligibility(session, product=product, account=account)
    if not eligibility.eligible:
        await _attempt_store().discard(attempt.attempt_id)
        logger.info(
            "purchase_attempt_not_eligible",
            attempt_id=attempt.attempt_id,
            account_id=account.id,
            product_id=product.id,
            reason=eligibility.reason,
        )
        raise PurchaseNotEligibleError(eligibility.reason or "NOT_ELIGIBLE")

    quote = _quote_for(product, account)
    return advance(
        attempt,
        STEP_DETAILS_CONFIRMATION,
        now_utc=now_utc,
        account_id=int(account.id),
        base_price=quote.base_price,
        coins_applied=quote.coins_applied,
        final_price=quote.final_price,
        payment_method=None,
        payment_window_ends_at=None,
    )


async def _verify_and_save(attempt: PurchaseAttempt, *, now_utc: datetime) -> PurchaseAttempt:
    async with SessionLocal.begin() as session:
        account = (
            None
            if attempt.account_id is None
            else await AccountsRepo.get_by_id(session, attempt.account_id)
        )
        attempt = await _run_verification(session, attempt, account=account, now_utc=now_utc)
    await _attempt_store().save(attempt)
    return attempt


class PurchaseService:
    @staticmethod
    async def get_attempt(visitor: PurchaseVisitor, attempt_id: str) -> PurchaseAttempt:
        return await _attempt_store().load(attempt_id, visitor_key=visitor.visitor_key)

    @staticmethod
    async def start_attempt(
        visitor: PurchaseVisitor,
        product_id: int,
        *,
        now_utc: datetime | None = None,
    ) -> PurchaseAttempt:
        now_utc = _now(now_utc)
        async with SessionLocal.begin() as session:
            await _load_product(session, product_id)
            account = (
                None
                if visitor.account_id is None
                else await AccountsRepo.get_by_id(session, visitor.account_id)
            )
        await _ensure_visitor_allowed(visitor, account)

        attempt = PurchaseAttempt(
            attempt_id=uuid4().hex,
            visitor_key=visitor.visitor_key,
            product_id=product_id,
            step=STEP_VERIFYING,
            created_at=now_utc,
            updated_at=now_utc,
            account_id=None if account is None else int(account.id),
        )
        attempt = await _verify_and_save(attempt, now_utc=now_utc)
        logger.info(
            "purchase_attempt_started",
            attempt_id=attempt.attempt_id,
            product_id=product_id,
            account_id=attempt.account_id,
            step=attempt.step,
        )
        return attempt

    @staticmethod
    async def verify(
        visitor: PurchaseVisitor,
        attempt_id: str,
        *,
        now_utc: datetime | None = None,
    ) -> PurchaseAttempt:
        now_utc = _now(now_utc)
        attempt = await PurchaseService.get_attempt(visitor, attempt_id)
        attempt = advance(attempt, STEP_VERIFYING, now_utc=now_utc)
        return await _verify_and_save(attempt, now_utc=now_utc)

    @staticmethod
    async def register(
        visitor: PurchaseVisitor,
        attempt_id: str,
        real_id: str,
        *,
        now_utc: datetime | None = None,
    ) -> tuple[PurchaseAttempt, RegistrationResult]:
        now_utc = _now(now_utc)
        attempt = await PurchaseService.get_attempt(visitor, attempt_id)
        require_step(attempt, STEP_REGISTERING)

        async with SessionLocal.begin() as session:
            registration = await register_account(session, real_id, now_utc=now_utc)
            account = await AccountsRepo.get_by_id(session, registration.account_id)
        await record_network_origin(account_id=registration.account_id, ip=visitor.ip)
        await _ensure_visitor_allowed(visitor, account)

        attempt = advance(
            attempt,
            STEP_VERIFYING,
            now_utc=now_utc,
            account_id=registration.account_id,
        )
        attempt = await _verify_and_save(attempt, now_utc=now_utc)
        return attempt, registration

    @staticmethod
    async def choose_payment_method(
        visitor: PurchaseVisitor,
        attempt_id: str,
        method: str,
        *,
        now_utc: datetime | None = None,
    ) -> tuple[PurchaseAttempt, UpiPaymentView | None]:
        now_utc = _now(now_utc)
        attempt = await PurchaseService.get_attempt(visitor, attempt_id)
        require_step(attempt, STEP_DETAILS_CONFIRMATION, STEP_AWAITING_PAYMENT)
        if method not in PAYMENT_METHODS:
            raise PaymentMethodNotAllowedError

        async with SessionLocal.begin() as session:
            product = await _load_product(session, attempt.product_id)
            account = (
                None
                if attempt.account_id is None
                else await AccountsRepo.get_by_id(session, attempt.account_id)
            )
        if account is None:
            raise InvalidTransitionError(attempt.step, STEP_AWAITING_PAYMENT)

        allowed = allowed_payment_methods(
            only_upi=bool(product.only_upi),
            redeem_disabled=bool(account.is_redeem_disabled),
        )
        if method not in allowed:
            raise PaymentMethodNotAllowedError

        upi_view: UpiPaymentView | None = None
        if method == PAYMENT_METHOD_UPI:
            settings = get_settings()
            upi_view = build_upi_payment_view(
                payee_vpa=settings.upi_payee_vpa,
                payee_name=settings.upi_payee_name,
                amount=int(attempt.final_price or 0),
                product_name=str(product.name),
                window_seconds=settings.upi_payment_window_seconds,
                now_utc=now_utc,
            )

        attempt = advance(
            attempt,
            STEP_AWAITING_PAYMENT,
            now_utc=now_utc,
            payment_method=method,
            payment_window_ends_at=None if upi_view is None else upi_view.payment_window_ends_at,
        )
        await _attempt_store().save(attempt)
        return attempt, upi_view

    @staticmethod
    async def _handoff_order(
        attempt: PurchaseAttempt,
        *,
        reference: str,
        now_utc: datetime,
    ) -> OrderHandoff:
        order_store = get_order_store()
        async with SessionLocal.begin() as session:
            account = (
                None
                if attempt.account_id is None
                else await AccountsRepo.get_by_id_for_update(session, attempt.account_id)
            )
            if account is None:
                raise InvalidTransitionError(attempt.step, STEP_PROCESSING)
            # The account row lock serializes handoffs of the same attempt.
            existing = await order_store.get_order_for_attempt(session, attempt.attempt_id)
            if existing is not None:
                return existing
            product = await _load_product(session, attempt.product_id)

            eligibility = await check_eligibility(session, product=product, account=account)
            if not eligibility.eligible:
                raise PurchaseNotEligibleError(eligibility.reason or "NOT_ELIGIBLE")
            if attempt.payment_method not in allowed_payment_methods(
                only_upi=bool(product.only_upi),
                redeem_disabled=bool(account.is_redeem_disabled),
            ):
                raise PaymentMethodNotAllowedError

            quote = _quote_for(product, account)
            if quote != _attempt_quote(attempt):
                raise PriceChangedError(quote)

            handoff = await order_store.create_order(
                session,
                attempt_id=attempt.attempt_id,
                product_id=int(product.id),
                account_id=int(account.id),
                payment_method=str(attempt.payment_method),
                payment_reference=reference,
                amount=quote.final_price,
                coins_applied=quote.coins_applied,
                now_utc=now_utc,
            )
            if handoff.replayed:
                return handoff
            if quote.coins_applied > 0:
                await CoinService.debit(
                    session,
                    account_id=int(account.id),
                    amount=quote.coins_applied,
                    entry_type="PURCHASE_DISCOUNT",
                    idempotency_key=f"purchase:{attempt.attempt_id}:coins",
                    order_id=handoff.order_id,
                    metadata={"product_id": int(product.id)},
                    now_utc=now_utc,
                )
        return handoff

    @staticmethod
    async def _submit_payment(
        visitor: PurchaseVisitor,
        attempt_id: str,
        *,
        method: str,
        reference: str | None,
        now_utc: datetime | None,
    ) -> PurchaseAttempt:
        now_utc = _now(now_utc)
        attempt = await PurchaseService.get_attempt(visitor, attempt_id)
        require_step(attempt, STEP_AWAITING_PAYMENT)
        if attempt.payment_method != method:
            raise PaymentMethodNotAllowedError

        normalized_reference = (reference or "").strip()
        if not normalized_reference:
            raise PaymentReferenceRequiredError(
                "Enter your redeem code."
                if method == PAYMENT_METHOD_REDEEM_CODE
                else "Enter the UTR / transaction ID from your payment app."
            )

        account = None
        if attempt.account_id is not None:
            async with SessionLocal.begin() as session:
                account = await AccountsRepo.get_by_id(session, attempt.account_id)
        await _ensure_visitor_allowed(visitor, account)

        try:
            handoff = await run_with_policy(
                "purchases.order_handoff",
                lambda: PurchaseService._handoff_order(
                    attempt,
                    reference=normalized_reference,
                    now_utc=now_utc,
                ),
                fallback=None,
            )
        except PriceChangedError as exc:
            requoted = advance(
                attempt,
                STEP_DETAILS_CONFIRMATION,
                now_utc=now_utc,
                base_price=exc.quote.base_price,
                coins_applied=exc.quote.coins_applied,
                final_price=exc.quote.final_price,
                payment_method=None,
                payment_window_ends_at=None,
            )
            await _attempt_store().save(requoted)
            raise
        except PurchaseNotEligibleError:
            await _attempt_store().discard(attempt.attempt_id)
            raise

        attempt = advance(
            attempt,
            STEP_PROCESSING,
            now_utc=now_utc,
            payment_reference=handoff.payment_reference,
            order_id=handoff.order_id,
        )
        await _attempt_store().save(attempt)
        logger.info(
            "purchase_order_handed_off",
            attempt_id=attempt.attempt_id,
            order_id=handoff.order_id,
            replayed=handoff.replayed,
            account_id=attempt.account_id,
            payment_method=method,
            final_price=attempt.final_price,
        )
        return attempt

    @staticmethod
    async def submit_upi_reference(
        visitor: PurchaseVisitor,
        attempt_id: str,
        reference: str | None,
        *,
        now_utc: datetime | None = None,
    ) -> PurchaseAttempt:
        return await PurchaseService._submit_payment(
            visitor,
            attempt_id,
            method=PAYMENT_METHOD_UPI,
            reference=reference,
            now_utc=now_utc,
        )

    @staticmethod
    async def submit_redeem_code(
        visitor: PurchaseVisitor,
        attempt_id: str,
        code: str | None,
        *,
        now_utc: datetime | None = None,
    ) -> PurchaseAttempt:
        return await PurchaseService._submit_payment(
            visitor,
            attempt_id,
            method=PAYMENT_METHOD_REDEEM_CODE,
            reference=code,
            now_utc=now_utc,
        )

    @staticmethod
    async def refresh(
        visitor: PurchaseVisitor,
        attempt_id: str,
        *,
        now_utc: datetime | None = None,
    ) -> PurchaseAttempt:
        attempt = await PurchaseService.get_attempt(visitor, attempt_id)
        if attempt.step != STEP_PROCESSING or attempt.order_id is None:
            return attempt

        async with SessionLocal.begin() as session:
            status = await get_order_store().get_status(session, attempt.order_id)

        if status == ORDER_STATUS_COMPLETED:
            attempt = advance(attempt, STEP_COMPLETED, now_utc=_now(now_utc))
        elif status == ORDER_STATUS_FAILED:
            attempt = advance(
                attempt,
                STEP_FAILED,
                now_utc=_now(now_utc),
                failure_reason="ORDER_FAILED",
            )
        else:
            return attempt

        await _attempt_store().save(attempt)
        logger.info(
            "purchase_attempt_settled",
            attempt_id=attempt.attempt_id,
            order_id=attempt.order_id,
            step=attempt.step,
        )
        return attempt

    @staticmethod
    async def cancel(
        visitor: PurchaseVisitor,
        attempt_id: str,
        *,
        now_utc: datetime | None = None,
    ) -> PurchaseAttempt:
        attempt = await PurchaseService.get_attempt(visitor, attempt_id)
        if attempt.step in TERMINAL_STEPS or attempt.step == STEP_PROCESSING:
            raise InvalidTransitionError(attempt.step, STEP_ABANDONED)

        attempt = advance(attempt, STEP_ABANDONED, now_utc=_now(now_utc))
        await _attempt_store().discard(attempt.attempt_id)
        logger.info("purchase_attempt_abandoned", attempt_id=attempt.attempt_id)
        return attempt

    @staticmethod
    async def get_order_status(
        session: AsyncSession,
        *,
        account_id: int,
        order_id: int,
    ) -> str | None:
        order = await OrdersRepo.get_by_id(session, order_id)
        if order is None or order.account_id != account_id:
            return None
        return str(order.status)
