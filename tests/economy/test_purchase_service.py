from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.exc import OperationalError

from app.abuse import registry
from app.abuse.errors import AccountBlockedError
from app.abuse.registry import AbuseRegistry
from app.core.errors import InfrastructureError
from app.economy.purchases import service
from app.economy.purchases.attempt_store import PurchaseAttemptStore
from app.economy.purchases.errors import (
    InvalidTransitionError,
    PaymentMethodNotAllowedError,
    PaymentReferenceRequiredError,
    PriceChangedError,
    PurchaseAttemptNotFoundError,
    PurchaseNotEligibleError,
)
from app.economy.purchases.service import PurchaseService
from app.economy.purchases.types import EligibilityResult, OrderHandoff, PurchaseVisitor
from app.identity.types import RegistrationResult
from app.services.ephemeral_store import InMemoryExpiringStore

NOW_UTC = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)

_REAL_ENSURE_NOT_BLOCKED = AbuseRegistry.__dict__["ensure_not_blocked"]


class _FakeSessionLocal:
    @asynccontextmanager
    async def begin(self):
        yield object()


class _FakeOrderStore:
    def __init__(self) -> None:
        self.orders: dict[int, dict[str, object]] = {}

    def _order_for_attempt(self, attempt_id: str) -> OrderHandoff | None:
        for order_id, order in self.orders.items():
            if order["attempt_id"] == attempt_id:
                return OrderHandoff(
                    order_id=order_id,
                    payment_reference=str(order["payment_reference"]),
                    replayed=True,
                )
        return None

    async def get_order_for_attempt(self, session, attempt_id: str) -> OrderHandoff | None:
        return self._order_for_attempt(attempt_id)

    async def create_order(self, session, **values) -> OrderHandoff:
        await asyncio.sleep(0)
        existing = self._order_for_attempt(str(values["attempt_id"]))
        if existing is not None:
            return existing
        order_id = len(self.orders) + 1
        self.orders[order_id] = {**values, "status": "PROCESSING"}
        return OrderHandoff(order_id=order_id, payment_reference=str(values["payment_reference"]))

    async def get_status(self, session, order_id: int) -> str | None:
        order = self.orders.get(order_id)
        return None if order is None else str(order["status"])


class _UnavailableStore:
    async def get(self, key: str) -> str | None:
        raise RedisConnectionError("redis down")

    async def set(self, key: str, value: str, *, ttl_seconds: int) -> None:
        raise RedisConnectionError("redis down")

    async def delete(self, key: str) -> None:
        raise RedisConnectionError("redis down")


@pytest.fixture
def purchase_env(monkeypatch) -> SimpleNamespace:
    env = SimpleNamespace(
        accounts={
            1: SimpleNamespace(
                id=1,
                real_id="1000001",
                visual_id=None,
                coin_balance=50,
                is_redeem_disabled=False,
            )
        },
        products={
            7: SimpleNamespace(
                id=7,
                name="Gems",
                price=100,
                max_coin_discount=30,
                is_coin_product=False,
                purchase_price=None,
                only_upi=False,
                is_active=True,
                purchase_limit=None,
            )
        },
        ineligible_reason=None,
        blocked_ips=set(),
        debits=[],
        registered=[],
        order_store=_FakeOrderStore(),
        store=InMemoryExpiringStore(),
    )

    async def _fake_get_account(session, account_id: int):
        return env.accounts.get(account_id)

    async def _fake_get_product(session, product_id: int):
        return env.products.get(product_id)

    async def _fake_check_eligibility(session, *, product, account):
        if env.ineligible_reason is not None:
            return EligibilityResult(eligible=False, reason=env.ineligible_reason)
        return EligibilityResult(eligible=True)

    async def _fake_ensure_not_blocked(identifiers):
        if identifiers.ip in env.blocked_ips:
            raise AccountBlockedError("spam")

    async def _fake_debit(session, **values):
        env.debits.append(values)
        env.accounts[values["account_id"]].coin_balance -= values["amount"]

    async def _fake_register(session, real_id: str, *, now_utc=None):
        account = SimpleNamespace(
            id=len(env.accounts) + 1,
            real_id=real_id,
            visual_id=None,
            coin_balance=0,
            is_redeem_disabled=False,
        )
        env.accounts[account.id] = account
        env.registered.append(real_id)
        return RegistrationResult(account_id=account.id, real_id=real_id, created=True)

    async def _fake_record_origin(*, account_id: int, ip: str | None, now_utc=None) -> bool:
        return ip is not None

    monkeypatch.setattr(service, "SessionLocal", _FakeSessionLocal())
    monkeypatch.setattr(service.AccountsRepo, "get_by_id", _fake_get_account)
    monkeypatch.setattr(service.AccountsRepo, "get_by_id_for_update", _fake_get_account)
    monkeypatch.setattr(service.ProductsRepo, "get_by_id", _fake_get_product)
    monkeypatch.setattr(service, "check_eligibility", _fake_check_eligibility)
    monkeypatch.setattr(service.AbuseRegistry, "ensure_not_blocked", _fake_ensure_not_blocked)
    monkeypatch.setattr(service.CoinService, "debit", _fake_debit)
    monkeypatch.setattr(service, "register_account", _fake_register)
    monkeypatch.setattr(service, "record_network_origin", _fake_record_origin)
    monkeypatch.setattr(service, "_order_store", env.order_store)
    monkeypatch.setattr(
        service,
        "_attempt_store",
        lambda: PurchaseAttemptStore(env.store, ttl_seconds=1800),
    )
    monkeypatch.setattr(
        service,
        "get_settings",
        lambda: SimpleNamespace(
            upi_payee_vpa="store@upi",
            upi_payee_name="Coin Store",
            upi_payment_window_seconds=300,
        ),
    )
    return env


def _visitor(account_id: int | None = 1, ip: str = "203.0.113.7") -> PurchaseVisitor:
    return PurchaseVisitor(visitor_key="visitor-a", account_id=account_id, ip=ip)


async def _awaiting_upi_payment(now_utc: datetime = NOW_UTC):
    attempt = await PurchaseService.start_attempt(_visitor(), 7, now_utc=now_utc)
    return await PurchaseService.choose_payment_method(
        _visitor(),
        attempt.attempt_id,
        "UPI",
        now_utc=now_utc,
    )


@pytest.mark.asyncio
async def test_start_attempt_for_signed_in_visitor_quotes_price(purchase_env) -> None:
    attempt = await PurchaseService.start_attempt(_visitor(), 7, now_utc=NOW_UTC)

    assert attempt.step == "DETAILS_CONFIRMATION"
    assert attempt.account_id == 1
    assert (attempt.base_price, attempt.coins_applied, attempt.final_price) == (100, 30, 70)
    stored = await PurchaseService.get_attempt(_visitor(), attempt.attempt_id)
    assert stored == attempt


@pytest.mark.asyncio
async def test_anonymous_visitor_registers_then_reaches_details(purchase_env) -> None:
    visitor = _visitor(account_id=None)

    attempt = await PurchaseService.start_attempt(visitor, 7, now_utc=NOW_UTC)
    assert attempt.step == "REGISTERING"

    attempt, registration = await PurchaseService.register(
        visitor,
        attempt.attempt_id,
        "5550001",
        now_utc=NOW_UTC,
    )

    assert registration.created is True
    assert purchase_env.registered == ["5550001"]
    assert attempt.step == "DETAILS_CONFIRMATION"
    assert attempt.account_id == registration.account_id
    assert (attempt.coins_applied, attempt.final_price) == (0, 100)


@pytest.mark.asyncio
async def test_blocked_visitor_cannot_start(purchase_env) -> None:
    purchase_env.blocked_ips.add("203.0.113.7")

    with pytest.raises(AccountBlockedError):
        await PurchaseService.start_attempt(_visitor(), 7, now_utc=NOW_UTC)

    assert len(purchase_env.store) == 0


@pytest.mark.asyncio
async def test_ineligible_account_is_rejected_and_attempt_dropped(purchase_env) -> None:
    purchase_env.ineligible_reason = "PURCHASE_LIMIT_REACHED"

    with pytest.raises(PurchaseNotEligibleError) as exc_info:
        await PurchaseService.start_attempt(_visitor(), 7, now_utc=NOW_UTC)

    assert exc_info.value.reason == "PURCHASE_LIMIT_REACHED"
    assert len(purchase_env.store) == 0


@pytest.mark.asyncio
async def test_attempt_is_invisible_to_other_visitors(purchase_env) -> None:
    attempt = await PurchaseService.start_attempt(_visitor(), 7, now_utc=NOW_UTC)
    stranger = PurchaseVisitor(visitor_key="visitor-b", account_id=1)

    with pytest.raises(PurchaseAttemptNotFoundError):
        await PurchaseService.get_attempt(stranger, attempt.attempt_id)


@pytest.mark.asyncio
async def test_choose_upi_returns_payment_view(purchase_env) -> None:
    attempt, upi_view = await _awaiting_upi_payment()

    assert attempt.step == "AWAITING_PAYMENT"
    assert attempt.payment_method == "UPI"
    assert upi_view is not None
    assert upi_view.amount == 70
    assert upi_view.payment_window_ends_at == NOW_UTC + timedelta(seconds=300)
    assert attempt.payment_window_ends_at == upi_view.payment_window_ends_at


@pytest.mark.asyncio
async def test_redeem_code_is_refused_for_upi_only_product(purchase_env) -> None:
    purchase_env.products[7].only_upi = True
    attempt = await PurchaseService.start_attempt(_visitor(), 7, now_utc=NOW_UTC)

    with pytest.raises(PaymentMethodNotAllowedError):
        await PurchaseService.choose_payment_method(_visitor(), attempt.attempt_id, "REDEEM_CODE")


@pytest.mark.asyncio
async def test_empty_reference_keeps_attempt_awaiting_payment(purchase_env) -> None:
    attempt, _ = await _awaiting_upi_payment()

    with pytest.raises(PaymentReferenceRequiredError):
        await PurchaseService.submit_upi_reference(_visitor(), attempt.attempt_id, "   ")

    stored = await PurchaseService.get_attempt(_visitor(), attempt.attempt_id)
    assert stored.step == "AWAITING_PAYMENT"
    assert purchase_env.order_store.orders == {}


@pytest.mark.asyncio
async def test_upi_reference_hands_order_off_and_spends_coins(purchase_env) -> None:
    attempt, _ = await _awaiting_upi_payment()

    attempt = await PurchaseService.submit_upi_reference(
        _visitor(),
        attempt.attempt_id,
        " TXN123 ",
        now_utc=NOW_UTC,
    )

    assert attempt.step == "PROCESSING"
    assert attempt.payment_reference == "TXN123"
    assert attempt.order_id == 1
    order = purchase_env.order_store.orders[1]
    assert order["payment_reference"] == "TXN123"
    assert order["amount"] == 70
    assert order["coins_applied"] == 30
    assert purchase_env.debits[0]["amount"] == 30
    assert purchase_env.debits[0]["idempotency_key"] == f"purchase:{attempt.attempt_id}:coins"
    assert purchase_env.accounts[1].coin_balance == 20


@pytest.mark.asyncio
async def test_payment_after_countdown_still_succeeds(purchase_env) -> None:
    attempt, upi_view = await _awaiting_upi_payment()
    assert upi_view is not None

    attempt = await PurchaseService.submit_upi_reference(
        _visitor(),
        attempt.attempt_id,
        "TXN124",
        now_utc=upi_view.payment_window_ends_at + timedelta(minutes=10),
    )

    assert attempt.step == "PROCESSING"


@pytest.mark.asyncio
async def test_price_change_sends_attempt_back_to_details(purchase_env) -> None:
    attempt, _ = await _awaiting_upi_payment()
    purchase_env.accounts[1].coin_balance = 10

    with pytest.raises(PriceChangedError) as exc_info:
        await PurchaseService.submit_upi_reference(_visitor(), attempt.attempt_id, "TXN125")

    assert exc_info.value.quote.final_price == 90
    stored = await PurchaseService.get_attempt(_visitor(), attempt.attempt_id)
    assert stored.step == "DETAILS_CONFIRMATION"
    assert (stored.coins_applied, stored.final_price) == (10, 90)
    assert stored.payment_method is None
    assert purchase_env.order_store.orders == {}


@pytest.mark.asyncio
async def test_refresh_settles_processing_attempt(purchase_env) -> None:
    attempt, _ = await _awaiting_upi_payment()
    attempt = await PurchaseService.submit_upi_reference(_visitor(), attempt.attempt_id, "TXN126")

    unchanged = await PurchaseService.refresh(_visitor(), attempt.attempt_id)
    assert unchanged.step == "PROCESSING"

    purchase_env.order_store.orders[attempt.order_id]["status"] = "FAILED"
    settled = await PurchaseService.refresh(_visitor(), attempt.attempt_id)

    assert settled.step == "FAILED"
    assert settled.failure_reason == "ORDER_FAILED"


@pytest.mark.asyncio
async def test_cancel_abandons_open_attempt(purchase_env) -> None:
    attempt = await PurchaseService.start_attempt(_visitor(), 7, now_utc=NOW_UTC)

    cancelled = await PurchaseService.cancel(_visitor(), attempt.attempt_id)

    assert cancelled.step == "ABANDONED"
    with pytest.raises(PurchaseAttemptNotFoundError):
        await PurchaseService.get_attempt(_visitor(), attempt.attempt_id)


@pytest.mark.asyncio
async def test_cancel_is_refused_once_order_is_handed_off(purchase_env) -> None:
    attempt, _ = await _awaiting_upi_payment()
    await PurchaseService.submit_upi_reference(_visitor(), attempt.attempt_id, "TXN127")

    with pytest.raises(InvalidTransitionError):
        await PurchaseService.cancel(_visitor(), attempt.attempt_id)


@pytest.mark.asyncio
async def test_attempt_store_outage_fails_closed(purchase_env, monkeypatch) -> None:
    monkeypatch.setattr(
        service,
        "_attempt_store",
        lambda: PurchaseAttemptStore(_UnavailableStore(), ttl_seconds=1800),
    )

    with pytest.raises(InfrastructureError):
        await PurchaseService.start_attempt(_visitor(), 7, now_utc=NOW_UTC)


@pytest.mark.asyncio
async def test_custom_order_store_receives_handoff(purchase_env, monkeypatch) -> None:
    custom_store = _FakeOrderStore()
    monkeypatch.setattr(service, "_order_store", service._order_store)
    service.set_order_store(custom_store)

    attempt, _ = await _awaiting_upi_payment()
    attempt = await PurchaseService.submit_upi_reference(
        _visitor(),
        attempt.attempt_id,
        "TXN777",
        now_utc=NOW_UTC,
    )

    assert service.get_order_store() is custom_store
    assert attempt.step == "PROCESSING"
    assert custom_store.orders[attempt.order_id]["payment_reference"] == "TXN777"
    assert purchase_env.order_store.orders == {}


@pytest.mark.asyncio
async def test_concurrent_submits_of_one_attempt_hand_off_a_single_order(purchase_env) -> None:
    attempt, _ = await _awaiting_upi_payment()

    results = await asyncio.gather(
        PurchaseService.submit_upi_reference(
            _visitor(),
            attempt.attempt_id,
            "TXN-A",
            now_utc=NOW_UTC,
        ),
        PurchaseService.submit_upi_reference(
            _visitor(),
            attempt.attempt_id,
            "TXN-B",
            now_utc=NOW_UTC,
        ),
    )

    assert [result.step for result in results] == ["PROCESSING", "PROCESSING"]
    assert {result.order_id for result in results} == {1}
    assert results[0].payment_reference == results[1].payment_reference
    assert len(purchase_env.order_store.orders) == 1
    assert len(purchase_env.debits) == 1
    assert purchase_env.accounts[1].coin_balance == 50 - 30


@pytest.mark.asyncio
async def test_resubmit_after_unsaved_handoff_returns_the_first_order(purchase_env) -> None:
    awaiting, _ = await _awaiting_upi_payment()
    await PurchaseService.submit_upi_reference(
        _visitor(),
        awaiting.attempt_id,
        "TXN200",
        now_utc=NOW_UTC,
    )
    # The order committed but the attempt was never saved as PROCESSING.
    await service._attempt_store().save(awaiting)

    retried = await PurchaseService.submit_upi_reference(
        _visitor(),
        awaiting.attempt_id,
        "TXN201",
        now_utc=NOW_UTC,
    )

    assert retried.step == "PROCESSING"
    assert retried.order_id == 1
    assert retried.payment_reference == "TXN200"
    assert len(purchase_env.order_store.orders) == 1
    assert len(purchase_env.debits) == 1
    assert purchase_env.accounts[1].coin_balance == 20


class _UnavailableRegistrySession:
    @asynccontextmanager
    async def begin(self):
        raise OperationalError("SELECT", {}, ConnectionRefusedError())
        yield


@pytest.mark.asyncio
async def test_registry_outage_does_not_block_an_eligible_purchase(
    purchase_env,
    monkeypatch,
) -> None:
    monkeypatch.setattr(service.AbuseRegistry, "ensure_not_blocked", _REAL_ENSURE_NOT_BLOCKED)
    monkeypatch.setattr(registry, "SessionLocal", _UnavailableRegistrySession())

    attempt = await PurchaseService.start_attempt(_visitor(), 7, now_utc=NOW_UTC)
    assert attempt.step == "DETAILS_CONFIRMATION"

    attempt, _ = await PurchaseService.choose_payment_method(
        _visitor(),
        attempt.attempt_id,
        "UPI",
        now_utc=NOW_UTC,
    )
    attempt = await PurchaseService.submit_upi_reference(
        _visitor(),
        attempt.attempt_id,
        "TXN123",
        now_utc=NOW_UTC,
    )

    assert attempt.step == "PROCESSING"
    assert purchase_env.order_store.orders[attempt.order_id]["payment_reference"] == "TXN123"
