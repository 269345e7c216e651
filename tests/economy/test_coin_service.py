from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from app.economy.coins import service as coin_service
from app.economy.coins.errors import (
    CoinAccountNotFoundError,
    CoinAmountInvalidError,
    CoinIdempotencyConflictError,
    InsufficientCoinsError,
    RecipientNotFoundError,
    SelfTransferError,
)
from app.economy.coins.service import CoinService

NOW_UTC = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)


def _account(account_id: int, real_id: str, balance: int, visual_id: str | None = None):
    return SimpleNamespace(
        id=account_id,
        real_id=real_id,
        visual_id=visual_id,
        coin_balance=balance,
        updated_at=None,
    )


class _Entries(list):
    def __init__(self) -> None:
        super().__init__()
        self.lock_orders: list[list[int]] = []


def _patch_store(monkeypatch, accounts: list[SimpleNamespace]) -> _Entries:
    entries = _Entries()

    async def _fake_resolve(session, display_id: str):
        for account in accounts:
            if account.visual_id == display_id:
                return account
            if account.real_id == display_id and account.visual_id is None:
                return account
        return None

    async def _fake_lock_many(session, account_ids: list[int]):
        ordered = sorted(set(account_ids))
        entries.lock_orders.append(ordered)
        return [account for account in accounts if account.id in ordered]

    async def _fake_lock_one(session, account_id: int):
        return next((account for account in accounts if account.id == account_id), None)

    async def _fake_create_entry(session, *, entry):
        entries.append(entry)
        return entry

    async def _fake_get_by_key(session, idempotency_key: str):
        return next(
            (entry for entry in entries if entry.idempotency_key == idempotency_key),
            None,
        )

    monkeypatch.setattr(coin_service, "resolve_display_id", _fake_resolve)
    monkeypatch.setattr(coin_service.AccountsRepo, "list_by_ids_for_update", _fake_lock_many)
    monkeypatch.setattr(coin_service.AccountsRepo, "get_by_id_for_update", _fake_lock_one)
    monkeypatch.setattr(coin_service.CoinLedgerRepo, "create", _fake_create_entry)
    monkeypatch.setattr(coin_service.CoinLedgerRepo, "get_by_idempotency_key", _fake_get_by_key)
    return entries


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -5, True, 1.5, "10"])
async def test_transfer_rejects_invalid_amounts(amount: object) -> None:
    with pytest.raises(CoinAmountInvalidError):
        await CoinService.transfer(
            object(),
            from_account_id=1,
            to_display_id="2000002",
            amount=amount,  # type: ignore[arg-type]
        )


@pytest.mark.asyncio
async def test_transfer_moves_coins_and_writes_paired_entries(monkeypatch) -> None:
    sender = _account(1, "1000001", 100)
    recipient = _account(2, "2000002", 5)
    entries = _patch_store(monkeypatch, [sender, recipient])

    result = await CoinService.transfer(
        object(),
        from_account_id=1,
        to_display_id="2000002",
        amount=40,
        now_utc=NOW_UTC,
    )

    assert sender.coin_balance == 60
    assert recipient.coin_balance == 45
    assert result.from_balance_after == 60
    assert result.to_balance_after == 45
    assert [(entry.direction, entry.amount) for entry in entries] == [
        ("DEBIT", 40),
        ("CREDIT", 40),
    ]
    assert entries[0].counterparty_account_id == 2
    assert entries[1].counterparty_account_id == 1
    assert entries[0].idempotency_key.startswith(f"transfer:{result.transfer_id}:")


@pytest.mark.asyncio
async def test_transfer_resolves_recipient_by_visual_id(monkeypatch) -> None:
    sender = _account(1, "1000001", 10)
    recipient = _account(2, "2000002", 0, visual_id="7777777")
    _patch_store(monkeypatch, [sender, recipient])

    result = await CoinService.transfer(
        object(),
        from_account_id=1,
        to_display_id="7777777",
        amount=10,
    )

    assert result.to_account_id == 2
    assert sender.coin_balance == 0
    assert recipient.coin_balance == 10


@pytest.mark.asyncio
async def test_transfer_rejects_insufficient_balance_without_side_effects(monkeypatch) -> None:
    sender = _account(1, "1000001", 10)
    recipient = _account(2, "2000002", 0)
    entries = _patch_store(monkeypatch, [sender, recipient])

    with pytest.raises(InsufficientCoinsError):
        await CoinService.transfer(
            object(),
            from_account_id=1,
            to_display_id="2000002",
            amount=11,
        )

    assert sender.coin_balance == 10
    assert recipient.coin_balance == 0
    assert entries == []


@pytest.mark.asyncio
async def test_transfer_rejects_self_transfer(monkeypatch) -> None:
    sender = _account(1, "1000001", 10)
    _patch_store(monkeypatch, [sender])

    with pytest.raises(SelfTransferError):
        await CoinService.transfer(
            object(),
            from_account_id=1,
            to_display_id="1000001",
            amount=1,
        )


@pytest.mark.asyncio
async def test_transfer_rejects_unknown_recipient(monkeypatch) -> None:
    _patch_store(monkeypatch, [_account(1, "1000001", 10)])

    with pytest.raises(RecipientNotFoundError):
        await CoinService.transfer(
            object(),
            from_account_id=1,
            to_display_id="9999999",
            amount=1,
        )


@pytest.mark.asyncio
async def test_transfer_locks_accounts_in_id_order(monkeypatch) -> None:
    sender = _account(9, "1000009", 10)
    recipient = _account(3, "1000003", 0)
    entries = _patch_store(monkeypatch, [sender, recipient])

    await CoinService.transfer(object(), from_account_id=9, to_display_id="1000003", amount=1)

    assert entries.lock_orders == [[3, 9]]


@pytest.mark.asyncio
async def test_debit_is_idempotent_per_key(monkeypatch) -> None:
    account = _account(1, "1000001", 50)
    entries = _patch_store(monkeypatch, [account])

    first = await CoinService.debit(
        object(),
        account_id=1,
        amount=20,
        entry_type="PURCHASE_DISCOUNT",
        idempotency_key="purchase:abc:coins",
        now_utc=NOW_UTC,
    )
    replay = await CoinService.debit(
        object(),
        account_id=1,
        amount=20,
        entry_type="PURCHASE_DISCOUNT",
        idempotency_key="purchase:abc:coins",
        now_utc=NOW_UTC,
    )

    assert first.balance_after == 30
    assert first.idempotent_replay is False
    assert replay.balance_after == 30
    assert replay.idempotent_replay is True
    assert account.coin_balance == 30
    assert len(entries) == 1


@pytest.mark.asyncio
async def test_movement_with_reused_key_and_different_amount_conflicts(monkeypatch) -> None:
    account = _account(1, "1000001", 50)
    _patch_store(monkeypatch, [account])

    await CoinService.credit(
        object(),
        account_id=1,
        amount=5,
        entry_type="ADMIN_GRANT",
        idempotency_key="grant:1",
        now_utc=NOW_UTC,
    )

    with pytest.raises(CoinIdempotencyConflictError):
        await CoinService.credit(
            object(),
            account_id=1,
            amount=6,
            entry_type="ADMIN_GRANT",
            idempotency_key="grant:1",
            now_utc=NOW_UTC,
        )


@pytest.mark.asyncio
async def test_get_balance_reads_account_balance(monkeypatch) -> None:
    account = _account(1, "1000001", 42)

    async def _fake_get(session, account_id: int):
        return account if account_id == 1 else None

    monkeypatch.setattr(coin_service.AccountsRepo, "get_by_id", _fake_get)

    assert await CoinService.get_balance(object(), 1) == 42
    with pytest.raises(CoinAccountNotFoundError):
        await CoinService.get_balance(object(), 2)


@pytest.mark.asyncio
async def test_reused_key_for_a_different_order_conflicts(monkeypatch) -> None:
    account = _account(1, "1000001", 100)
    entries = _patch_store(monkeypatch, [account])

    await CoinService.debit(
        object(),
        account_id=1,
        amount=30,
        entry_type="PURCHASE_DISCOUNT",
        idempotency_key="purchase:abc:coins",
        order_id=11,
        now_utc=NOW_UTC,
    )

    with pytest.raises(CoinIdempotencyConflictError):
        await CoinService.debit(
            object(),
            account_id=1,
            amount=30,
            entry_type="PURCHASE_DISCOUNT",
            idempotency_key="purchase:abc:coins",
            order_id=12,
            now_utc=NOW_UTC,
        )

    assert account.coin_balance == 70
    assert len(entries) == 1
