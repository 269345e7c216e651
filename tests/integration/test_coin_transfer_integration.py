from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import func, select

from app.db.models.accounts import Account
from app.db.models.coin_ledger_entries import CoinLedgerEntry
from app.db.session import SessionLocal
from app.economy.coins.errors import InsufficientCoinsError
from app.economy.coins.service import CoinService
from tests.integration.storefront_fixtures import NOW_UTC, _create_account


async def _transfer(from_account_id: int, to_display_id: str, amount: int) -> object:
    async with SessionLocal.begin() as session:
        return await CoinService.transfer(
            session,
            from_account_id=from_account_id,
            to_display_id=to_display_id,
            amount=amount,
            now_utc=NOW_UTC,
        )


async def _total_balance() -> int:
    async with SessionLocal.begin() as session:
        return int(await session.scalar(select(func.sum(Account.coin_balance))) or 0)


@pytest.mark.asyncio
async def test_concurrent_transfers_never_overdraw_sender() -> None:
    sender_id = await _create_account("1000001", coin_balance=100)
    await _create_account("2000002")

    results = await asyncio.gather(
        *(_transfer(sender_id, "2000002", 15) for _ in range(10)),
        return_exceptions=True,
    )

    successes = [result for result in results if not isinstance(result, BaseException)]
    rejected = [result for result in results if isinstance(result, InsufficientCoinsError)]
    assert len(successes) == 6
    assert len(rejected) == 4
    assert await _total_balance() == 100

    async with SessionLocal.begin() as session:
        sender = await session.get(Account, sender_id)
        entries = await session.scalar(select(func.count()).select_from(CoinLedgerEntry))
    assert sender is not None
    assert sender.coin_balance == 10
    assert entries == 12


@pytest.mark.asyncio
async def test_opposing_transfers_complete_without_deadlock() -> None:
    first_id = await _create_account("1000001", coin_balance=50)
    second_id = await _create_account("2000002", coin_balance=50)

    transfers = [
        _transfer(first_id, "2000002", 5) if index % 2 == 0 else _transfer(second_id, "1000001", 5)
        for index in range(10)
    ]
    results = await asyncio.gather(*transfers, return_exceptions=True)

    assert all(not isinstance(result, BaseException) for result in results)
    assert await _total_balance() == 100


@pytest.mark.asyncio
async def test_transfer_to_visual_id_reaches_its_holder() -> None:
    sender_id = await _create_account("1000001", coin_balance=20)
    recipient_id = await _create_account("3000003", visual_id="4000004")

    result = await _transfer(sender_id, "4000004", 20)

    assert result.to_account_id == recipient_id
    assert result.to_balance_after == 20
