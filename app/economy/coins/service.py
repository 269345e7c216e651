from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enforcement import run_with_policy
from app.db.models.accounts import Account
from app.db.models.coin_ledger_entries import CoinLedgerEntry
from app.db.repo.accounts_repo import AccountsRepo
from app.db.repo.coin_ledger_repo import CoinLedgerRepo
from app.economy.coins.errors import (
    CoinAccountNotFoundError,
    CoinAmountInvalidError,
    CoinIdempotencyConflictError,
    InsufficientCoinsError,
    RecipientNotFoundError,
    SelfTransferError,
)
from app.economy.coins.types import CoinMovementResult, TransferResult
from app.identity.registration import resolve_display_id

logger = structlog.get_logger(__name__)


def _validate_amount(amount: object) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 1:
        raise CoinAmountInvalidError
    return amount


def _ledger_entry(
    account: Account,
    *,
    entry_type: str,
    direction: str,
    amount: int,
    idempotency_key: str,
    now_utc: datetime,
    counterparty_account_id: int | None = None,
    order_id: int | None = None,
    metadata: dict[str, object] | None = None,
) -> CoinLedgerEntry:
    return CoinLedgerEntry(
        account_id=account.id,
        counterparty_account_id=counterparty_account_id,
        order_id=order_id,
        entry_type=entry_type,
        direction=direction,
        amount=amount,
        balance_after=account.coin_balance,
        idempotency_key=idempotency_key,
        metadata_=metadata or {},
        created_at=now_utc,
    )


class CoinService:
    @staticmethod
    async def get_balance(session: AsyncSession, account_id: int) -> int:
        account = await AccountsRepo.get_by_id(session, account_id)
        if account is None:
            raise CoinAccountNotFoundError
        return int(account.coin_balance)

    @staticmethod
    async def _transfer_locked(
        session: AsyncSession,
        *,
        from_account_id: int,
        to_display_id: str,
        amount: int,
        now_utc: datetime,
    ) -> TransferResult:
        recipient_ref = await resolve_display_id(session, to_display_id)
        if recipient_ref is None:
            raise RecipientNotFoundError
        if recipient_ref.id == from_account_id:
            raise SelfTransferError

        locked = {
            account.id: account
            for account in await AccountsRepo.list_by_ids_for_update(
                session,
                [from_account_id, recipient_ref.id],
            )
        }
        sender = locked.get(from_account_id)
        recipient = locked.get(recipient_ref.id)
        if sender is None:
            raise CoinAccountNotFoundError
        if recipient is None:
            raise RecipientNotFoundError
        if sender.coin_balance < amount:
            raise InsufficientCoinsError

        sender.coin_balance -= amount
        sender.updated_at = now_utc
        recipient.coin_balance += amount
        recipient.updated_at = now_utc

        transfer_id = str(uuid4())
        await CoinLedgerRepo.create(
            session,
            entry=_ledger_entry(
                sender,
                entry_type="TRANSFER",
                direction="DEBIT",
                amount=amount,
                idempotency_key=f"transfer:{transfer_id}:debit",
                counterparty_account_id=recipient.id,
                now_utc=now_utc,
            ),
        )
        await CoinLedgerRepo.create(
            session,
            entry=_ledger_entry(
                recipient,
                entry_type="TRANSFER",
                direction="CREDIT",
                amount=amount,
                idempotency_key=f"transfer:{transfer_id}:credit",
                counterparty_account_id=sender.id,
                now_utc=now_utc,
            ),
        )
        return TransferResult(
            transfer_id=transfer_id,
            from_account_id=int(sender.id),
            to_account_id=int(recipient.id),
            amount=amount,
            from_balance_after=int(sender.coin_balance),
            to_balance_after=int(recipient.coin_balance),
        )

    @staticmethod
    async def transfer(
        session: AsyncSession,
        *,
        from_account_id: int,
        to_display_id: str,
        amount: int,
        now_utc: datetime | None = None,
    ) -> TransferResult:
        amount = _validate_amount(amount)
        result = await run_with_policy(
            "coins.transfer",
            lambda: CoinService._transfer_locked(
                session,
                from_account_id=from_account_id,
                to_display_id=to_display_id,
                amount=amount,
                now_utc=now_utc or datetime.now(timezone.utc),
            ),
            fallback=None,
        )
        logger.info(
            "coins_transferred",
            transfer_id=result.transfer_id,
            from_account_id=result.from_account_id,
            to_account_id=result.to_account_id,
            amount=amount,
        )
        return result

    @staticmethod
    async def _apply_movement(
        session: AsyncSession,
        *,
        account_id: int,
        amount: int,
        direction: str,
        entry_type: str,
        idempotency_key: str,
        now_utc: datetime,
        order_id: int | None,
        metadata: dict[str, object] | None,
    ) -> CoinMovementResult:
        amount = _validate_amount(amount)
        existing = await CoinLedgerRepo.get_by_idempotency_key(session, idempotency_key)
        if existing is not None:
            if (
                existing.account_id != account_id
                or existing.direction != direction
                or existing.amount != amount
                or existing.order_id != order_id
            ):
                raise CoinIdempotencyConflictError
            return CoinMovementResult(
                account_id=account_id,
                amount=amount,
                direction=direction,
                balance_after=int(existing.balance_after),
                idempotent_replay=True,
            )

        account = await AccountsRepo.get_by_id_for_update(session, account_id)
        if account is None:
            raise CoinAccountNotFoundError
        if direction == "DEBIT":
            if account.coin_balance < amount:
                raise InsufficientCoinsError
            account.coin_balance -= amount
        else:
            account.coin_balance += amount
        account.updated_at = now_utc

        await CoinLedgerRepo.create(
            session,
            entry=_ledger_entry(
                account,
                entry_type=entry_type,
                direction=direction,
                amount=amount,
                idempotency_key=idempotency_key,
                order_id=order_id,
                metadata=metadata,
                now_utc=now_utc,
            ),
        )
        return CoinMovementResult(
            account_id=account_id,
            amount=amount,
            direction=direction,
            balance_after=int(account.coin_balance),
            idempotent_replay=False,
        )

    @staticmethod
    async def credit(
        session: AsyncSession,
        *,
        account_id: int,
        amount: int,
        entry_type: str,
        idempotency_key: str,
        now_utc: datetime,
        order_id: int | None = None,
        metadata: dict[str, object] | None = None,
    ) -> CoinMovementResult:
        return await CoinService._apply_movement(
            session,
            account_id=account_id,
            amount=amount,
            direction="CREDIT",
            entry_type=entry_type,
            idempotency_key=idempotency_key,
            now_utc=now_utc,
            order_id=order_id,
            metadata=metadata,
        )

    @staticmethod
    async def debit(
        session: AsyncSession,
        *,
        account_id: int,
        amount: int,
        entry_type: str,
        idempotency_key: str,
        now_utc: datetime,
        order_id: int | None = None,
        metadata: dict[str, object] | None = None,
    ) -> CoinMovementResult:
        return await CoinService._apply_movement(
            session,
            account_id=account_id,
            amount=amount,
            direction="DEBIT",
            entry_type=entry_type,
            idempotency_key=idempotency_key,
            now_utc=now_utc,
            order_id=order_id,
            metadata=metadata,
        )
