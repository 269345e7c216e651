from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class TransferResult:
    transfer_id: str
    from_account_id: int
    to_account_id: int
    amount: int
    from_balance_after: int
    to_balance_after: int


@dataclass(frozen=True, slots=True)
class CoinMovementResult:
    account_id: int
    amount: int
    direction: str
    balance_after: int
    idempotent_replay: bool
