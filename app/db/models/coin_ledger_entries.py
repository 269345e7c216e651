from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class CoinLedgerEntry(Base):
    __tablename__ = "coin_ledger_entries"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_coin_ledger_entries_amount_positive"),
        CheckConstraint("balance_after >= 0", name="ck_coin_ledger_entries_balance_non_negative"),
        CheckConstraint("direction IN ('CREDIT','DEBIT')", name="ck_coin_ledger_entries_direction"),
        Index("idx_coin_ledger_account_created", "account_id", "created_at"),
        Index("idx_coin_ledger_order", "order_id"),
        Index("idx_coin_ledger_type", "entry_type"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    account_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("accounts.id"), nullable=False)
    counterparty_account_id: Mapped[int | None] = mapped_column(
        BigInteger,
        ForeignKey("accounts.id"),
        nullable=True,
    )
    order_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey("orders.id"), nullable=True)
    entry_type: Mapped[str] = mapped_column(String(32), nullable=False)
    direction: Mapped[str] = mapped_column(String(8), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    idempotency_key: Mapped[str] = mapped_column(String(96), unique=True, nullable=False)
    metadata_: Mapped[dict[str, object]] = mapped_column(
        "metadata",
        JSONB,
        nullable=False,
        server_default=text("'{}'::jsonb"),
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
