from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_orders_amount_non_negative"),
        CheckConstraint("coins_applied >= 0", name="ck_orders_coins_applied_non_negative"),
        CheckConstraint(
            "payment_method IN ('UPI','REDEEM_CODE')",
            name="ck_orders_payment_method",
        ),
        CheckConstraint(
            "status IN ('PROCESSING','COMPLETED','FAILED')",
            name="ck_orders_status",
        ),
        UniqueConstraint(
            "payment_method",
            "payment_reference",
            name="uq_orders_payment_reference",
        ),
        UniqueConstraint("attempt_id", name="uq_orders_attempt_id"),
        Index("idx_orders_account_product", "account_id", "product_id"),
        Index("idx_orders_status_created", "status", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    product_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("products.id"), nullable=False)
    account_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("accounts.id"), nullable=False)
    attempt_id: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    coins_applied: Mapped[int] = mapped_column(Integer, nullable=False)
    payment_method: Mapped[str] = mapped_column(String(16), nullable=False)
    payment_reference: Mapped[str] = mapped_column(String(128), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
