from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, CheckConstraint, DateTime, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class Account(Base):
    __tablename__ = "accounts"
    __table_args__ = (
        CheckConstraint("coin_balance >= 0", name="ck_accounts_coin_balance_non_negative"),
        CheckConstraint(
            "visual_id IS NULL OR visual_id <> real_id",
            name="ck_accounts_visual_id_differs",
        ),
        Index("idx_accounts_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    real_id: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    visual_id: Mapped[str | None] = mapped_column(String(32), unique=True, nullable=True)
    coin_balance: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    is_redeem_disabled: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("false"),
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
