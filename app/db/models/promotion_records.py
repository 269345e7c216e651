from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class PromotionRecord(Base):
    __tablename__ = "promotion_records"
    __table_args__ = (
        CheckConstraint(
            "trigger IN ('LOGOUT','PRE_REGISTRATION')",
            name="ck_promotion_records_trigger",
        ),
        CheckConstraint("old_real_id <> new_real_id", name="ck_promotion_records_ids_differ"),
        Index("idx_promotion_records_old_real_id", "old_real_id"),
        Index("idx_promotion_records_new_real_id", "new_real_id"),
        Index("idx_promotion_records_promoted_at", "promoted_at"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    account_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("accounts.id"), nullable=False)
    old_real_id: Mapped[str] = mapped_column(String(32), nullable=False)
    new_real_id: Mapped[str] = mapped_column(String(32), nullable=False)
    trigger: Mapped[str] = mapped_column(String(32), nullable=False)
    promoted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
