from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class BlockedIdentifier(Base):
    __tablename__ = "blocked_identifiers"
    __table_args__ = (
        CheckConstraint(
            "kind IN ('IP','FINGERPRINT','ACCOUNT_ID')",
            name="ck_blocked_identifiers_kind",
        ),
        CheckConstraint("length(reason) > 0", name="ck_blocked_identifiers_reason_present"),
        Index("idx_blocked_identifiers_kind_value", "kind", "value"),
        Index("idx_blocked_identifiers_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    value: Mapped[str] = mapped_column(String(256), unique=True, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
