from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class AccountNetworkOrigin(Base):
    __tablename__ = "account_network_origins"
    __table_args__ = (
        Index("idx_account_network_origins_account_recorded", "account_id", "recorded_at"),
        Index("idx_account_network_origins_ip", "ip"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    account_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("accounts.id"), nullable=False)
    ip: Mapped[str] = mapped_column(String(45), nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
