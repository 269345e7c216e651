from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class ProductControl(Base):
    __tablename__ = "product_controls"
    __table_args__ = (
        UniqueConstraint(
            "product_id",
            "account_real_id",
            name="uq_product_controls_product_account",
        ),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    product_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("products.id"), nullable=False)
    account_real_id: Mapped[str] = mapped_column(String(32), nullable=False)
    is_hidden: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
