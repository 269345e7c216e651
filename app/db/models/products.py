from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, CheckConstraint, DateTime, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("price > 0", name="ck_products_price_positive"),
        CheckConstraint("max_coin_discount >= 0", name="ck_products_max_coin_discount_non_negative"),
        CheckConstraint(
            "purchase_price IS NULL OR purchase_price > 0",
            name="ck_products_purchase_price_positive",
        ),
        CheckConstraint(
            "purchase_limit IS NULL OR purchase_limit > 0",
            name="ck_products_purchase_limit_positive",
        ),
        Index("idx_products_active", "is_active"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    price: Mapped[int] = mapped_column(Integer, nullable=False)
    max_coin_discount: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    is_coin_product: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))
    purchase_price: Mapped[int | None] = mapped_column(Integer, nullable=True)
    only_upi: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))
    purchase_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
