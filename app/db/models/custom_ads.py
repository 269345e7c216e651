from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, CheckConstraint, DateTime, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class CustomAd(Base):
    __tablename__ = "custom_ads"
    __table_args__ = (
        CheckConstraint("total_duration_sec >= 5", name="ck_custom_ads_total_duration_min"),
        CheckConstraint(
            "reward_time_sec IS NULL OR (reward_time_sec >= 1 AND reward_time_sec <= total_duration_sec)",
            name="ck_custom_ads_reward_time_range",
        ),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    video_url: Mapped[str] = mapped_column(Text, nullable=False)
    cta_text: Mapped[str] = mapped_column(String(64), nullable=False)
    cta_link: Mapped[str] = mapped_column(Text, nullable=False)
    total_duration_sec: Mapped[int] = mapped_column(Integer, nullable=False)
    reward_time_sec: Mapped[int | None] = mapped_column(Integer, nullable=True)
    hide_cta_button: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
