from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Date, DateTime, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.portal.models import Base, Profile


class SalesMetric(Base):
    """One user's self-reported sales for one calendar month."""

    __tablename__ = "sales_metrics"
    __table_args__ = (
        UniqueConstraint("user_id", "metric_month", name="uq_sales_metrics_user_month"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    metric_month: Mapped[date] = mapped_column(Date, nullable=False, index=True)  # always the 1st of the month

    rn_auto: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    fire: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    life: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    health: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    life_premium: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    health_premium: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_sales: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # rn_auto + fire + life + health

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    user: Mapped[Profile] = relationship(lazy="selectin")
