from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.portal.models import Base


class Document(Base):
    """A downloadable resource in the member library (the file itself lives at file_url)."""

    __tablename__ = "documents"
    __table_args__ = (
        Index("idx_documents_created_at", "created_at"),
        Index("idx_documents_category", "category"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_url: Mapped[str] = mapped_column(String(1024), nullable=False)
    category: Mapped[str | None] = mapped_column(String(128), nullable=True)  # e.g. "Marketing", "Training"
    file_type: Mapped[str | None] = mapped_column(String(32), nullable=True)  # display label, e.g. "PDF"
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
