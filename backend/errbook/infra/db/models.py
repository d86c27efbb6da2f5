from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from errbook.infra.db.base import Base


class ErrorItemRow(Base):
    __tablename__ = "error_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    public_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    question_text: Mapped[str] = mapped_column(Text)
    answer_text: Mapped[str] = mapped_column(Text)
    analysis: Mapped[str] = mapped_column(Text)
    subject: Mapped[str] = mapped_column(String(32), default="other", index=True)
    original_image_url: Mapped[str | None] = mapped_column(Text)
    mastery_level: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), index=True)

    knowledge_points: Mapped[list[KnowledgePointRow]] = relationship(
        back_populates="item",
        cascade="all, delete-orphan",
        order_by="KnowledgePointRow.position",
    )


class KnowledgePointRow(Base):
    __tablename__ = "error_item_knowledge_points"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    item_id: Mapped[int] = mapped_column(ForeignKey("error_items.id", ondelete="CASCADE"), index=True)
    position: Mapped[int] = mapped_column(Integer, default=0)
    name: Mapped[str] = mapped_column(Text, index=True)

    item: Mapped[ErrorItemRow] = relationship(back_populates="knowledge_points")
