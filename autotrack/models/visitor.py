from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from autotrack.db.base import Base


class Visitor(Base):
    """One anonymous browser/device, identified by the long-lived visitor cookie."""

    __tablename__ = "visitors"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    ip_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    country: Mapped[str] = mapped_column(String(64), nullable=False, default="Unknown", index=True)
    first_seen: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    last_seen: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Relationships
    sessions: Mapped[list[VisitorSession]] = relationship(
        "VisitorSession", back_populates="visitor", cascade="all, delete-orphan"
    )


class VisitorSession(Base):
    """A bounded burst of activity; closed implicitly once the timeout elapses."""

    __tablename__ = "sessions"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    visitor_id: Mapped[str] = mapped_column(
        ForeignKey("visitors.id", ondelete="CASCADE"), nullable=False
    )
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    last_activity_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    visitor: Mapped[Visitor] = relationship("Visitor", back_populates="sessions")

    __table_args__ = (Index("ix_sessions_visitor_activity", "visitor_id", "last_activity_at"),)
