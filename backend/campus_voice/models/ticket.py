import uuid

from sqlalchemy import Column, String, DateTime, ForeignKey, Text, Integer, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func, text

from campus_voice.db.base import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class Ticket(Base):
    __tablename__ = "tickets"
    __table_args__ = (
        CheckConstraint("upvote_count >= 0", name="ck_tickets_upvote_count_non_negative"),
    )

    id = Column(String(36), primary_key=True, default=_new_id, server_default=text("gen_random_uuid()::text"))
    created_by = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)

    title = Column(String(100), nullable=False)
    description = Column(Text, nullable=False)
    category = Column(String(32), nullable=False)
    severity = Column(String(16), nullable=False)
    status = Column(String(16), nullable=False, default="open")  # open, in_progress, resolved
    visibility = Column(String(16), nullable=False, default="private")  # private, public
    upvote_count = Column(Integer, nullable=False, default=0)
    image_url = Column(String(511), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    author = relationship("Profile")
    upvotes = relationship("Upvote", back_populates="ticket", cascade="all, delete-orphan")


class Upvote(Base):
    __tablename__ = "upvotes"
    __table_args__ = (
        UniqueConstraint("ticket_id", "user_id", name="uq_upvotes_ticket_user"),
    )

    id = Column(String(36), primary_key=True, default=_new_id, server_default=text("gen_random_uuid()::text"))
    ticket_id = Column(String(36), ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    ticket = relationship("Ticket", back_populates="upvotes")
