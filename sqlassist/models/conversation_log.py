"""ConversationLog model: append-only record of every USER and AI turn.

(conversation_id, seq) is unique: a seq value can be committed at most once,
which keeps retried or reconnected turns from duplicating audit rows.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from sqlassist.models.base import Base, SystemStampMixin


class ConversationLog(SystemStampMixin, Base):
    """A single conversation turn."""

    __tablename__ = "sql_assistant_conversation_log"
    __table_args__ = (
        UniqueConstraint("conversation_id", "seq", name="uq_conversation_log_cvrs_seq"),
        Index("ix_conversation_log_spoken_at", "spoken_at"),
    )

    log_id: Mapped[str] = mapped_column(String(26), primary_key=True)
    login_log_id: Mapped[str] = mapped_column(String(26), nullable=False, comment="Owning session's login log")
    function_mode: Mapped[str] = mapped_column(String(20), nullable=False)
    conversation_id: Mapped[str] = mapped_column(String(30), nullable=False)
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    role: Mapped[str] = mapped_column(String(10), nullable=False, comment="USER or AI")
    spoken_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    content: Mapped[str | None] = mapped_column(Text)

    def __repr__(self) -> str:
        return f"<ConversationLog cvrs={self.conversation_id} seq={self.seq} role={self.role}>"
