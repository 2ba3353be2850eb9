"""LoginLog model: one row per established browser session."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from sqlassist.models.base import Base, SystemStampMixin


class LoginLog(SystemStampMixin, Base):
    """Login audit record. Created once per session, never updated."""

    __tablename__ = "sql_assistant_login_log"

    log_id: Mapped[str] = mapped_column(String(26), primary_key=True)
    actor_id: Mapped[str] = mapped_column(String(8), nullable=False)
    login_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    client_address: Mapped[str | None] = mapped_column(String(40), comment="IPv4 or IPv6 address")

    def __repr__(self) -> str:
        return f"<LoginLog id={self.log_id} actor={self.actor_id}>"
