"""SQLAlchemy declarative base and shared mixins.

Audit tables are keyed by a 26-character generated log id and carry the
registrar/changer bookkeeping columns via SystemStampMixin.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""

    pass


class SystemStampMixin:
    """Mixin adding who/when/where bookkeeping columns to every audit table.

    The registered_* and changed_* groups are filled with the same values on
    insert; audit rows are append-only so they never diverge.
    """

    registered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    registered_by: Mapped[str] = mapped_column(String(8), nullable=False)
    registered_org: Mapped[str] = mapped_column(String(7), nullable=False)
    registered_system_code: Mapped[str] = mapped_column(String(3), nullable=False)
    registered_program_id: Mapped[str] = mapped_column(String(100), nullable=False)

    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    changed_by: Mapped[str] = mapped_column(String(8), nullable=False)
    changed_org: Mapped[str] = mapped_column(String(7), nullable=False)
    changed_system_code: Mapped[str] = mapped_column(String(3), nullable=False)
    changed_program_id: Mapped[str] = mapped_column(String(100), nullable=False)
