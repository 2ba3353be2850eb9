"""SQLAlchemy ORM models for the SQL assistant audit trail.

Import all models here so Alembic and Base.metadata.create_all() discover them.
"""

from __future__ import annotations

from sqlassist.models.base import Base
from sqlassist.models.conversation_log import ConversationLog
from sqlassist.models.enums import FunctionMode, TurnRole, TurnState
from sqlassist.models.login_log import LoginLog

__all__ = [
    # Base
    "Base",
    # Models
    "LoginLog",
    "ConversationLog",
    # Enums
    "FunctionMode",
    "TurnRole",
    "TurnState",
]
