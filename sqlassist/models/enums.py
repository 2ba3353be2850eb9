"""Domain enums used across SQLAlchemy models, wire schemas and the orchestrator.

All enums use str mixin for JSON serialization.
"""

from __future__ import annotations

from enum import Enum


class FunctionMode(str, Enum):
    """AI function requested by the client. Each mode has its own credential."""

    CREATE = "create"
    EXPLAIN = "explain"
    GRAMMAR = "grammar"
    COMMENT = "comment"
    TRANSFORM = "transform"


class TurnRole(str, Enum):
    """Author of one conversation turn, as stored in the audit log."""

    USER = "USER"
    AI = "AI"


class TurnState(str, Enum):
    """Lifecycle of one correlated request inside the orchestrator."""

    RECEIVED = "received"
    AUDITED_USER_TURN = "audited_user_turn"
    GENERATING = "generating"
    AUDITED_AI_TURN = "audited_ai_turn"
    EMITTED = "emitted"
    FAILED = "failed"


TERMINAL_TURN_STATES: frozenset[TurnState] = frozenset({TurnState.EMITTED, TurnState.FAILED})
