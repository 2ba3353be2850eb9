"""Audit writers: login log and conversation log.

Each write is a single durable append in its own transaction. Unlike
best-effort logging, a failed write raises AuditWriteError; the caller
decides whether the enclosing operation fails.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sqlassist.config import settings
from sqlassist.db.engine import async_session_factory
from sqlassist.errors import AuditWriteError
from sqlassist.models.conversation_log import ConversationLog
from sqlassist.models.enums import FunctionMode, TurnRole
from sqlassist.models.login_log import LoginLog
from sqlassist.security.identifiers import generate_log_id

logger = logging.getLogger(__name__)


def _system_stamp() -> dict[str, object]:
    """Bookkeeping column values for a freshly inserted row."""
    audit = settings.audit
    now = datetime.now(UTC)
    return {
        "registered_at": now,
        "registered_by": audit.registrar_actor_id,
        "registered_org": audit.registrar_organization_id,
        "registered_system_code": audit.system_code,
        "registered_program_id": audit.program_id,
        "changed_at": now,
        "changed_by": audit.registrar_actor_id,
        "changed_org": audit.registrar_organization_id,
        "changed_system_code": audit.system_code,
        "changed_program_id": audit.program_id,
    }


class AuditWriter:
    """Append-only writer for the login and conversation audit tables."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create_login_log(self, actor_id: str, client_address: str | None) -> str:
        """Write one login record and return its log id.

        Raises:
            AuditWriteError: If the row could not be committed.
        """
        row = LoginLog(
            log_id=generate_log_id(),
            actor_id=actor_id,
            login_at=datetime.now(UTC),
            client_address=client_address,
            **_system_stamp(),
        )
        await self._append(row)
        logger.info("Login log written: id=%s actor=%s addr=%s", row.log_id, actor_id, client_address)
        return row.log_id

    async def create_conversation_log(
        self,
        *,
        login_log_id: str,
        conversation_id: str,
        seq: int,
        role: TurnRole,
        mode: FunctionMode,
        content: str,
    ) -> str:
        """Write one conversation turn and return its log id.

        Raises:
            AuditWriteError: If the row could not be committed, including a
                duplicate (conversation_id, seq).
        """
        row = ConversationLog(
            log_id=generate_log_id(),
            login_log_id=login_log_id,
            function_mode=mode.value,
            conversation_id=conversation_id,
            seq=seq,
            role=role.value,
            spoken_at=datetime.now(UTC),
            content=content,
            **_system_stamp(),
        )
        await self._append(row)
        logger.debug(
            "Conversation log written: cvrs=%s seq=%d role=%s chars=%d",
            conversation_id,
            seq,
            role.value,
            len(content),
        )
        return row.log_id

    async def latest_seq(self, conversation_id: str) -> int:
        """Highest committed seq for a conversation, 0 if it has no rows."""
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(func.max(ConversationLog.seq)).where(
                        ConversationLog.conversation_id == conversation_id
                    )
                )
                latest = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.exception("Failed to read latest seq for conversation %s", conversation_id)
            raise AuditWriteError(f"latest seq lookup failed: {exc}") from exc
        return int(latest or 0)

    async def _append(self, row: LoginLog | ConversationLog) -> None:
        try:
            async with self._session_factory() as db:
                db.add(row)
                await db.commit()
        except SQLAlchemyError as exc:
            logger.exception("Failed to persist audit row %r", row)
            raise AuditWriteError(f"{type(row).__name__} write failed: {exc}") from exc


# Module-level singleton
audit_writer = AuditWriter(async_session_factory)
