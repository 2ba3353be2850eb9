"""Tests for the audit writer.

Uses a mocked async session factory; no database is touched.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from sqlassist.errors import AuditWriteError
from sqlassist.models.conversation_log import ConversationLog
from sqlassist.models.enums import FunctionMode, TurnRole
from sqlassist.models.login_log import LoginLog
from sqlassist.security.audit import AuditWriter

LOGIN_LOG_ID = "20251019140309123456000001"


@pytest.fixture()
def db():
    session = MagicMock()
    session.commit = AsyncMock()
    session.execute = AsyncMock()
    return session


@pytest.fixture()
def writer(db):
    factory = MagicMock()
    factory.return_value.__aenter__ = AsyncMock(return_value=db)
    factory.return_value.__aexit__ = AsyncMock(return_value=False)
    return AuditWriter(factory)


class TestLoginLog:
    @pytest.mark.asyncio
    async def test_row_contents(self, writer, db):
        log_id = await writer.create_login_log(actor_id="TESTUSER", client_address="10.0.0.7")

        row = db.add.call_args.args[0]
        assert isinstance(row, LoginLog)
        assert row.log_id == log_id
        assert len(log_id) == 26
        assert row.actor_id == "TESTUSER"
        assert row.client_address == "10.0.0.7"
        assert row.registered_by == "SYSPRAF"
        assert row.registered_system_code == "ISA"
        assert row.registered_program_id == "SQL Assistant"
        db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_commit_failure_raises(self, writer, db):
        db.commit.side_effect = OperationalError("INSERT", {}, Exception("connection lost"))
        with pytest.raises(AuditWriteError, match="LoginLog write failed"):
            await writer.create_login_log(actor_id="TESTUSER", client_address=None)


class TestConversationLog:
    @pytest.mark.asyncio
    async def test_row_contents(self, writer, db):
        await writer.create_conversation_log(
            login_log_id=LOGIN_LOG_ID,
            conversation_id="cvrs_1760870400123_a1b2c3",
            seq=3,
            role=TurnRole.AI,
            mode=FunctionMode.EXPLAIN,
            content="This query counts users.",
        )

        row = db.add.call_args.args[0]
        assert isinstance(row, ConversationLog)
        assert row.login_log_id == LOGIN_LOG_ID
        assert row.conversation_id == "cvrs_1760870400123_a1b2c3"
        assert row.seq == 3
        assert row.role == "AI"
        assert row.function_mode == "explain"
        assert row.content == "This query counts users."
        assert row.spoken_at is not None

    @pytest.mark.asyncio
    async def test_duplicate_seq_raises(self, writer, db):
        db.commit.side_effect = IntegrityError("INSERT", {}, Exception("uq_conversation_log_cvrs_seq"))
        with pytest.raises(AuditWriteError):
            await writer.create_conversation_log(
                login_log_id=LOGIN_LOG_ID,
                conversation_id="cvrs_x",
                seq=1,
                role=TurnRole.USER,
                mode=FunctionMode.CREATE,
                content="list users",
            )


class TestLatestSeq:
    @pytest.mark.asyncio
    async def test_existing_conversation(self, writer, db):
        result = MagicMock()
        result.scalar_one_or_none.return_value = 4
        db.execute.return_value = result
        assert await writer.latest_seq("cvrs_x") == 4

    @pytest.mark.asyncio
    async def test_unknown_conversation(self, writer, db):
        result = MagicMock()
        result.scalar_one_or_none.return_value = None
        db.execute.return_value = result
        assert await writer.latest_seq("cvrs_unknown") == 0

    @pytest.mark.asyncio
    async def test_read_failure_raises(self, writer, db):
        db.execute.side_effect = OperationalError("SELECT", {}, Exception("connection lost"))
        with pytest.raises(AuditWriteError):
            await writer.latest_seq("cvrs_x")
