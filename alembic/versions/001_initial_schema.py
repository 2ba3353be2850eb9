"""Initial schema: login log and conversation log.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from __future__ import annotations

from typing import Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, tuple[str, ...], None] = None
depends_on: Union[str, tuple[str, ...], None] = None


def _system_stamp_columns() -> list[sa.Column]:
    return [
        sa.Column("registered_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("registered_by", sa.String(8), nullable=False),
        sa.Column("registered_org", sa.String(7), nullable=False),
        sa.Column("registered_system_code", sa.String(3), nullable=False),
        sa.Column("registered_program_id", sa.String(100), nullable=False),
        sa.Column("changed_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("changed_by", sa.String(8), nullable=False),
        sa.Column("changed_org", sa.String(7), nullable=False),
        sa.Column("changed_system_code", sa.String(3), nullable=False),
        sa.Column("changed_program_id", sa.String(100), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "sql_assistant_login_log",
        sa.Column("log_id", sa.String(26), nullable=False),
        sa.Column("actor_id", sa.String(8), nullable=False),
        sa.Column("login_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("client_address", sa.String(40), comment="IPv4 or IPv6 address"),
        *_system_stamp_columns(),
        sa.PrimaryKeyConstraint("log_id"),
    )
    op.create_index("ix_sql_assistant_login_log_login_at", "sql_assistant_login_log", ["login_at"])

    op.create_table(
        "sql_assistant_conversation_log",
        sa.Column("log_id", sa.String(26), nullable=False),
        sa.Column("login_log_id", sa.String(26), nullable=False, comment="Owning session's login log"),
        sa.Column("function_mode", sa.String(20), nullable=False),
        sa.Column("conversation_id", sa.String(30), nullable=False),
        sa.Column("seq", sa.Integer(), nullable=False),
        sa.Column("role", sa.String(10), nullable=False, comment="USER or AI"),
        sa.Column("spoken_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("content", sa.Text()),
        *_system_stamp_columns(),
        sa.PrimaryKeyConstraint("log_id"),
        sa.UniqueConstraint("conversation_id", "seq", name="uq_conversation_log_cvrs_seq"),
    )
    op.create_index("ix_conversation_log_spoken_at", "sql_assistant_conversation_log", ["spoken_at"])


def downgrade() -> None:
    op.drop_index("ix_conversation_log_spoken_at", table_name="sql_assistant_conversation_log")
    op.drop_table("sql_assistant_conversation_log")
    op.drop_index("ix_sql_assistant_login_log_login_at", table_name="sql_assistant_login_log")
    op.drop_table("sql_assistant_login_log")
