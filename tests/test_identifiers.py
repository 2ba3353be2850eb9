"""Tests for log-id and conversation-id generation."""

from __future__ import annotations

import re
from datetime import datetime

from sqlassist.security.identifiers import (
    CONVERSATION_ID_MAX_LENGTH,
    CONVERSATION_ID_PREFIX,
    LOG_ID_LENGTH,
    generate_conversation_id,
    generate_log_id,
)


class TestGenerateLogId:
    def test_length_and_digits(self):
        log_id = generate_log_id()
        assert len(log_id) == LOG_ID_LENGTH
        assert log_id.isdigit()

    def test_timestamp_prefix(self):
        now = datetime(2025, 10, 19, 14, 3, 9, 123456)
        log_id = generate_log_id(now)
        assert log_id.startswith("20251019140309123456")

    def test_sorts_by_creation_time(self):
        earlier = generate_log_id(datetime(2025, 1, 1, 0, 0, 0, 1))
        later = generate_log_id(datetime(2025, 1, 1, 0, 0, 0, 2))
        assert earlier < later

    def test_unique_within_same_instant(self):
        now = datetime(2025, 1, 1)
        ids = {generate_log_id(now) for _ in range(50)}
        assert len(ids) > 1


class TestGenerateConversationId:
    def test_format(self):
        cvrs_id = generate_conversation_id()
        assert cvrs_id.startswith(CONVERSATION_ID_PREFIX)
        assert re.fullmatch(r"cvrs_\d{13}_[0-9a-f]{6}", cvrs_id)

    def test_fits_column(self):
        assert len(generate_conversation_id()) <= CONVERSATION_ID_MAX_LENGTH

    def test_unique(self):
        ids = {generate_conversation_id() for _ in range(100)}
        assert len(ids) == 100
