"""Tests for the streaming generation client.

Covers: parse_event_line, reassemble_stream, GenerationClient credential
selection, request shape and failure categorization.

Uses httpx.MockTransport in place of the generation service.
"""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from sqlassist.config import GenerationSettings
from sqlassist.errors import ConfigurationError, TransportCategory, TransportError
from sqlassist.llm.client import GenerationClient, parse_event_line, reassemble_stream
from sqlassist.models.enums import FunctionMode

API_URL = "http://ai.test/v1/chat-messages"


def _sse(*events: dict) -> bytes:
    return "".join(f"data: {json.dumps(e)}\n\n" for e in events).encode()


def _config(**tokens: str) -> GenerationSettings:
    return GenerationSettings(
        ai_api_base_url=API_URL,
        sql_assistant_api_key_sql_creation=tokens.get("create", ""),
        sql_assistant_api_key_sql_explanation=tokens.get("explain", ""),
        sql_assistant_api_key_sql_grammar=tokens.get("grammar", ""),
        sql_assistant_api_key_sql_comment=tokens.get("comment", ""),
        sql_assistant_api_key_sql_transformation=tokens.get("transform", ""),
        request_timeout=5.0,
    )


def _client(handler, **tokens: str) -> GenerationClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GenerationClient(config=_config(**tokens), http_client=http_client)


async def _lines(*lines: str):
    for line in lines:
        yield line


# ── parse_event_line ────────────────────────────────────────────────


class TestParseEventLine:
    def test_data_line(self):
        assert parse_event_line('data: {"event": "message", "answer": "x"}') == {
            "event": "message",
            "answer": "x",
        }

    def test_blank_and_comment(self):
        assert parse_event_line("") is None
        assert parse_event_line("   ") is None
        assert parse_event_line(": keep-alive") is None

    def test_non_data_field(self):
        assert parse_event_line("event: message") is None

    def test_malformed_json(self):
        assert parse_event_line("data: {not json") is None

    def test_non_object_payload(self):
        assert parse_event_line("data: [1, 2]") is None


# ── reassemble_stream ───────────────────────────────────────────────


class TestReassembleStream:
    @pytest.mark.asyncio
    async def test_concatenates_until_message_end(self):
        answer = await reassemble_stream(
            _lines(
                'data: {"event": "message", "answer": "SELECT "}',
                'data: {"event": "message", "answer": "* FROM users"}',
                'data: {"event": "message_end"}',
            )
        )
        assert answer == "SELECT * FROM users"

    @pytest.mark.asyncio
    async def test_ignores_noise(self):
        answer = await reassemble_stream(
            _lines(
                ": comment",
                "",
                'data: {"event": "ping"}',
                "data: {broken",
                'data: {"event": "message", "answer": "ok"}',
                'data: {"event": "message", "answer": 42}',
                'data: {"event": "message_end"}',
            )
        )
        assert answer == "ok"

    @pytest.mark.asyncio
    async def test_missing_message_end_fails(self):
        """A partial answer is never returned."""
        with pytest.raises(TransportError, match="before message_end after 2 fragments"):
            await reassemble_stream(
                _lines(
                    'data: {"event": "message", "answer": "SELECT "}',
                    'data: {"event": "message", "answer": "*"}',
                )
            )

    @pytest.mark.asyncio
    async def test_error_event(self):
        with pytest.raises(TransportError, match="quota exceeded") as exc_info:
            await reassemble_stream(_lines('data: {"event": "error", "message": "quota exceeded"}'))
        assert exc_info.value.category == TransportCategory.GENERIC

    @pytest.mark.asyncio
    async def test_fragments_after_message_end_ignored(self):
        answer = await reassemble_stream(
            _lines(
                'data: {"event": "message", "answer": "a"}',
                'data: {"event": "message_end"}',
                'data: {"event": "message", "answer": "b"}',
            )
        )
        assert answer == "a"


# ── Credentials ─────────────────────────────────────────────────────


class TestCredentials:
    def test_each_mode_uses_own_token(self):
        client = _client(lambda r: httpx.Response(200), create="tok-c", explain="tok-e")
        assert client.credential_for(FunctionMode.CREATE) == "tok-c"
        assert client.credential_for(FunctionMode.EXPLAIN) == "tok-e"

    def test_no_fallback_to_other_mode(self):
        client = _client(lambda r: httpx.Response(200), create="tok-c")
        with pytest.raises(ConfigurationError):
            client.credential_for(FunctionMode.EXPLAIN)

    def test_whitespace_token_is_missing(self):
        client = _client(lambda r: httpx.Response(200), grammar="   ")
        with pytest.raises(ConfigurationError):
            client.credential_for(FunctionMode.GRAMMAR)

    def test_missing_credentials(self):
        client = _client(lambda r: httpx.Response(200), create="a", comment="b")
        assert client.missing_credentials() == [
            FunctionMode.EXPLAIN,
            FunctionMode.GRAMMAR,
            FunctionMode.TRANSFORM,
        ]


# ── generate ────────────────────────────────────────────────────────


class TestGenerate:
    @pytest.mark.asyncio
    async def test_request_shape_and_answer(self):
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                content=_sse(
                    {"event": "message", "answer": "SELECT * "},
                    {"event": "message", "answer": "FROM users"},
                    {"event": "message_end"},
                ),
            )

        client = _client(handler, create="tok-create")
        answer = await client.generate(FunctionMode.CREATE, "list users", user="TESTUSER")

        assert answer == "SELECT * FROM users"
        assert seen["url"] == API_URL
        assert seen["auth"] == "Bearer tok-create"
        assert seen["body"] == {
            "inputs": {},
            "query": "list users",
            "response_mode": "streaming",
            "user": "TESTUSER",
        }

    @pytest.mark.asyncio
    async def test_default_user(self):
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, content=_sse({"event": "message_end"}))

        client = _client(handler, explain="tok")
        assert await client.generate(FunctionMode.EXPLAIN, "q") == ""
        assert seen["body"]["user"] == "sql-assistant-user"

    @pytest.mark.asyncio
    async def test_missing_credential_sends_nothing(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200)

        client = _client(handler, create="tok")
        with pytest.raises(ConfigurationError):
            await client.generate(FunctionMode.TRANSFORM, "q")
        assert calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [401, 403])
    async def test_rejected_credentials(self, status_code):
        client = _client(lambda r: httpx.Response(status_code, text="invalid token"), create="bad")
        with pytest.raises(TransportError) as exc_info:
            await client.generate(FunctionMode.CREATE, "q")
        assert exc_info.value.category == TransportCategory.AUTHENTICATION
        assert "credentials" in exc_info.value.user_message

    @pytest.mark.asyncio
    async def test_server_error_is_generic(self):
        client = _client(lambda r: httpx.Response(500, text="boom"), create="tok")
        with pytest.raises(TransportError) as exc_info:
            await client.generate(FunctionMode.CREATE, "q")
        assert exc_info.value.category == TransportCategory.GENERIC
        assert "HTTP 500" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_connect_error_is_network(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = _client(handler, create="tok")
        with pytest.raises(TransportError) as exc_info:
            await client.generate(FunctionMode.CREATE, "q")
        assert exc_info.value.category == TransportCategory.NETWORK

    @pytest.mark.asyncio
    async def test_incomplete_stream(self):
        client = _client(
            lambda r: httpx.Response(200, content=_sse({"event": "message", "answer": "SELECT"})),
            create="tok",
        )
        with pytest.raises(TransportError, match="message_end"):
            await client.generate(FunctionMode.CREATE, "q")

    @pytest.mark.asyncio
    async def test_timeout_is_network(self):
        async def slow_body():
            yield b'data: {"event": "message", "answer": "SELECT"}\n\n'
            await asyncio.sleep(5)
            yield b'data: {"event": "message_end"}\n\n'

        client = _client(lambda r: httpx.Response(200, content=slow_body()), create="tok")
        with pytest.raises(TransportError) as exc_info:
            await client.generate(FunctionMode.CREATE, "q", timeout=0.05)
        assert exc_info.value.category == TransportCategory.NETWORK

    @pytest.mark.asyncio
    async def test_close(self):
        client = _client(lambda r: httpx.Response(200), create="tok")
        await client.close()
        assert client._client.is_closed
