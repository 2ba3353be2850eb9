"""Streaming client for the external generation service.

One POST per user turn to the chat-messages endpoint with
response_mode=streaming. The body comes back as server-sent-event lines
(``data: {...}``); ``message`` events carry answer fragments and
``message_end`` closes the answer. Each function mode authenticates with
its own token and never falls back to another mode's token.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator
from typing import Any

import httpx

from sqlassist.config import GenerationSettings, settings
from sqlassist.errors import ConfigurationError, TransportCategory, TransportError
from sqlassist.models.enums import FunctionMode

logger = logging.getLogger(__name__)

# Exhaustive FunctionMode → GenerationSettings field holding that mode's token
CREDENTIAL_FIELDS: dict[FunctionMode, str] = {
    FunctionMode.CREATE: "sql_assistant_api_key_sql_creation",
    FunctionMode.EXPLAIN: "sql_assistant_api_key_sql_explanation",
    FunctionMode.GRAMMAR: "sql_assistant_api_key_sql_grammar",
    FunctionMode.COMMENT: "sql_assistant_api_key_sql_comment",
    FunctionMode.TRANSFORM: "sql_assistant_api_key_sql_transformation",
}


def parse_event_line(line: str) -> dict[str, Any] | None:
    """Decode one SSE line into its JSON payload.

    Blank lines, comments (``:``), non-data fields and malformed JSON all
    return None so the caller can keep reading.
    """
    line = line.strip()
    if not line or line.startswith(":") or not line.startswith("data:"):
        return None
    try:
        payload = json.loads(line[len("data:"):].strip())
    except json.JSONDecodeError:
        logger.debug("Skipping malformed stream line: %s", line[:120])
        return None
    return payload if isinstance(payload, dict) else None


async def reassemble_stream(lines: AsyncIterator[str]) -> str:
    """Concatenate ``message`` fragments until ``message_end``.

    Raises:
        TransportError: On an ``error`` event, or if the stream ends
            without ``message_end`` (a partial answer is never returned).
    """
    fragments: list[str] = []
    async for line in lines:
        event = parse_event_line(line)
        if event is None:
            continue

        kind = event.get("event")
        if kind == "message":
            answer = event.get("answer")
            if isinstance(answer, str):
                fragments.append(answer)
        elif kind == "message_end":
            return "".join(fragments)
        elif kind == "error":
            reason = event.get("message") or event.get("error") or "unknown error"
            raise TransportError(f"generation service reported an error: {reason}")
        # ping and other informational events are ignored

    raise TransportError(
        f"stream closed before message_end after {len(fragments)} fragments",
    )


class GenerationClient:
    """Async client for the streaming chat-messages endpoint.

    Holds one shared httpx.AsyncClient. Leaving the stream context always
    closes the upstream response, including on timeout or task cancellation.
    """

    def __init__(
        self,
        config: GenerationSettings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config or settings.generation
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(self._config.request_timeout, connect=self._config.connect_timeout),
        )

    def credential_for(self, mode: FunctionMode) -> str:
        """Return the token configured for ``mode``.

        Raises:
            ConfigurationError: If that mode's token is empty.
        """
        token: str = getattr(self._config, CREDENTIAL_FIELDS[mode])
        if not token.strip():
            raise ConfigurationError(f"no credential configured for mode {mode.value}")
        return token

    def missing_credentials(self) -> list[FunctionMode]:
        """Modes whose token is empty, reported once at startup."""
        return [mode for mode, field in CREDENTIAL_FIELDS.items() if not getattr(self._config, field).strip()]

    async def generate(
        self,
        mode: FunctionMode,
        query: str,
        user: str | None = None,
        timeout: float | None = None,
    ) -> str:
        """Send one query and return the fully reassembled answer.

        Args:
            mode: Function mode, selects the credential.
            query: Complete query body (see llm.prompts.build_query).
            user: Value for the service's ``user`` field.
            timeout: Deadline in seconds for the whole streamed call.

        Returns:
            The concatenation of all answer fragments.

        Raises:
            ConfigurationError: Missing credential for ``mode``.
            TransportError: Network failure, rejected credentials, error
                event or incomplete stream.
        """
        token = self.credential_for(mode)
        deadline = timeout if timeout is not None else self._config.request_timeout
        payload = {
            "inputs": {},
            "query": query,
            "response_mode": "streaming",
            "user": user or self._config.default_user,
        }

        start = time.monotonic()
        try:
            async with asyncio.timeout(deadline):
                async with self._client.stream(
                    "POST",
                    self._config.ai_api_base_url,
                    json=payload,
                    headers={"Authorization": f"Bearer {token}"},
                ) as response:
                    if response.status_code >= 400:
                        await response.aread()
                        raise _status_error(response)
                    answer = await reassemble_stream(response.aiter_lines())

        except TimeoutError as exc:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            logger.error("Generation timeout after %dms (mode=%s)", elapsed_ms, mode.value)
            raise TransportError(f"timed out after {deadline}s", TransportCategory.NETWORK) from exc

        except httpx.TransportError as exc:
            logger.error("Generation transport error (mode=%s): %s", mode.value, exc)
            raise TransportError(str(exc) or type(exc).__name__, TransportCategory.NETWORK) from exc

        except httpx.HTTPError as exc:
            logger.exception("Generation HTTP error (mode=%s)", mode.value)
            raise TransportError(str(exc)) from exc

        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            "Generation complete: mode=%s latency=%dms chars=%d",
            mode.value,
            elapsed_ms,
            len(answer),
        )
        return answer

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()


def _status_error(response: httpx.Response) -> TransportError:
    """Map a non-2xx response to a categorized TransportError."""
    detail = f"generation service returned HTTP {response.status_code}: {response.text[:200]}"
    if response.status_code in (401, 403):
        return TransportError(detail, TransportCategory.AUTHENTICATION)
    return TransportError(detail)


# Module-level singleton
generation_client = GenerationClient()
