"""Conversation orchestrator: sequencing, audit and generation for each user turn.

Per request the turn moves through
RECEIVED → AUDITED_USER_TURN → GENERATING → AUDITED_AI_TURN → EMITTED,
or to FAILED from any non-terminal state. The only state carried between
requests is the conversation id and its seq counter, which lives in the
audit log itself.

Ordering per conversation:
- turns are serialized by a per-conversation lock held from seq
  assignment until the AI row is committed;
- the USER row is committed before generation starts;
- the AI row is committed before the answer is emitted.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from sqlassist.conversation.registry import ConversationLocks, RequestHandle
from sqlassist.errors import AssistantError, AuthenticationError
from sqlassist.llm.client import GenerationClient, generation_client
from sqlassist.llm.prompts import build_query
from sqlassist.models.enums import TERMINAL_TURN_STATES, FunctionMode, TurnRole, TurnState
from sqlassist.schemas.protocol import (
    AiResponsePayload,
    GenerateSqlMessage,
    ai_response_message,
    error_message,
)
from sqlassist.schemas.session import SessionData
from sqlassist.security.audit import AuditWriter, audit_writer
from sqlassist.security.identifiers import generate_conversation_id

logger = logging.getLogger(__name__)

SendFn = Callable[[dict[str, Any]], Awaitable[None]]


@dataclass(frozen=True)
class TurnRequest:
    """One correlated user turn, independent of the transport it came from."""

    request_id: str
    mode: FunctionMode
    text: str
    dialect: str
    conversation_id: str | None = None
    seq: int = 0
    schema_data: Any = None
    source_dialect: str | None = None

    @classmethod
    def from_message(cls, message: GenerateSqlMessage, request_id: str) -> TurnRequest:
        payload = message.payload
        return cls(
            request_id=request_id,
            mode=message.mode,
            text=payload.natural_language,
            dialect=payload.dialect,
            conversation_id=payload.cvrs_id,
            seq=payload.cvrs_seq,
            schema_data=payload.schema_data,
            source_dialect=payload.source_dialect,
        )


@dataclass(frozen=True)
class TurnResult:
    """Assembled answer and the conversation position after the AI turn."""

    mode: FunctionMode
    response_text: str
    conversation_id: str
    seq: int

    def to_payload(self) -> AiResponsePayload:
        return AiResponsePayload(
            mode=self.mode,
            response_text=self.response_text,
            cvrs_id=self.conversation_id,
            cvrs_seq=self.seq,
        )


class ConversationOrchestrator:
    """Runs user turns: session check, seq assignment, audit, generation."""

    def __init__(
        self,
        audit: AuditWriter,
        client: GenerationClient,
        locks: ConversationLocks | None = None,
        generation_timeout: float | None = None,
    ) -> None:
        self._audit = audit
        self._client = client
        self._locks = locks or ConversationLocks()
        self._generation_timeout = generation_timeout

    @staticmethod
    def _advance(request_id: str, handle: RequestHandle | None, state: TurnState) -> None:
        if handle is None:
            logger.debug("Turn %s: --> %s", request_id, state.value)
            return
        if handle.state in TERMINAL_TURN_STATES:
            logger.warning("Turn %s already %s, not moving to %s", request_id, handle.state.value, state.value)
            return
        logger.debug("Turn %s: %s --> %s", request_id, handle.state.value, state.value)
        handle.state = state

    async def handle_turn(
        self,
        session: SessionData | None,
        request: TurnRequest,
        handle: RequestHandle | None = None,
    ) -> TurnResult:
        """Run one user turn to completion and return the committed answer.

        ``handle`` is the in-flight entry of a gateway request; it tracks the
        turn's state and is omitted for plain HTTP turns.

        Raises:
            AuthenticationError: Session missing or not established.
            ConfigurationError: No credential for the requested mode.
            AuditWriteError: A USER or AI audit row could not be committed.
            TransportError: The generation call failed.
        """
        rid = request.request_id

        # Synchronous prefix: nothing is written if any of this fails
        if session is None or not session.is_authenticated:
            raise AuthenticationError("session is missing or not established")
        self._client.credential_for(request.mode)
        query = build_query(
            request.mode,
            request.text,
            request.dialect,
            schema_data=request.schema_data,
            source_dialect=request.source_dialect,
        )

        is_new = request.conversation_id is None
        conversation_id = request.conversation_id or generate_conversation_id()

        async with self._locks.hold(conversation_id):
            if is_new:
                seq = 0
            else:
                committed = await self._audit.latest_seq(conversation_id)
                if committed > request.seq:
                    logger.info(
                        "Conversation %s: client seq %d behind committed seq %d, resuming from committed",
                        conversation_id,
                        request.seq,
                        committed,
                    )
                seq = max(request.seq, committed)

            seq += 1
            await self._audit.create_conversation_log(
                login_log_id=session.login_log_id,
                conversation_id=conversation_id,
                seq=seq,
                role=TurnRole.USER,
                mode=request.mode,
                content=request.text,
            )
            self._advance(rid, handle, TurnState.AUDITED_USER_TURN)

            self._advance(rid, handle, TurnState.GENERATING)
            answer = await self._client.generate(
                request.mode,
                query,
                user=session.actor_id,
                timeout=self._generation_timeout,
            )

            seq += 1
            await self._audit.create_conversation_log(
                login_log_id=session.login_log_id,
                conversation_id=conversation_id,
                seq=seq,
                role=TurnRole.AI,
                mode=request.mode,
                content=answer,
            )
            self._advance(rid, handle, TurnState.AUDITED_AI_TURN)

        logger.info(
            "Turn %s complete: cvrs=%s seq=%d mode=%s",
            rid,
            conversation_id,
            seq,
            request.mode.value,
        )
        return TurnResult(
            mode=request.mode,
            response_text=answer,
            conversation_id=conversation_id,
            seq=seq,
        )

    async def process(
        self,
        session: SessionData | None,
        request: TurnRequest,
        send: SendFn,
        handle: RequestHandle,
    ) -> None:
        """Handle a turn and deliver exactly one message for it, unless cancelled.

        Failures become ``error`` messages with a user-safe text. Audit rows
        already written stay in place even when the reply is suppressed.
        """
        rid = request.request_id
        succeeded = False
        try:
            result = await self.handle_turn(session, request, handle)
            message = ai_response_message(rid, result.to_payload())
            succeeded = True
        except AssistantError as exc:
            self._advance(rid, handle, TurnState.FAILED)
            logger.warning("Turn %s failed: %s: %s", rid, type(exc).__name__, exc)
            message = error_message(exc.user_message, rid)
        except Exception:
            self._advance(rid, handle, TurnState.FAILED)
            logger.exception("Unexpected error handling turn %s", rid)
            message = error_message(AssistantError.user_message, rid)

        if handle.cancelled:
            logger.info("Suppressing reply for cancelled request %s", rid)
            return

        await send(message)
        if succeeded:
            self._advance(rid, handle, TurnState.EMITTED)


# Module-level singleton
orchestrator = ConversationOrchestrator(
    audit=audit_writer,
    client=generation_client,
)
