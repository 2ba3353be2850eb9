"""Session-bound WebSocket gateway.

Routes: WS {settings.websocket_path} (default /ws)

Client sends:
    {"type": "generate_sql", "mode": "create", "payload": {...}, "requestId": "req_1"}
    {"type": "cancel_request", "requestId": "req_1"}

Server sends:
    {"type": "ai_response", "payload": {...}, "requestId": "req_1"}
    {"type": "error", "message": "...", "requestId": "req_1"}

A connection is only accepted when the cookie resolves to a stored
session; otherwise it is closed before the handshake completes. Each
generate_sql message runs as its own task, so requests on one connection
may complete out of order.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError
from starlette.websockets import WebSocketState

from sqlassist.config import settings
from sqlassist.conversation.orchestrator import TurnRequest, orchestrator
from sqlassist.conversation.registry import RequestHandle, in_flight
from sqlassist.errors import ProtocolError
from sqlassist.schemas.protocol import (
    CancelRequestMessage,
    ClientMessageType,
    GenerateSqlMessage,
    error_message,
)
from sqlassist.schemas.session import SessionData
from sqlassist.security.session_store import session_store

logger = logging.getLogger(__name__)
router = APIRouter(tags=["gateway"])


class Connection:
    """An accepted WebSocket. Only this object writes to the socket."""

    def __init__(self, websocket: WebSocket) -> None:
        self.connection_id = uuid.uuid4().hex
        self.websocket = websocket
        self._send_lock = asyncio.Lock()

    async def send_json(self, message: dict[str, Any]) -> None:
        """Send one message; concurrent turn tasks are serialized by a lock."""
        async with self._send_lock:
            if self.websocket.application_state != WebSocketState.CONNECTED:
                logger.info(
                    "Dropping %s for closed connection %s (request=%s)",
                    message.get("type"),
                    self.connection_id,
                    message.get("requestId"),
                )
                return
            await self.websocket.send_json(message)


class ConnectionSessions:
    """Association table: connection id → session bound at handshake time."""

    def __init__(self) -> None:
        self._sessions: dict[str, SessionData] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def bind(self, connection_id: str, session: SessionData) -> None:
        self._sessions[connection_id] = session

    def lookup(self, connection_id: str) -> SessionData | None:
        return self._sessions.get(connection_id)

    def unbind(self, connection_id: str) -> None:
        self._sessions.pop(connection_id, None)


# Module-level singleton
connections = ConnectionSessions()


async def _current_session(connection_id: str) -> SessionData | None:
    """Re-read the bound session so an expired one fails the turn."""
    bound = connections.lookup(connection_id)
    if bound is None:
        return None
    return await session_store.get(bound.token)


async def _run_turn(connection: Connection, request: TurnRequest, handle: RequestHandle) -> None:
    session = await _current_session(connection.connection_id)
    await orchestrator.process(session, request, connection.send_json, handle)


def _start_turn(connection: Connection, message: GenerateSqlMessage) -> None:
    request_id = message.request_id or uuid.uuid4().hex
    existing = in_flight.get(connection.connection_id, request_id)
    if existing is not None and not existing.cancelled:
        # A resend of a turn still in flight; the running turn answers it
        logger.info("Ignoring duplicate generate_sql for in-flight request %s", request_id)
        return
    request = TurnRequest.from_message(message, request_id)
    handle = in_flight.register(request_id, connection.connection_id)
    task = asyncio.create_task(_run_turn(connection, request, handle), name=f"turn-{request_id}")
    in_flight.attach_task(handle, task)
    logger.info(
        "Turn %s received: mode=%s cvrs=%s seq=%d (connection=%s)",
        request_id,
        request.mode.value,
        request.conversation_id,
        request.seq,
        connection.connection_id,
    )


def _cancel(connection: Connection, message: CancelRequestMessage) -> None:
    if not in_flight.cancel(connection.connection_id, message.request_id):
        logger.debug("Ignoring cancel for unknown request %s", message.request_id)


def _validate(model: type[GenerateSqlMessage] | type[CancelRequestMessage], data: dict[str, Any]) -> Any:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise ProtocolError(f"Invalid {data.get('type')} message: {location}: {first['msg']}") from exc


async def _receive_frame(websocket: WebSocket) -> str | bytes:
    """Next text or binary frame; raises WebSocketDisconnect when the client goes away."""
    message = await websocket.receive()
    if message["type"] == "websocket.disconnect":
        raise WebSocketDisconnect(message.get("code", status.WS_1000_NORMAL_CLOSURE), message.get("reason"))
    if message.get("text") is not None:
        return message["text"]
    return message.get("bytes") or b""


async def _dispatch(connection: Connection, raw: str | bytes) -> None:
    """Parse one inbound frame and route it. Protocol errors keep the connection open.

    Binary frames are accepted when they carry UTF-8 encoded JSON.
    """
    request_id: str | None = None
    try:
        if isinstance(raw, bytes):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise ProtocolError("Binary message is not valid UTF-8") from exc
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ProtocolError("Invalid JSON format") from exc
        if not isinstance(data, dict):
            raise ProtocolError("Message must be a JSON object")

        if isinstance(data.get("requestId"), str):
            request_id = data["requestId"]

        message_type = data.get("type")
        if message_type == ClientMessageType.GENERATE_SQL.value:
            _start_turn(connection, _validate(GenerateSqlMessage, data))
        elif message_type == ClientMessageType.CANCEL_REQUEST.value:
            _cancel(connection, _validate(CancelRequestMessage, data))
        else:
            raise ProtocolError(f"Unknown message type: {message_type}")

    except ProtocolError as exc:
        logger.warning(
            "Protocol error on connection %s: %s (request=%s)",
            connection.connection_id,
            exc,
            request_id,
        )
        await connection.send_json(error_message(exc.user_message, request_id))


@router.websocket(settings.websocket_path)
async def websocket_gateway(websocket: WebSocket) -> None:
    """Accept a session-bound connection and run its message loop."""
    client_host = websocket.client.host if websocket.client else None
    session = await session_store.resolve(websocket.cookies.get(settings.session.cookie_name))
    if session is None:
        logger.warning("Refusing WebSocket from %s: no valid session", client_host)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    connection = Connection(websocket)
    connections.bind(connection.connection_id, session)
    logger.info(
        "WebSocket connected: connection=%s actor=%s from %s",
        connection.connection_id,
        session.actor_id,
        client_host,
    )

    try:
        while True:
            raw = await _receive_frame(websocket)
            await _dispatch(connection, raw)
    except WebSocketDisconnect:
        logger.info("WebSocket disconnected: connection=%s", connection.connection_id)
    finally:
        in_flight.abandon_connection(connection.connection_id)
        connections.unbind(connection.connection_id)
