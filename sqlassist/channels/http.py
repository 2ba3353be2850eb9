"""Plain HTTP surface: session info and a request/response generation route.

The generation route runs the same orchestrator turn as the WebSocket
gateway and returns the ai_response payload directly.
"""
# ruff: noqa: B008  (Depends() in function defaults is standard FastAPI)

from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status

from sqlassist.conversation.orchestrator import TurnRequest, orchestrator
from sqlassist.errors import AssistantError, AuthenticationError, TransportError
from sqlassist.schemas.protocol import GenerateSqlRequest
from sqlassist.schemas.session import SessionData

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["assistant"])


def current_session(request: Request) -> SessionData | None:
    """FastAPI dependency: the session attached by SessionMiddleware."""
    return getattr(request.state, "session", None)


@router.get("/session")
async def session_info(session: SessionData | None = Depends(current_session)) -> dict[str, Any]:
    """Return the caller's session attributes (establishing one if needed)."""
    if session is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="No session")
    return {
        "actorId": session.actor_id,
        "organizationId": session.organization_id,
        "established": session.established,
        "loginLogId": session.login_log_id,
    }


@router.post("/sql/generate")
async def generate_sql(
    body: GenerateSqlRequest,
    session: SessionData | None = Depends(current_session),
) -> dict[str, Any]:
    """Run one turn and return ``{mode, responseText, cvrsId, cvrsSeq}``."""
    request = TurnRequest(
        request_id=uuid.uuid4().hex,
        mode=body.mode,
        text=body.natural_language,
        dialect=body.dialect,
        conversation_id=body.cvrs_id,
        seq=body.cvrs_seq,
        schema_data=body.schema_data,
        source_dialect=body.source_dialect,
    )
    try:
        result = await orchestrator.handle_turn(session, request)
    except AuthenticationError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=exc.user_message) from exc
    except TransportError as exc:
        logger.warning("HTTP turn %s failed upstream: %s", request.request_id, exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.user_message) from exc
    except AssistantError as exc:
        logger.warning("HTTP turn %s failed: %s: %s", request.request_id, type(exc).__name__, exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=exc.user_message) from exc
    return result.to_payload().to_dict()
