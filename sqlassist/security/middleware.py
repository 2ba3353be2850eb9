"""HTTP session middleware.

Every plain HTTP request resolves or creates the caller's session and
refreshes the signed cookie. The WebSocket gateway later resolves the same
cookie, so a connection inherits whatever session an earlier HTTP request
established.
"""

from __future__ import annotations

import logging

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from sqlassist.config import settings
from sqlassist.schemas.session import ACTOR_ID_MAX_LENGTH
from sqlassist.security.session_store import SessionStore, session_store

logger = logging.getLogger(__name__)


def client_address(request: Request) -> str | None:
    """First hop of X-Forwarded-For, else the peer address."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()[:40]
    return request.client.host if request.client else None


def header_actor_id(request: Request) -> str | None:
    """Actor id from the trusted upstream header, if one is configured and usable."""
    header = settings.session.actor_header
    if not header:
        return None
    actor_id = request.headers.get(header, "").strip()
    if not actor_id:
        return None
    if len(actor_id) > ACTOR_ID_MAX_LENGTH:
        logger.warning(
            "Ignoring %s header: actor id %r exceeds %d characters",
            header,
            actor_id[:40],
            ACTOR_ID_MAX_LENGTH,
        )
        return None
    return actor_id


class SessionMiddleware(BaseHTTPMiddleware):
    """Attach the caller's session to ``request.state.session``."""

    def __init__(
        self,
        app: ASGIApp,
        store: SessionStore | None = None,
        exempt_paths: frozenset[str] = frozenset({"/health"}),
    ) -> None:
        super().__init__(app)
        self._store = store
        self._exempt_paths = exempt_paths

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in self._exempt_paths:
            return await call_next(request)

        store = self._store or session_store
        cookie_name = settings.session.cookie_name
        cookie = request.cookies.get(cookie_name)

        session = await store.establish(
            cookie,
            client_address=client_address(request),
            actor_id=header_actor_id(request),
        )
        request.state.session = session

        response = await call_next(request)

        signed = store.sign(session.token)
        if cookie != signed:
            response.set_cookie(
                cookie_name,
                signed,
                max_age=store.ttl_seconds,
                httponly=True,
                samesite="lax",
            )
        return response
