"""Redis-backed session store with HMAC-signed cookies.

Sessions live under ``session:<token>`` and expire through SETEX, so the
store itself enforces the time-to-live. The cookie carries
``<token>.<signature>``; a cookie whose signature does not verify resolves
to no session at all.

Usage:
    from sqlassist.security.session_store import session_store

    session = await session_store.establish(cookie, client_address="10.0.0.7")
    session = await session_store.resolve(cookie)  # read-only, may be None
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets

import redis.asyncio as aioredis
from pydantic import ValidationError

from sqlassist.config import settings
from sqlassist.db.engine import redis_client
from sqlassist.errors import AuditWriteError
from sqlassist.schemas.session import SessionData
from sqlassist.security.audit import AuditWriter, audit_writer

logger = logging.getLogger(__name__)

# Guards against two concurrent requests writing a login log for one session
_CLAIM_TTL_SECONDS = 30


def _session_key(token: str) -> str:
    return f"session:{token}"


def _claim_key(token: str) -> str:
    return f"session:{token}:establishing"


class SessionStore:
    """Creates, resolves and establishes cookie sessions."""

    def __init__(
        self,
        redis: aioredis.Redis,
        audit: AuditWriter,
        secret: str | None = None,
        ttl_seconds: int | None = None,
    ) -> None:
        self._redis = redis
        self._audit = audit
        self._secret = (secret or settings.session.session_secret).encode()
        self._ttl = ttl_seconds or settings.session.session_ttl_seconds

    @property
    def ttl_seconds(self) -> int:
        return self._ttl

    # ── Cookie signing ───────────────────────────────────────────────

    def _signature(self, token: str) -> str:
        return hmac.new(self._secret, token.encode(), hashlib.sha256).hexdigest()

    def sign(self, token: str) -> str:
        """Build the cookie value for a session token."""
        return f"{token}.{self._signature(token)}"

    def unsign(self, cookie: str | None) -> str | None:
        """Return the token inside a cookie value, or None if it was tampered with."""
        if not cookie or "." not in cookie:
            return None
        token, _, received = cookie.rpartition(".")
        if not token or not hmac.compare_digest(self._signature(token), received):
            return None
        return token

    # ── Storage ──────────────────────────────────────────────────────

    async def get(self, token: str) -> SessionData | None:
        raw = await self._redis.get(_session_key(token))
        if raw is None:
            return None
        try:
            return SessionData.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unreadable session payload for token %s...", token[:8])
            return None

    async def save(self, session: SessionData) -> None:
        await self._redis.setex(_session_key(session.token), self._ttl, session.model_dump_json())

    # ── Public API ───────────────────────────────────────────────────

    async def resolve(self, cookie: str | None) -> SessionData | None:
        """Look up the session behind a cookie without creating anything."""
        token = self.unsign(cookie)
        if token is None:
            return None
        return await self.get(token)

    async def establish(
        self,
        cookie: str | None,
        client_address: str | None,
        actor_id: str | None = None,
    ) -> SessionData:
        """Return the caller's session, creating and logging it in if needed.

        A fresh session gets exactly one login log. If the login-log write
        fails, the session is kept unestablished and the next request
        retries.
        """
        session = await self.resolve(cookie)
        if session is None:
            session = SessionData(
                token=secrets.token_urlsafe(32),
                actor_id=actor_id or settings.session.default_actor_id,
                organization_id=settings.session.default_organization_id,
                client_address=client_address,
            )
            await self.save(session)
            logger.info("Session created for actor %s from %s", session.actor_id, client_address)

        if session.is_authenticated:
            return session

        claimed = await self._redis.set(
            _claim_key(session.token), "1", nx=True, ex=_CLAIM_TTL_SECONDS
        )
        if not claimed:
            logger.debug("Session %s... is being established by another request", session.token[:8])
            return session

        try:
            login_log_id = await self._audit.create_login_log(
                actor_id=session.actor_id,
                client_address=client_address,
            )
            session = session.model_copy(update={"established": True, "login_log_id": login_log_id})
            await self.save(session)
        except AuditWriteError:
            logger.error("Failed to write login log; session %s... stays unestablished", session.token[:8])
        finally:
            # Released only after the established session is saved
            await self._redis.delete(_claim_key(session.token))
        return session


# Module-level singleton
session_store = SessionStore(redis_client, audit_writer)
