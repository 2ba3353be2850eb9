"""SessionData schema: server-side session attributes stored behind the cookie."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field

# Widths of the audit columns these values are written to
ACTOR_ID_MAX_LENGTH = 8
ORGANIZATION_ID_MAX_LENGTH = 7


class SessionData(BaseModel):
    """One browser visit.

    Actor and organization are fixed when the session is created; only the
    established flag and the login-log id are filled in later, once the
    login record has been written.
    """

    token: str
    established: bool = False
    actor_id: str = Field(min_length=1, max_length=ACTOR_ID_MAX_LENGTH)
    organization_id: str = Field(min_length=1, max_length=ORGANIZATION_ID_MAX_LENGTH)
    login_log_id: str | None = Field(default=None, min_length=26, max_length=26)
    client_address: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_authenticated(self) -> bool:
        """True when a login record exists for this session."""
        return self.established and self.login_log_id is not None
