"""Security module: sessions, identifiers, audit trail."""

from sqlassist.security.audit import audit_writer
from sqlassist.security.session_store import session_store

__all__ = ["audit_writer", "session_store"]
