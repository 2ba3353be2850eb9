"""Error taxonomy shared by the gateway, orchestrator, audit writer and generation client.

Every error carries a user-safe message; internal details go to the log,
never to the client.
"""

from __future__ import annotations

from enum import Enum


class AssistantError(Exception):
    """Base class for errors that are reported back to the client."""

    user_message = "The request could not be completed. Please try again."

    def __init__(self, detail: str = "", *, user_message: str | None = None) -> None:
        super().__init__(detail or self.user_message)
        self.detail = detail
        if user_message is not None:
            self.user_message = user_message


class AuthenticationError(AssistantError):
    """No valid, established session at connection or turn-handling time."""

    user_message = "Your session is no longer valid. Please reconnect."


class ConfigurationError(AssistantError):
    """Server-side misconfiguration, e.g. no credential for the requested mode."""

    user_message = "This function is not available right now. Please contact the administrator."


class TransportCategory(str, Enum):
    """User-facing classification of generation backend failures."""

    NETWORK = "network"
    AUTHENTICATION = "authentication"
    GENERIC = "generic"


_TRANSPORT_MESSAGES: dict[TransportCategory, str] = {
    TransportCategory.NETWORK: "Could not reach the AI service. Please check the network connection.",
    TransportCategory.AUTHENTICATION: "The AI service rejected the credentials. Please contact the administrator.",
    TransportCategory.GENERIC: "The AI service failed to produce an answer. Please try again.",
}


class TransportError(AssistantError):
    """Failure reaching the generation backend or an incomplete answer stream."""

    def __init__(self, detail: str, category: TransportCategory = TransportCategory.GENERIC) -> None:
        super().__init__(detail, user_message=_TRANSPORT_MESSAGES[category])
        self.category = category


class ProtocolError(AssistantError):
    """Unparseable inbound client message or unknown message type."""

    def __init__(self, detail: str) -> None:
        # Protocol problems are the client's own doing, so the detail is safe to echo.
        super().__init__(detail, user_message=detail)


class AuditWriteError(AssistantError):
    """A durable audit-log append failed."""

    user_message = "The request could not be recorded. Please try again."
