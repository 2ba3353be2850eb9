"""WebSocket wire protocol: inbound client messages and outbound server messages.

Field names on the wire are camelCase (``requestId``, ``cvrsSeq``); the
models expose snake_case attributes through aliases.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sqlassist.models.enums import FunctionMode


class ClientMessageType(str, Enum):
    """Client-to-server message types."""

    GENERATE_SQL = "generate_sql"
    CANCEL_REQUEST = "cancel_request"


class ServerMessageType(str, Enum):
    """Server-to-client message types."""

    AI_RESPONSE = "ai_response"
    ERROR = "error"


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class GenerateSqlPayload(_WireModel):
    """User turn content.

    Attributes:
        natural_language: The user's text (a request, or SQL to work on)
        dialect: Target SQL dialect
        cvrs_id: Conversation to continue, None to start a new one
        cvrs_seq: Last seq the client saw for that conversation
        schema_data: Optional schema description appended to the query
        source_dialect: Dialect to convert from (transform mode)
    """

    natural_language: str = Field(alias="naturalLanguage", min_length=1)
    dialect: str = Field(min_length=1)
    cvrs_id: str | None = Field(default=None, alias="cvrsId", max_length=30)
    cvrs_seq: int = Field(default=0, alias="cvrsSeq", ge=0)
    schema_data: Any = Field(default=None, alias="schemaData")
    source_dialect: str | None = Field(default=None, alias="sourceDialect")

    @field_validator("cvrs_id", mode="before")
    @classmethod
    def blank_id_is_new_conversation(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("cvrs_seq", mode="before")
    @classmethod
    def null_seq_is_zero(cls, v: Any) -> Any:
        return 0 if v is None else v


class GenerateSqlMessage(_WireModel):
    """``{"type": "generate_sql", "mode": ..., "payload": {...}, "requestId": ...}``"""

    type: Literal["generate_sql"]
    mode: FunctionMode = FunctionMode.CREATE
    payload: GenerateSqlPayload
    request_id: str | None = Field(default=None, alias="requestId", min_length=1)


class GenerateSqlRequest(GenerateSqlPayload):
    """Body of ``POST /api/sql/generate``: the same turn over plain HTTP."""

    mode: FunctionMode = FunctionMode.CREATE


class CancelRequestMessage(_WireModel):
    """``{"type": "cancel_request", "requestId": ...}``"""

    type: Literal["cancel_request"]
    request_id: str = Field(alias="requestId", min_length=1)


class AiResponsePayload(_WireModel):
    """Assembled answer plus the conversation position after the AI turn."""

    mode: FunctionMode
    response_text: str = Field(alias="responseText")
    cvrs_id: str = Field(alias="cvrsId")
    cvrs_seq: int = Field(alias="cvrsSeq")

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary with wire field names."""
        return self.model_dump(by_alias=True, mode="json")


def ai_response_message(request_id: str, payload: AiResponsePayload) -> dict[str, Any]:
    return {
        "type": ServerMessageType.AI_RESPONSE.value,
        "payload": payload.to_dict(),
        "requestId": request_id,
    }


def error_message(message: str, request_id: str | None) -> dict[str, Any]:
    return {
        "type": ServerMessageType.ERROR.value,
        "message": message,
        "requestId": request_id,
    }
