"""
Data models for the session transport layer.

Defines session lifecycle states, the inbound message value handed from the
message endpoint to a session transport, and the outcome reported back to
the endpoint.
"""

from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ValidationError

TOOL_CALL_METHOD = "tools/call"


class SessionState(str, Enum):
    """Lifecycle state of a session transport. Transitions only move forward."""

    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class DecodedMessage(BaseModel):
    """Structured view of a JSON-RPC message body, used for classification only."""

    jsonrpc: Optional[str] = None
    method: str
    id: Any = None
    params: Optional[Dict[str, Any]] = None


def decode_message(raw: bytes) -> Optional[DecodedMessage]:
    """Best-effort decode of a message body. Returns None when it is not a JSON-RPC call."""
    try:
        return DecodedMessage.model_validate_json(raw)
    except ValidationError:
        return None


class InboundMessage(BaseModel):
    """A message posted to a session, carrying the exact bytes the client sent."""

    session_id: str
    raw: bytes
    decoded: Optional[DecodedMessage] = None

    @property
    def tool_name(self) -> Optional[str]:
        """Name of the invoked tool when this message is a tool call."""
        if self.decoded is None or self.decoded.method != TOOL_CALL_METHOD:
            return None
        name = (self.decoded.params or {}).get("name")
        return name if isinstance(name, str) else None

    @property
    def request_id(self) -> Optional[Union[int, str]]:
        """Id of a well-formed JSON-RPC request that the engine will answer."""
        if self.decoded is None or self.decoded.jsonrpc != "2.0":
            return None
        request_id = self.decoded.id
        if isinstance(request_id, bool) or not isinstance(request_id, (int, str)):
            return None
        return request_id


class DispatchResult(BaseModel):
    """Outcome of posting a message to the message endpoint."""

    status_code: int
    detail: str

    @property
    def accepted(self) -> bool:
        return 200 <= self.status_code < 300
