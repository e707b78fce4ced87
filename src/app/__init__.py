"""
Session Transport Package

Provides the session-keyed transport layer between SSE clients and the MCP
protocol engine.

This package:
- Allocates and tracks one session per open SSE stream
- Relays posted messages to the owning session, logging tool calls on the way
- Runs the protocol engine per session and orders its replies on the stream
"""

from .dispatcher import MessageDispatcher
from .engine import McpProtocolEngine, ProtocolEngine
from .exceptions import SessionClosedError, SessionTransportError
from .models import DispatchResult, InboundMessage, SessionState
from .session import SessionRegistry
from .transport import SessionTransport

__all__ = [
    "MessageDispatcher",
    "McpProtocolEngine",
    "ProtocolEngine",
    "SessionRegistry",
    "SessionTransport",
    "SessionState",
    "InboundMessage",
    "DispatchResult",
    "SessionClosedError",
    "SessionTransportError",
]
