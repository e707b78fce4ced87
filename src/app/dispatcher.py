import logging
from typing import AsyncIterable, Optional, Union

import logfire

from .exceptions import SessionClosedError
from .models import DispatchResult, InboundMessage, decode_message
from .session import SessionRegistry

MessageBody = Union[bytes, AsyncIterable[bytes]]


async def read_body(body: MessageBody) -> bytes:
    """Drain a message body that may arrive buffered or as a chunk stream."""
    if isinstance(body, (bytes, bytearray)):
        return bytes(body)

    chunks = []
    async for chunk in body:
        chunks.append(chunk)
    return b"".join(chunks)


class MessageDispatcher:
    """
    Message endpoint logic: routes a posted body to its session transport.

    The dispatcher is a relay. It decodes the body only to classify it for
    logging, and always forwards the original bytes; validation belongs to the
    protocol engine.
    """

    def __init__(self, registry: SessionRegistry, logger: Optional[logging.Logger] = None):
        self.registry = registry
        self.logger = logger or logging.getLogger("MessageDispatcher")

    async def dispatch(self, session_id: Optional[str], body: MessageBody) -> DispatchResult:
        """
        Forward a message body to the session it is addressed to.

        Args:
            session_id: Session identifier from the request's query string
            body: Raw request body, buffered or streamed

        Returns:
            Status for the message endpoint: 202 when forwarded, 400 for a
            missing or unknown session, 410 when the session closed mid-flight
        """
        if not session_id:
            return DispatchResult(status_code=400, detail="Missing sessionId parameter")

        transport = self.registry.lookup(session_id)
        if transport is None:
            self.logger.info(f"No transport found for session {session_id}")
            return DispatchResult(status_code=400, detail="No transport found for sessionId")

        raw = await read_body(body)
        message = InboundMessage(
            session_id=session_id, raw=raw, decoded=decode_message(raw)
        )

        with logfire.span(
            "extractor_server.dispatch_message",
            session_id=session_id,
            method=message.decoded.method if message.decoded else None,
        ):
            self._classify(message)

            try:
                await transport.forward(message)
            except SessionClosedError:
                self.logger.info(f"Session {session_id} closed before message was delivered")
                return DispatchResult(status_code=410, detail="Session closed")

        return DispatchResult(status_code=202, detail="Accepted")

    def _classify(self, message: InboundMessage) -> None:
        if message.decoded is None:
            self.logger.debug(
                f"Message for session {message.session_id} is not a JSON-RPC call "
                f"({len(message.raw)} bytes), forwarding as-is"
            )
            return

        tool_name = message.tool_name
        if tool_name:
            self.logger.info(f"Tool call detected: {tool_name}")
        else:
            self.logger.debug(f"Received {message.decoded.method} for session {message.session_id}")
