import logging
from typing import Optional, Protocol

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from mcp.server.fastmcp import FastMCP
from mcp.shared.message import SessionMessage
from mcp.types import JSONRPCMessage
from pydantic import ValidationError


class ProtocolEngine(Protocol):
    """Executes protocol messages for one session.

    Raw message bytes arrive on ``inbound``; serialized replies are written to
    ``outbound``. ``run`` returns once ``inbound`` is exhausted.
    """

    async def run(
        self,
        inbound: MemoryObjectReceiveStream[bytes],
        outbound: MemoryObjectSendStream[str],
    ) -> None: ...


class McpProtocolEngine:
    """
    Runs the MCP low-level server registered on a FastMCP instance against a
    session's byte streams.

    The engine owns the authoritative JSON-RPC parse: bodies that do not
    validate are handed to the server as exceptions, exactly like the SDK's
    own transports do.
    """

    def __init__(self, mcp: FastMCP, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("McpProtocolEngine")
        self._server = mcp._mcp_server

    async def run(
        self,
        inbound: MemoryObjectReceiveStream[bytes],
        outbound: MemoryObjectSendStream[str],
    ) -> None:
        read_writer, read_stream = anyio.create_memory_object_stream[
            SessionMessage | Exception
        ](0)
        write_stream, write_reader = anyio.create_memory_object_stream[
            SessionMessage
        ](0)

        async with anyio.create_task_group() as tg:
            tg.start_soon(self._decode_inbound, inbound, read_writer)
            tg.start_soon(self._encode_outbound, write_reader, outbound)
            try:
                await self._server.run(
                    read_stream,
                    write_stream,
                    self._server.create_initialization_options(),
                )
            finally:
                await write_stream.aclose()

    async def _decode_inbound(
        self,
        inbound: MemoryObjectReceiveStream[bytes],
        read_writer: MemoryObjectSendStream[SessionMessage | Exception],
    ) -> None:
        async with read_writer:
            async for raw in inbound:
                try:
                    message = JSONRPCMessage.model_validate_json(raw)
                except ValidationError as e:
                    self.logger.warning(f"Could not parse message: {e}")
                    await read_writer.send(e)
                    continue
                await read_writer.send(SessionMessage(message))

    async def _encode_outbound(
        self,
        write_reader: MemoryObjectReceiveStream[SessionMessage],
        outbound: MemoryObjectSendStream[str],
    ) -> None:
        async with write_reader:
            async for session_message in write_reader:
                payload = session_message.message.model_dump_json(
                    by_alias=True, exclude_none=True
                )
                try:
                    await outbound.send(payload)
                except (anyio.ClosedResourceError, anyio.BrokenResourceError):
                    self.logger.debug("Session stream closed, discarding reply")
                    return
