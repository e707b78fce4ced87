import asyncio
import json
import logging
from collections import deque
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, Deque, Dict, List, Optional, Union

import anyio

from .engine import ProtocolEngine
from .exceptions import SessionClosedError
from .models import InboundMessage, SessionState


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


def _id_key(request_id: Union[int, str]) -> str:
    # 1 and "1" are distinct JSON-RPC ids
    return json.dumps(request_id)


class ResponseSequencer:
    """
    Orders responses on a session stream by the order their requests were
    forwarded.

    A response is held back until every earlier request has been answered.
    Notifications and server-initiated requests are released immediately.
    """

    def __init__(self):
        self._expected: Deque[str] = deque()
        self._held: Dict[str, str] = {}

    def expect(self, request_id: Union[int, str]) -> None:
        key = _id_key(request_id)
        if key not in self._expected:
            self._expected.append(key)

    def release(self, payload: str) -> List[str]:
        key = self._response_key(payload)
        if key is None or key not in self._expected:
            return [payload]

        self._held[key] = payload
        ready = []
        while self._expected and self._expected[0] in self._held:
            ready.append(self._held.pop(self._expected.popleft()))
        return ready

    @property
    def pending_count(self) -> int:
        return len(self._expected)

    @staticmethod
    def _response_key(payload: str) -> Optional[str]:
        try:
            message = json.loads(payload)
        except ValueError:
            return None
        if not isinstance(message, dict) or "method" in message:
            return None
        if "result" not in message and "error" not in message:
            return None
        request_id = message.get("id")
        if isinstance(request_id, bool) or not isinstance(request_id, (int, str)):
            return None
        return _id_key(request_id)


class SessionTransport:
    """
    Server side of one SSE connection.

    Owns the session id, the inbound byte stream feeding the protocol engine
    and the outbound stream drained by the single SSE writer. Closing the
    transport cancels the engine, so no reply can reach a stream that has
    already been closed and evicted.
    """

    def __init__(
        self,
        session_id: str,
        on_close: Optional[Callable[["SessionTransport"], None]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.session_id = session_id
        self.state = SessionState.OPEN
        self.created_at = datetime.now(timezone.utc)
        self.logger = logger or logging.getLogger("SessionTransport")

        self._on_close = on_close
        self._sequencer = ResponseSequencer()
        self._engine_task: Optional[asyncio.Task] = None

        self._inbound_send, self._inbound_receive = anyio.create_memory_object_stream[
            bytes
        ](0)
        self._outbound_send, self._outbound_receive = (
            anyio.create_memory_object_stream[str](0)
        )

    @property
    def is_open(self) -> bool:
        return self.state == SessionState.OPEN

    def start(self, engine: ProtocolEngine) -> None:
        """Run the protocol engine for this session in a background task."""
        if self._engine_task is not None:
            raise RuntimeError(f"Session {self.session_id} is already running")
        self._engine_task = asyncio.create_task(
            self._run_engine(engine), name=f"session-{self.session_id}"
        )

    async def _run_engine(self, engine: ProtocolEngine) -> None:
        try:
            await engine.run(self._inbound_receive, self._outbound_send)
        except Exception:
            self.logger.exception(f"Protocol engine failed for session {self.session_id}")
        finally:
            self.close()

    async def forward(self, message: InboundMessage) -> None:
        """
        Hand a message to the protocol engine.

        Returns once the engine has taken the message; any reply is written
        to the session stream asynchronously.

        Raises:
            SessionClosedError: If the session is closing or closed
        """
        if not self.is_open:
            raise SessionClosedError(self.session_id)

        request_id = message.request_id
        if request_id is not None:
            self._sequencer.expect(request_id)

        try:
            await self._inbound_send.send(message.raw)
        except (anyio.ClosedResourceError, anyio.BrokenResourceError) as e:
            raise SessionClosedError(self.session_id) from e

    async def outgoing(self) -> AsyncIterator[str]:
        """Yield serialized replies for the SSE stream in request order."""
        try:
            async for payload in self._outbound_receive:
                for ready in self._sequencer.release(payload):
                    yield ready
        except anyio.ClosedResourceError:
            return

    def close(self) -> None:
        """Close the session. Safe to call any number of times."""
        if self.state != SessionState.OPEN:
            return

        self.state = SessionState.CLOSING
        self._inbound_send.close()
        self._inbound_receive.close()
        self._outbound_send.close()
        self._outbound_receive.close()
        task = self._engine_task
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()
        self.state = SessionState.CLOSED

        if self._sequencer.pending_count:
            self.logger.debug(
                f"Session {self.session_id} closed with "
                f"{self._sequencer.pending_count} unanswered requests"
            )
        if self._on_close is not None:
            self._on_close(self)

    async def wait_closed(self) -> None:
        """Wait for the engine task to finish after close."""
        if self._engine_task is not None:
            await asyncio.wait({self._engine_task})
