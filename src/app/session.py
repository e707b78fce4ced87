import logging
import threading
import uuid
from typing import Any, Callable, Dict, List, Optional

from .transport import SessionTransport


class SessionRegistry:
    """
    Process-wide table of live session transports keyed by session id.

    Entries are added when a client opens a stream and removed when the
    stream closes, either through ``close`` or by the transport evicting
    itself. All access goes through an internal lock, so a lookup racing a
    close sees either the live transport or nothing.
    """

    def __init__(
        self,
        logger: Optional[logging.Logger] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        self.logger = logger or logging.getLogger("SessionRegistry")
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))

        self._sessions: Dict[str, SessionTransport] = {}
        self._lock = threading.Lock()

        # Session metrics
        self._session_metrics = {
            "total_opened": 0,
            "total_closed": 0,
        }

    def open(self) -> SessionTransport:
        """
        Allocate a new session and register its transport.

        Returns:
            The transport for the new session, already visible to lookups
        """
        with self._lock:
            session_id = self._id_factory()
            while session_id in self._sessions:
                self.logger.warning(f"Session id collision on {session_id}, regenerating")
                session_id = self._id_factory()

            transport = SessionTransport(
                session_id, on_close=self._evict, logger=self.logger
            )
            self._sessions[session_id] = transport
            self._session_metrics["total_opened"] += 1

        self.logger.info(f"SSE session started: {session_id}")
        return transport

    def lookup(self, session_id: str) -> Optional[SessionTransport]:
        """
        Get the live transport for a session.

        Args:
            session_id: Session identifier

        Returns:
            Transport if the session is live, None otherwise
        """
        with self._lock:
            return self._sessions.get(session_id)

    def close(self, session_id: str) -> None:
        """
        Close a session and remove it from the registry.

        Closing an unknown or already closed session does nothing.

        Args:
            session_id: Session identifier
        """
        with self._lock:
            transport = self._sessions.pop(session_id, None)
            if transport is not None:
                self._session_metrics["total_closed"] += 1

        if transport is None:
            return

        transport.close()
        self.logger.info(f"SSE session closed: {session_id}")

    def close_all(self) -> int:
        """Close every live session. Returns the number of sessions closed."""
        with self._lock:
            session_ids = list(self._sessions)

        for session_id in session_ids:
            self.close(session_id)
        return len(session_ids)

    def list_sessions(self) -> List[str]:
        with self._lock:
            return list(self._sessions)

    def active_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def get_metrics(self) -> Dict[str, Any]:
        """Get session registry metrics."""
        with self._lock:
            return {
                **self._session_metrics,
                "active_count": len(self._sessions),
            }

    def _evict(self, transport: SessionTransport) -> None:
        """Drop a transport that closed itself."""
        session_id = transport.session_id
        with self._lock:
            if self._sessions.get(session_id) is not transport:
                return
            del self._sessions[session_id]
            self._session_metrics["total_closed"] += 1

        self.logger.info(f"SSE session closed: {session_id}")
