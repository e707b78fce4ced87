class SessionTransportError(Exception):
    """Base class for failures raised by a session transport."""

    def __init__(self, session_id: str, message: str):
        super().__init__(message)
        self.session_id = session_id


class SessionClosedError(SessionTransportError):
    """Raised when a message is forwarded to a session that is no longer open."""

    def __init__(self, session_id: str):
        super().__init__(session_id, f"Session {session_id} is closed")
