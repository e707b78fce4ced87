import logging
import os
from typing import Any, AsyncIterator, Dict, Optional

import logfire
import uvicorn
from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from mcp.server.fastmcp import FastMCP
from sse_starlette.sse import EventSourceResponse

from app.dispatcher import MessageDispatcher
from app.engine import McpProtocolEngine, ProtocolEngine
from app.session import SessionRegistry
from config import Settings
from tools.servers.extract_server import create_server_from_settings


class ExtractorServer:
    """
    HTTP front end for the extraction MCP server.

    Clients open an SSE stream to get a session, then post JSON-RPC messages
    to the message endpoint with that session's id; replies come back on the
    stream.
    """

    def __init__(
        self,
        logger: logging.Logger,
        settings: Settings,
        mcp: Optional[FastMCP] = None,
        engine: Optional[ProtocolEngine] = None,
        registry: Optional[SessionRegistry] = None,
    ) -> None:
        self.logger = logger
        self.settings = settings

        self.host = settings.host
        self.port = settings.port

        self.mcp = mcp or create_server_from_settings(settings)
        self.engine = engine or McpProtocolEngine(self.mcp, logger=self.logger)
        self.registry = registry or SessionRegistry(logger=self.logger)
        self.dispatcher = MessageDispatcher(self.registry, logger=self.logger)

        self.app = FastAPI(title="Web Content Extractor", version=settings.server_version)
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        # SSE stream: one session per connection
        @self.app.get(settings.sse_path)
        async def sse_endpoint():
            return EventSourceResponse(self.session_stream())

        # Message endpoint: body is relayed untouched whatever its content type
        @self.app.post(settings.message_path)
        async def message_endpoint(
            request: Request,
            session_id: Optional[str] = Query(default=None, alias="sessionId"),
        ):
            result = await self.dispatcher.dispatch(session_id, request.stream())
            return PlainTextResponse(result.detail, status_code=result.status_code)

        # Health check endpoint
        @self.app.get("/health")
        async def health_check():
            return self.health()

    def health(self) -> Dict[str, Any]:
        return {
            "status": "healthy",
            "active_sessions": self.registry.active_count(),
            "metrics": self.registry.get_metrics(),
        }

    def endpoint_for(self, session_id: str) -> str:
        """URL the client must post messages to for a session."""
        return f"{self.settings.message_path}?sessionId={session_id}"

    async def session_stream(self) -> AsyncIterator[Dict[str, str]]:
        """Open a session and stream its replies until the client disconnects."""
        transport = self.registry.open()
        session_id = transport.session_id
        transport.start(self.engine)
        logfire.info("extractor_server.session_opened", session_id=session_id)

        try:
            yield {"event": "endpoint", "data": self.endpoint_for(session_id)}
            async for payload in transport.outgoing():
                yield {"event": "message", "data": payload}
        finally:
            self.registry.close(session_id)
            logfire.info("extractor_server.session_closed", session_id=session_id)

    async def listen(self):
        """Start the server and listen for connections."""
        self.logger.info("Starting web content extractor server")

        config = uvicorn.Config(
            app=self.app,
            host=self.host,
            port=self.port,
            log_level="info" if self.settings.debug else "warning",
        )
        server = uvicorn.Server(config)

        try:
            self.logger.info(f"MCP Server running on port {self.port}")
            self.logger.info(f"Server started with PID {os.getpid()}")
            await server.serve()
        except KeyboardInterrupt:
            self.logger.info("Received shutdown signal")
        finally:
            await self.shutdown()

    async def shutdown(self):
        """Close every open session."""
        self.logger.info("Shutting down web content extractor server...")
        try:
            closed = self.registry.close_all()
            if closed:
                self.logger.info(f"Closed {closed} sessions")
            self.logger.info("Server shutdown completed")
        except Exception as e:
            self.logger.error(f"Shutdown error: {e}")
