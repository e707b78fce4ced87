#!/usr/bin/env python3
"""
Pytest configuration and fixtures for web content extractor testing
"""

import json
import sys
from pathlib import Path
from typing import List, Optional

import anyio
import httpx
import pytest
import pytest_asyncio

# Add the src directory to the path
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from app.session import SessionRegistry
from tools.extraction import UrlExtractor


ARTICLE_HTML = """<!DOCTYPE html>
<html>
<head><title>Foxes and Dogs</title></head>
<body>
  <div id="nav"><a href="/">Home</a> | <a href="/about">About</a></div>
  <article>
    <h1>Foxes and Dogs</h1>
    <p>The quick brown fox jumps over the lazy dog, and this sentence is long enough
    to be treated as real article content by the extractor.</p>
    <p>A second paragraph adds more words, commas, and detail, so that the scoring
    picks this block as the main body of the page rather than the navigation.</p>
    <p>Finally, a third paragraph closes the story, with a few more clauses, to make
    the article comfortably longer than the minimum length.</p>
  </article>
  <div id="footer">All rights reserved</div>
</body>
</html>
"""


def reply_for(raw: bytes) -> Optional[str]:
    """Echo reply for a JSON-RPC request, None for anything else."""
    try:
        message = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(message, dict) or "id" not in message or "method" not in message:
        return None
    return json.dumps(
        {"jsonrpc": "2.0", "id": message["id"], "result": {"method": message["method"]}}
    )


class RecordingEngine:
    """Protocol engine that records every payload and echoes requests."""

    def __init__(self):
        self.received: List[bytes] = []

    async def run(self, inbound, outbound):
        async for raw in inbound:
            self.received.append(raw)
            reply = reply_for(raw)
            if reply is not None:
                await outbound.send(reply)


class ReversingEngine:
    """Collects a batch of requests, then answers them last-first."""

    def __init__(self, batch_size: int):
        self.batch_size = batch_size

    async def run(self, inbound, outbound):
        batch = []
        async for raw in inbound:
            batch.append(raw)
            if len(batch) == self.batch_size:
                for pending in reversed(batch):
                    await outbound.send(reply_for(pending))
                batch = []


class StallingEngine:
    """Simulates a tool call that is still fetching when the session closes."""

    def __init__(self):
        self.started = anyio.Event()
        self.cancelled = False
        self.wrote_after_close = False

    async def run(self, inbound, outbound):
        async for _raw in inbound:
            self.started.set()
            try:
                await anyio.sleep(30)
            except anyio.get_cancelled_exc_class():
                self.cancelled = True
                raise
            await outbound.send('{"jsonrpc": "2.0", "id": 1, "result": {}}')
            self.wrote_after_close = True


async def next_payload(stream, timeout: float = 5.0) -> str:
    """Read the next payload from a transport's outgoing stream."""
    with anyio.fail_after(timeout):
        return await stream.__anext__()


async def next_response(stream, request_id, timeout: float = 10.0) -> dict:
    """Read payloads until the response to ``request_id`` arrives."""
    with anyio.fail_after(timeout):
        async for payload in stream:
            message = json.loads(payload)
            if message.get("id") == request_id and "method" not in message:
                return message
    raise AssertionError(f"stream ended before response {request_id}")


def html_handler(html: str, seen: Optional[list] = None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(200, html=html)

    return handler


@pytest.fixture
def registry():
    """Create a fresh SessionRegistry for testing"""
    registry = SessionRegistry()
    yield registry
    registry.close_all()


class DrainingRegistry(SessionRegistry):
    """SessionRegistry that remembers its transports so tests can wait for them."""

    def __init__(self):
        super().__init__()
        self.opened = []

    def open(self):
        transport = super().open()
        self.opened.append(transport)
        return transport

    async def drain(self):
        self.close_all()
        for transport in self.opened:
            await transport.wait_closed()


@pytest_asyncio.fixture
async def live_registry():
    """SessionRegistry whose sessions run engines, closed and drained after the test"""
    registry = DrainingRegistry()
    yield registry
    await registry.drain()


@pytest.fixture
def recording_engine():
    return RecordingEngine()


@pytest.fixture
def article_extractor():
    """UrlExtractor whose fetches return a readable article"""
    return UrlExtractor(transport=httpx.MockTransport(html_handler(ARTICLE_HTML)))
