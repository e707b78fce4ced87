#!/usr/bin/env python3
"""
Test message endpoint routing, classification and forwarding
"""

import json
import logging

import anyio
import pytest

from app.dispatcher import MessageDispatcher, read_body
from app.models import InboundMessage, decode_message
from app.transport import SessionTransport

TOOL_CALL = json.dumps(
    {
        "jsonrpc": "2.0",
        "id": 1,
        "method": "tools/call",
        "params": {"name": "extract-url", "arguments": {"url": "https://example.com"}},
    }
).encode()


async def wait_for_payloads(engine, count: int) -> None:
    with anyio.fail_after(5):
        while len(engine.received) < count:
            await anyio.sleep(0.01)


class UnreadBody:
    """Body stream that records whether anyone tried to read it."""

    def __init__(self):
        self.read = False

    def __aiter__(self):
        self.read = True
        return self

    async def __anext__(self):
        raise StopAsyncIteration


class ClosedSessionRegistry:
    """Registry whose lookup hands back a session that has since closed."""

    def __init__(self):
        self.transport = SessionTransport("closing")
        self.transport.close()

    def lookup(self, session_id):
        return self.transport


@pytest.mark.asyncio
async def test_unknown_session_is_client_error(live_registry):
    """Test an unknown session id is rejected before the body is read"""
    dispatcher = MessageDispatcher(live_registry)
    body = UnreadBody()

    result = await dispatcher.dispatch("ZZZ", body)

    assert result.status_code == 400
    assert result.detail == "No transport found for sessionId"
    assert not body.read


@pytest.mark.asyncio
async def test_missing_session_id_is_client_error(live_registry):
    """Test a request without a session id is rejected"""
    dispatcher = MessageDispatcher(live_registry)

    result = await dispatcher.dispatch(None, TOOL_CALL)

    assert result.status_code == 400
    assert not result.accepted


@pytest.mark.asyncio
async def test_tool_call_is_logged_and_forwarded(live_registry, caplog):
    """Test a tool invocation is classified by name and relayed unchanged"""
    caplog.set_level(logging.INFO)

    class SilentEngine:
        def __init__(self):
            self.received = []

        async def run(self, inbound, outbound):
            async for raw in inbound:
                self.received.append(raw)

    engine = SilentEngine()
    transport = live_registry.open()
    transport.start(engine)
    dispatcher = MessageDispatcher(live_registry)

    result = await dispatcher.dispatch(transport.session_id, TOOL_CALL)

    assert result.status_code == 202
    assert result.accepted
    await wait_for_payloads(engine, 1)
    assert engine.received == [TOOL_CALL]
    assert "Tool call detected: extract-url" in caplog.text


@pytest.mark.asyncio
async def test_unparseable_body_is_still_forwarded(live_registry, recording_engine):
    """Test a truncated body is relayed verbatim without a client error"""
    transport = live_registry.open()
    transport.start(recording_engine)
    dispatcher = MessageDispatcher(live_registry)
    truncated = TOOL_CALL[:25]

    result = await dispatcher.dispatch(transport.session_id, truncated)

    assert result.status_code == 202
    await wait_for_payloads(recording_engine, 1)
    assert recording_engine.received == [truncated]


@pytest.mark.asyncio
async def test_streamed_body_is_drained_before_forwarding(live_registry, recording_engine):
    """Test a body delivered in chunks arrives as one identical payload"""
    transport = live_registry.open()
    transport.start(recording_engine)
    dispatcher = MessageDispatcher(live_registry)
    notification = b'{"jsonrpc": "2.0", "method": "notifications/initialized"}'

    async def chunks():
        for start in range(0, len(notification), 7):
            yield notification[start:start + 7]
        yield b""

    result = await dispatcher.dispatch(transport.session_id, chunks())

    assert result.status_code == 202
    await wait_for_payloads(recording_engine, 1)
    assert recording_engine.received == [notification]


@pytest.mark.asyncio
async def test_session_closed_mid_flight_is_distinct_failure():
    """Test a known session that closed reports 410, not an unknown session"""
    dispatcher = MessageDispatcher(ClosedSessionRegistry())

    result = await dispatcher.dispatch("closing", TOOL_CALL)

    assert result.status_code == 410
    assert result.detail == "Session closed"


@pytest.mark.asyncio
async def test_read_body_accepts_bytes_and_streams():
    """Test both buffered and streamed bodies are read in full"""

    async def chunks():
        yield b"ab"
        yield b"cd"

    assert await read_body(b"abcd") == b"abcd"
    assert await read_body(bytearray(b"abcd")) == b"abcd"
    assert await read_body(chunks()) == b"abcd"


def test_decode_classifies_tool_calls():
    """Test decoding picks out the tool name of a tool call"""
    message = InboundMessage(session_id="s", raw=TOOL_CALL, decoded=decode_message(TOOL_CALL))

    assert message.decoded.method == "tools/call"
    assert message.tool_name == "extract-url"
    assert message.request_id == 1


def test_decode_failures_are_not_errors():
    """Test bodies that are not JSON-RPC calls decode to nothing"""
    for raw in (b"", b"not json", b"[1, 2]", b'{"id": 1}', TOOL_CALL[:25], b"\xff\xfe"):
        assert decode_message(raw) is None


def test_request_id_only_for_well_formed_requests():
    """Test only JSON-RPC 2.0 requests with string or integer ids are tracked"""
    cases = {
        b'{"jsonrpc": "2.0", "id": "a", "method": "ping"}': "a",
        b'{"jsonrpc": "2.0", "method": "notifications/initialized"}': None,
        b'{"jsonrpc": "2.0", "id": true, "method": "ping"}': None,
        b'{"jsonrpc": "2.0", "id": 1.5, "method": "ping"}': None,
        b'{"id": 3, "method": "ping"}': None,
    }
    for raw, expected in cases.items():
        message = InboundMessage(session_id="s", raw=raw, decoded=decode_message(raw))
        assert message.request_id == expected


def test_tool_name_requires_string_name():
    """Test non-tool methods and malformed names are not classified"""
    raw = b'{"jsonrpc": "2.0", "id": 1, "method": "tools/call", "params": {"name": 5}}'
    other = b'{"jsonrpc": "2.0", "id": 1, "method": "prompts/get", "params": {"name": "x"}}'

    assert InboundMessage(session_id="s", raw=raw, decoded=decode_message(raw)).tool_name is None
    assert InboundMessage(session_id="s", raw=other, decoded=decode_message(other)).tool_name is None
