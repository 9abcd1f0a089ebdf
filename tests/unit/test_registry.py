"""Unit tests for the session registry.

Requests are driven straight through the registry's ASGI entry point, so
every session runs its real MCP handler over the library transport.
"""

import asyncio
import json
from collections.abc import Awaitable, Callable, Iterator
from typing import Any

import pytest

from sbmcp.daemon.registry import SessionRegistry
from sbmcp.exceptions import SessionError
from sbmcp.mcp.server import HandlerContext, build_server

INITIALIZE = {
    "jsonrpc": "2.0",
    "id": 1,
    "method": "initialize",
    "params": {
        "protocolVersion": "2025-03-26",
        "capabilities": {},
        "clientInfo": {"name": "test-client", "version": "1.0"},
    },
}

INITIALIZED = {"jsonrpc": "2.0", "method": "notifications/initialized"}
TOOLS_LIST = {"jsonrpc": "2.0", "id": 2, "method": "tools/list"}


class Reply:
    """Status, headers and decoded body of one ASGI response."""

    def __init__(self, messages: list[dict[str, Any]]) -> None:
        start = next(m for m in messages if m["type"] == "http.response.start")
        self.status: int = start["status"]
        self.headers = {k.decode().lower(): v.decode() for k, v in start.get("headers", [])}
        raw = b"".join(m.get("body", b"") for m in messages if m["type"] == "http.response.body")
        self.text = raw.decode("utf-8")
        try:
            self.body: Any = json.loads(raw) if raw else None
        except ValueError:
            self.body = None

    @property
    def session_id(self) -> str | None:
        return self.headers.get("mcp-session-id")


async def request(
    registry: SessionRegistry,
    method: str,
    body: Any = None,
    session_id: str | None = None,
) -> Reply:
    """Send one /mcp request through the registry."""
    raw = json.dumps(body).encode() if body is not None else b""
    headers = [
        (b"content-type", b"application/json"),
        (b"accept", b"application/json, text/event-stream"),
    ]
    if session_id:
        headers.append((b"mcp-session-id", session_id.encode()))
    scope = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": "/mcp",
        "raw_path": b"/mcp",
        "root_path": "",
        "query_string": b"",
        "headers": headers,
        "client": ("127.0.0.1", 50000),
        "server": ("127.0.0.1", 4000),
    }
    delivered = False

    async def receive() -> dict[str, Any]:
        nonlocal delivered
        if not delivered:
            delivered = True
            return {"type": "http.request", "body": raw, "more_body": False}
        return {"type": "http.disconnect"}

    messages: list[dict[str, Any]] = []

    async def send(message: dict[str, Any]) -> None:
        messages.append(message)

    await registry.handle_request(scope, receive, send, body)
    return Reply(messages)


async def open_session(registry: SessionRegistry) -> str:
    reply = await request(registry, "POST", INITIALIZE)
    assert reply.status == 200
    assert reply.session_id
    assert (await request(registry, "POST", INITIALIZED, reply.session_id)).status == 202
    return reply.session_id


def make_registry(handler_ctx: HandlerContext, ids: list[str] | None = None) -> SessionRegistry:
    id_iter: Iterator[str] | None = iter(ids) if ids else None
    return SessionRegistry(
        lambda: build_server(handler_ctx),
        id_factory=(lambda: next(id_iter)) if id_iter else None,
    )


def run_registry(registry: SessionRegistry, scenario: Callable[[SessionRegistry], Awaitable[Any]]) -> Any:
    """Run scenario while the registry's task group is up."""

    async def run() -> Any:
        async with registry.run():
            return await scenario(registry)

    return asyncio.run(run())


class TestSessionLifecycle:
    """Tests for creating, registering and releasing sessions."""

    def test_initialize_registers_session(self, handler_ctx) -> None:
        async def scenario(registry) -> Any:
            reply = await request(registry, "POST", INITIALIZE)
            return reply, registry.session_ids

        reply, live = run_registry(make_registry(handler_ctx), scenario)

        assert reply.status == 200
        assert live == [reply.session_id]
        result = reply.body["result"]
        assert result["serverInfo"]["name"] == "silverbullet-mcp"
        assert result["capabilities"]["resources"]["listChanged"] is True
        assert "tools" in result["capabilities"]

    def test_same_id_resolves_to_same_pair(self, handler_ctx) -> None:
        async def scenario(registry) -> Any:
            session_id = await open_session(registry)
            first, second = registry.get(session_id), registry.get(session_id)
            listed = await request(registry, "POST", TOOLS_LIST, session_id)
            return first, second, listed

        first, second, listed = run_registry(make_registry(handler_ctx), scenario)

        assert first is second
        assert first.transport is second.transport
        assert len(listed.body["result"]["tools"]) == 8

    def test_each_session_gets_own_handler(self, handler_ctx) -> None:
        async def scenario(registry) -> Any:
            one = registry.get(await open_session(registry))
            two = registry.get(await open_session(registry))
            return one, two

        one, two = run_registry(make_registry(handler_ctx), scenario)

        assert one.session_id != two.session_id
        assert one.handler is not two.handler
        assert one.transport is not two.transport

    def test_missing_id(self, handler_ctx) -> None:
        registry = make_registry(handler_ctx)
        assert registry.get(None) is None
        assert registry.get("") is None
        assert registry.get("nope") is None

    def test_live_id_not_reused(self, handler_ctx) -> None:
        async def scenario(registry) -> list[str]:
            await open_session(registry)
            await open_session(registry)
            return registry.session_ids

        assert run_registry(make_registry(handler_ctx, ["a", "a", "b"]), scenario) == ["a", "b"]

    def test_failed_initialize_is_discarded(self, handler_ctx) -> None:
        """An initialize the handler rejects leaves nothing behind."""

        async def scenario(registry) -> Any:
            reply = await request(registry, "POST", {"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {}})
            return reply, len(registry), registry.total_created

        reply, sessions, created = run_registry(make_registry(handler_ctx), scenario)

        assert "error" in reply.body
        assert sessions == 0
        assert created == 1

    def test_discard(self, handler_ctx) -> None:
        """A discarded session is closed and can never register."""

        async def scenario(registry) -> Any:
            session = await registry.create()
            await registry.discard(session)
            registry.register(session)
            return session, session.session_id in registry

        session, registered = run_registry(make_registry(handler_ctx), scenario)

        assert session.transport.is_terminated
        assert not registered

    def test_create_requires_running_registry(self, handler_ctx) -> None:
        with pytest.raises(RuntimeError):
            asyncio.run(make_registry(handler_ctx).create())

    def test_resolve_unknown_id(self, handler_ctx) -> None:
        registry = make_registry(handler_ctx)
        with pytest.raises(SessionError, match="Invalid or missing session ID$"):
            registry.resolve(None)
        with pytest.raises(SessionError, match="for DELETE"):
            registry.resolve("nope", "DELETE")


class TestRouting:
    """Tests for requests that do not reach a live session."""

    def test_request_before_initialize(self, handler_ctx) -> None:
        async def scenario(registry) -> Any:
            return await request(registry, "POST", TOOLS_LIST), registry.total_created

        reply, created = run_registry(make_registry(handler_ctx), scenario)

        assert reply.status == 400
        assert reply.body == {
            "jsonrpc": "2.0",
            "error": {"code": -32000, "message": "Bad Request: No valid session ID provided"},
            "id": 2,
        }
        assert reply.session_id is None
        assert created == 0

    def test_unknown_id_with_initialize_starts_new_session(self, handler_ctx) -> None:
        async def scenario(registry) -> Any:
            return await request(registry, "POST", INITIALIZE, session_id="stale-id"), registry.session_ids

        reply, live = run_registry(make_registry(handler_ctx), scenario)

        assert reply.status == 200
        assert reply.session_id != "stale-id"
        assert live == [reply.session_id]

    def test_get_and_delete_without_session(self, handler_ctx) -> None:
        async def scenario(registry) -> Any:
            get = await request(registry, "GET")
            delete = await request(registry, "DELETE", session_id="nope")
            return (get.status, get.text), (delete.status, delete.text)

        get, delete = run_registry(make_registry(handler_ctx), scenario)

        assert get == (400, "Invalid or missing session ID")
        assert delete == (400, "Invalid or missing session ID for DELETE")


class TestHandlerContext:
    """Tests for handlers that need the live request context."""

    def test_list_changing_tool_runs_inside_session(self, handler_ctx, store) -> None:
        """create-note notifies its session, which needs the request context."""

        async def scenario(registry) -> Any:
            session_id = await open_session(registry)
            return await request(
                registry,
                "POST",
                {
                    "jsonrpc": "2.0",
                    "id": 3,
                    "method": "tools/call",
                    "params": {"name": "create-note", "arguments": {"filename": "new.md", "content": "x"}},
                },
                session_id,
            )

        reply = run_registry(make_registry(handler_ctx), scenario)

        result = reply.body["result"]
        assert not result.get("isError", False)
        assert result["content"][0]["text"] == "Successfully created note: new.md"
        assert store.contents["new.md"] == "x"


class TestInternalErrors:
    """Tests for failures inside a live session."""

    def test_handler_exception_keeps_session(self, handler_ctx, store) -> None:
        store.crashing_reads.add("index.md")

        async def scenario(registry) -> Any:
            session_id = await open_session(registry)
            failed = await request(
                registry,
                "POST",
                {"jsonrpc": "2.0", "id": 5, "method": "resources/read", "params": {"uri": "sb-note://index.md"}},
                session_id,
            )
            after = await request(registry, "POST", TOOLS_LIST, session_id)
            return session_id, failed, after, registry.session_ids

        session_id, failed, after, live = run_registry(make_registry(handler_ctx), scenario)

        assert failed.body["error"]["code"] == -32603
        assert failed.body["error"]["message"] == "boom"
        assert failed.body["id"] == 5
        assert after.status == 200
        assert live == [session_id]

    def test_store_error_code(self, handler_ctx, store) -> None:
        store.failing_reads.add("index.md")

        async def scenario(registry) -> Any:
            session_id = await open_session(registry)
            return await request(
                registry,
                "POST",
                {"jsonrpc": "2.0", "id": 6, "method": "resources/read", "params": {"uri": "sb-note://index.md"}},
                session_id,
            )

        reply = run_registry(make_registry(handler_ctx), scenario)
        assert reply.body["error"]["code"] == -32002

    def test_transport_failure_returns_500(self, handler_ctx) -> None:
        async def scenario(registry) -> Any:
            session_id = await open_session(registry)
            session = registry.get(session_id)

            async def broken(scope, receive, send) -> None:
                raise RuntimeError("transport jammed")

            session.transport.handle_request = broken
            reply = await request(registry, "POST", TOOLS_LIST, session_id)
            return session_id, reply, session_id in registry

        session_id, reply, still_live = run_registry(make_registry(handler_ctx), scenario)

        assert reply.status == 500
        assert reply.body["error"]["code"] == -32603
        assert reply.body["id"] == 2
        assert reply.session_id == session_id
        assert still_live


class TestTerminate:
    """Tests for client-requested termination."""

    def test_delete(self, handler_ctx) -> None:
        async def scenario(registry) -> Any:
            session_id = await open_session(registry)
            session = registry.get(session_id)
            deleted = await request(registry, "DELETE", session_id=session_id)
            after = await request(registry, "POST", TOOLS_LIST, session_id)
            return session, deleted, after, len(registry)

        session, deleted, after, sessions = run_registry(make_registry(handler_ctx), scenario)

        assert deleted.status == 200
        assert session.transport.is_terminated
        assert after.status == 400
        assert sessions == 0

    def test_failed_termination_still_releases(self, handler_ctx) -> None:
        async def scenario(registry) -> Any:
            session_id = await open_session(registry)
            session = registry.get(session_id)

            async def broken(scope, receive, send) -> None:
                raise RuntimeError("transport jammed")

            session.transport.handle_request = broken
            reply = await request(registry, "DELETE", session_id=session_id)
            return reply, session_id in registry

        reply, still_live = run_registry(make_registry(handler_ctx), scenario)

        assert reply.status == 500
        assert reply.text == "Internal server error during session termination."
        assert not still_live

    def test_terminate_by_id(self, handler_ctx) -> None:
        """A terminated id cannot be resolved or terminated again."""

        async def scenario(registry) -> Any:
            session_id = await open_session(registry)
            session = registry.get(session_id)
            await registry.terminate(session_id)
            with pytest.raises(SessionError):
                await registry.terminate(session_id)
            stream = await request(registry, "GET", session_id=session_id)
            return session, session_id in registry, stream

        session, still_live, stream = run_registry(make_registry(handler_ctx), scenario)

        assert session.transport.is_terminated
        assert not still_live
        assert (stream.status, stream.text) == (400, "Invalid or missing session ID")

    def test_close_all(self, handler_ctx) -> None:
        async def scenario(registry) -> Any:
            sessions = [registry.get(await open_session(registry)) for _ in range(3)]
            await registry.close_all()
            return sessions, len(registry), registry.get_stats()

        sessions, remaining, stats = run_registry(make_registry(handler_ctx), scenario)

        assert remaining == 0
        assert all(s.transport.is_terminated for s in sessions)
        assert stats == {"active_sessions": 0, "total_created": 3}

    def test_leaving_run_closes_sessions(self, handler_ctx) -> None:
        registry = make_registry(handler_ctx)

        async def scenario(registry) -> Any:
            return registry.get(await open_session(registry))

        session = run_registry(registry, scenario)

        assert session.transport.is_terminated
        assert len(registry) == 0
        assert not registry.is_running
