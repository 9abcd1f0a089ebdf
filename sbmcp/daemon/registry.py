"""Registry of live MCP sessions.

Each session pairs one streamable HTTP transport from the MCP library with
its own MCP handler, which runs for the life of the session inside the
registry's task group. A session becomes reachable by id only after its
initialize request succeeds, and it is released together with its
transport.
"""

import json
import logging
import uuid
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import anyio
from anyio.abc import TaskGroup, TaskStatus
from mcp.server.lowlevel import NotificationOptions, Server
from mcp.server.streamable_http import MCP_SESSION_ID_HEADER, StreamableHTTPServerTransport
from starlette.datastructures import Headers
from starlette.responses import JSONResponse, PlainTextResponse
from starlette.types import Message, Receive, Scope, Send

from sbmcp.exceptions import SessionError
from sbmcp.mcp.protocol import ErrorCode, error_body, is_initialize_request

logger = logging.getLogger(__name__)

HandlerFactory = Callable[[], Server]


@dataclass
class Session:
    """A transport and the handler bound to it."""

    session_id: str
    handler: Server
    transport: StreamableHTTPServerTransport
    created_at: datetime = field(default_factory=datetime.now)


class ReplyRecorder:
    """ASGI send wrapper that remembers the response status.

    With ``keep_body`` it also keeps the body so a JSON reply can be
    inspected after it was sent.
    """

    def __init__(self, send: Send, keep_body: bool = False) -> None:
        self._send = send
        self._keep_body = keep_body
        self._chunks: list[bytes] = []
        self.status: int | None = None

    async def __call__(self, message: Message) -> None:
        if message["type"] == "http.response.start":
            self.status = message["status"]
        elif message["type"] == "http.response.body" and self._keep_body:
            self._chunks.append(message.get("body", b""))
        await self._send(message)

    @property
    def started(self) -> bool:
        return self.status is not None

    def json(self) -> Any:
        try:
            return json.loads(b"".join(self._chunks))
        except ValueError:
            return None


def _without_session_header(scope: Scope) -> Scope:
    headers = [(k, v) for k, v in scope["headers"] if k.lower() != MCP_SESSION_ID_HEADER.encode()]
    return {**scope, "headers": headers}


class SessionRegistry:
    """Maps session ids to live sessions.

    Only sessions whose initialize handshake succeeded are reachable by id.
    Requests carrying an unknown id are treated as if they carried none.
    """

    def __init__(
        self,
        handler_factory: HandlerFactory,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        """Initialize the registry.

        Args:
            handler_factory: Builds a fresh MCP handler for a new session.
            id_factory: Generates session ids. Defaults to random UUIDs.
        """
        self._handler_factory = handler_factory
        self._new_id = id_factory or (lambda: str(uuid.uuid4()))
        self._sessions: dict[str, Session] = {}
        self._task_group: TaskGroup | None = None
        self.total_created = 0

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    @property
    def session_ids(self) -> list[str]:
        return list(self._sessions)

    @property
    def is_running(self) -> bool:
        return self._task_group is not None

    @asynccontextmanager
    async def run(self) -> AsyncIterator[None]:
        """Own the task group every session handler runs in.

        Meant for the lifespan of the web application. Leaving the context
        closes every session.
        """
        async with anyio.create_task_group() as tg:
            self._task_group = tg
            logger.info("Session registry started")
            try:
                yield
            finally:
                logger.info("Session registry shutting down")
                await self.close_all()
                tg.cancel_scope.cancel()
                self._task_group = None

    def get(self, session_id: str | None) -> Session | None:
        """Look up a live session. Returns None for unknown or missing ids."""
        if not session_id:
            return None
        return self._sessions.get(session_id)

    def resolve(self, session_id: str | None, method: str = "GET") -> Session:
        """Look up the live session a GET or DELETE addresses.

        Raises:
            SessionError: If the id is missing, unknown or already closed.
        """
        session = self.get(session_id)
        if session is None or session.transport.is_terminated:
            suffix = " for DELETE" if method == "DELETE" else ""
            raise SessionError(f"Invalid or missing session ID{suffix}")
        return session

    async def create(self) -> Session:
        """Create a transport/handler pair under a fresh id and start its handler.

        The session is not reachable by id until ``register`` is called.

        Raises:
            RuntimeError: If the registry is not running.
        """
        if self._task_group is None:
            raise RuntimeError("Session registry is not running")

        session_id = self._new_id()
        while session_id in self._sessions:
            session_id = self._new_id()

        transport = StreamableHTTPServerTransport(
            mcp_session_id=session_id,
            is_json_response_enabled=True,
        )
        session = Session(session_id=session_id, handler=self._handler_factory(), transport=transport)
        await self._task_group.start(self._run_session, session)
        self.total_created += 1
        logger.debug("Created session %s", session_id)
        return session

    async def _run_session(self, session: Session, *, task_status: TaskStatus[None] = anyio.TASK_STATUS_IGNORED) -> None:
        handler = session.handler
        async with session.transport.connect() as (read_stream, write_stream):
            task_status.started()
            try:
                await handler.run(
                    read_stream,
                    write_stream,
                    handler.create_initialization_options(
                        notification_options=NotificationOptions(resources_changed=True),
                    ),
                    stateless=False,
                )
            except Exception:
                logger.exception("Session %s crashed", session.session_id)
            finally:
                await self._release(session)

    def register(self, session: Session) -> None:
        """Make an initialized session reachable by its id."""
        if session.transport.is_terminated:
            logger.warning("Refusing to register closed session %s", session.session_id)
            return
        self._sessions[session.session_id] = session
        logger.info("Session %s registered (%d active)", session.session_id, len(self._sessions))

    async def discard(self, session: Session) -> None:
        """Drop a session that never completed initialization."""
        logger.debug("Discarding uninitialized session %s", session.session_id)
        await self._release(session)

    async def _release(self, session: Session) -> None:
        if self._sessions.get(session.session_id) is session:
            del self._sessions[session.session_id]
            logger.info("Session %s closed (%d active)", session.session_id, len(self._sessions))
        if not session.transport.is_terminated:
            with anyio.CancelScope(shield=True):
                await session.transport.terminate()

    async def terminate(self, session_id: str) -> None:
        """Close a live session by id.

        Raises:
            SessionError: If no live session has this id.
        """
        await self._release(self.resolve(session_id, "DELETE"))

    async def close_all(self) -> None:
        """Close every live session."""
        for session in list(self._sessions.values()):
            await self._release(session)

    # Request routing

    async def handle_request(self, scope: Scope, receive: Receive, send: Send, body: Any = None) -> None:
        """Route one authenticated /mcp request to its session.

        Args:
            scope: ASGI scope.
            receive: ASGI receive callable. The body must still be readable.
            send: ASGI send callable.
            body: The decoded JSON body of a POST, if any.
        """
        session_id = Headers(scope=scope).get(MCP_SESSION_ID_HEADER)
        method = scope["method"]

        closed = self.get(session_id)
        if closed is not None and closed.transport.is_terminated:
            await self._release(closed)

        if method != "POST":
            try:
                session = self.resolve(session_id, method)
            except SessionError as e:
                logger.debug("Rejected %s /mcp: %s", method, e)
                await PlainTextResponse(str(e), status_code=400)(scope, receive, send)
                return
            if method == "DELETE":
                await self._terminate(session, scope, receive, send)
            else:
                await self._forward(session, scope, receive, send, body)
            return

        live = self.get(session_id)
        if live is not None:
            await self._forward(live, scope, receive, send, body)
            return

        if is_initialize_request(body):
            if session_id:
                logger.info("Unknown session %s, starting a new session", session_id)
            await self._open(_without_session_header(scope), receive, send)
            return

        request_id = body.get("id") if isinstance(body, dict) else None
        response = JSONResponse(
            error_body(ErrorCode.SERVER_ERROR, "Bad Request: No valid session ID provided", request_id),
            status_code=400,
        )
        await response(scope, receive, send)

    async def _open(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Serve the initialize request that opens a new session."""
        session = await self.create()
        recorder = ReplyRecorder(send, keep_body=True)
        established = False
        try:
            await session.transport.handle_request(scope, receive, recorder)
            reply = recorder.json()
            established = (
                recorder.status is not None
                and recorder.status < 400
                and isinstance(reply, dict)
                and "result" in reply
            )
        except Exception:
            logger.exception("Error initializing session %s", session.session_id)
            if not recorder.started:
                await self._internal_error(scope, receive, send)
        finally:
            if established:
                self.register(session)
            else:
                await self.discard(session)

    async def _forward(self, session: Session, scope: Scope, receive: Receive, send: Send, body: Any) -> None:
        recorder = ReplyRecorder(send)
        try:
            await session.transport.handle_request(scope, receive, recorder)
        except Exception:
            logger.exception("Error handling MCP request for session %s", session.session_id)
            if not recorder.started:
                request_id = body.get("id") if isinstance(body, dict) else None
                await self._internal_error(scope, receive, send, request_id, session.session_id)
        if session.transport.is_terminated:
            await self._release(session)

    async def _terminate(self, session: Session, scope: Scope, receive: Receive, send: Send) -> None:
        """Let the transport end the session, then release it whatever happened."""
        recorder = ReplyRecorder(send)
        try:
            await session.transport.handle_request(scope, receive, recorder)
        except Exception:
            logger.exception("Error terminating session %s", session.session_id)
            if not recorder.started:
                response = PlainTextResponse("Internal server error during session termination.", status_code=500)
                await response(scope, receive, send)
        finally:
            await self._release(session)

    async def _internal_error(
        self,
        scope: Scope,
        receive: Receive,
        send: Send,
        request_id: Any = None,
        session_id: str | None = None,
    ) -> None:
        headers = {MCP_SESSION_ID_HEADER: session_id} if session_id else None
        response = JSONResponse(
            error_body(ErrorCode.INTERNAL_ERROR, "Internal server error during request handling.", request_id),
            status_code=500,
            headers=headers,
        )
        await response(scope, receive, send)

    def get_stats(self) -> dict[str, Any]:
        """Get registry statistics."""
        return {
            "active_sessions": len(self._sessions),
            "total_created": self.total_created,
        }
