"""HTTP client for the SilverBullet note store.

Every operation issues exactly one HTTP call. Failures (connection errors,
non-2xx statuses, unparseable listings) surface as StoreError carrying the
operation and target; nothing is retried.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, TypeVar
from urllib.parse import quote

import aiohttp
from pydantic import ValidationError

from sbmcp.exceptions import StoreError
from sbmcp.models.note import NoteInfo, StoreFile

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Only the first part of an error body is worth logging
ERROR_BODY_LOG_LIMIT = 500


class NoteStore(Protocol):
    """Operations the cache, search and note services need from a store."""

    async def list_notes(self) -> list[NoteInfo]: ...

    async def list_files(self) -> list[StoreFile]: ...

    async def read(self, name: str) -> str: ...

    async def write(self, name: str, content: str) -> None: ...

    async def delete(self, name: str) -> None: ...


class NoteStoreClient:
    """Client for the SilverBullet HTTP API.

    Example:
        async with NoteStoreClient("http://silverbullet:3000") as store:
            notes = await store.list_notes()
    """

    def __init__(
        self,
        base_url: str,
        auth_token: str | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Base URL of the SilverBullet API.
            auth_token: Optional bearer token sent with every request.
            session: Optional aiohttp session to reuse. When omitted the client
                creates (and later closes) its own.
        """
        self._base_url = base_url.rstrip("/")
        self._auth_token = auth_token
        self._session = session
        self._owns_session = session is None

    @property
    def base_url(self) -> str:
        return self._base_url

    async def __aenter__(self) -> "NoteStoreClient":
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP session if this client created it."""
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    def _headers(self, content_type: str | None = None) -> dict[str, str]:
        headers = {"X-Sync-Mode": "true"}
        if self._auth_token:
            headers["Authorization"] = f"Bearer {self._auth_token}"
        if content_type:
            headers["Content-Type"] = content_type
        return headers

    def note_url(self, name: str) -> str:
        """URL of a single note."""
        return f"{self._base_url}/{quote(name, safe='')}"

    @property
    def index_url(self) -> str:
        return f"{self._base_url}/index.json"

    async def _call(
        self,
        operation: str,
        method: str,
        url: str,
        reader: Callable[[aiohttp.ClientResponse], Awaitable[T]],
        name: str | None = None,
        data: str | None = None,
        content_type: str | None = None,
    ) -> T:
        """Issue one request and read its body with reader.

        Raises:
            StoreError: On connection failure or non-2xx status.
        """
        logger.debug("%s %s", method, url)
        try:
            async with self._get_session().request(
                method,
                url,
                data=data.encode("utf-8") if data is not None else None,
                headers=self._headers(content_type),
            ) as response:
                if not 200 <= response.status < 300:
                    body = await response.text()
                    logger.error(
                        "Error response body for %s %s (first %d chars): %s",
                        operation, name or "", ERROR_BODY_LOG_LIMIT, body[:ERROR_BODY_LOG_LIMIT],
                    )
                    raise StoreError(
                        operation,
                        name,
                        f"{response.status} {response.reason}",
                        status=response.status,
                        url=url,
                    )
                return await reader(response)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("Fetch failed for %s: %s", url, e)
            raise StoreError(operation, name, str(e) or type(e).__name__, url=url) from e

    async def list_files(self) -> list[StoreFile]:
        """Fetch the full, unfiltered listing with modification metadata."""

        async def read_json(response: aiohttp.ClientResponse) -> Any:
            return await response.json(content_type=None)

        try:
            rows = await self._call("list files", "GET", self.index_url, read_json)
        except ValueError as e:
            logger.error("Failed to parse JSON listing from %s: %s", self.index_url, e)
            raise StoreError("list files", cause=f"invalid JSON: {e}", url=self.index_url) from e

        if not isinstance(rows, list):
            raise StoreError(
                "list files", cause="expected a JSON array", url=self.index_url
            )
        try:
            return [StoreFile.model_validate(row) for row in rows]
        except ValidationError as e:
            raise StoreError(
                "list files", cause=f"unexpected listing entry: {e}", url=self.index_url
            ) from e

    async def list_notes(self) -> list[NoteInfo]:
        """List markdown notes with their permissions."""
        return [f.to_note_info() for f in await self.list_files() if f.is_note]

    async def read(self, name: str) -> str:
        """Read a note's raw markdown body."""

        async def read_text(response: aiohttp.ClientResponse) -> str:
            return await response.text()

        return await self._call("read note", "GET", self.note_url(name), read_text, name=name)

    async def write(self, name: str, content: str) -> None:
        """Create or replace a note."""

        async def discard(response: aiohttp.ClientResponse) -> None:
            await response.read()

        await self._call(
            "write note",
            "PUT",
            self.note_url(name),
            discard,
            name=name,
            data=content,
            content_type="text/markdown",
        )

    async def delete(self, name: str) -> None:
        """Delete a note."""

        async def discard(response: aiohttp.ClientResponse) -> None:
            await response.read()

        await self._call("delete note", "DELETE", self.note_url(name), discard, name=name)
