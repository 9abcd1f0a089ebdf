"""Store access for CLI commands.

Commands talk to SilverBullet directly through the same store client the
bridge uses; they do not go through a running bridge.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sbmcp.config import Settings
from sbmcp.services.store import NoteStore, NoteStoreClient

T = TypeVar("T")


def open_store(settings: Settings) -> NoteStoreClient:
    """Create a store client from settings."""
    return NoteStoreClient(settings.sb_api_base_url, settings.sb_auth_token)


def run_with_store(settings: Settings, func: Callable[[NoteStore], Awaitable[T]]) -> T:
    """Run an async function against a fresh store client, closing it afterwards."""

    async def runner() -> T:
        store = open_store(settings)
        try:
            return await func(store)
        finally:
            await store.close()

    return asyncio.run(runner())
