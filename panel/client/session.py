"""
Async HTTP client for the permission snapshot endpoint and the per-client session
that holds the caller's token and snapshot.

One AuthSession belongs to one top-level client tree; nothing here is global.
"""

from typing import Callable, List, Optional
import asyncio
import logging

import httpx

from panel.client.snapshot import PermissionSnapshot
from panel.config.settings import settings

logger = logging.getLogger(__name__)

SNAPSHOT_PATH = "/api/v1/auth/permissions"

SessionListener = Callable[["AuthSession"], None]


class PermissionClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.panel_base_url,
            timeout=timeout if timeout is not None else settings.http_timeout,
            transport=transport,
        )

    async def fetch_snapshot(self, token: str) -> PermissionSnapshot:
        """Raises httpx.HTTPError on transport failures and non-2xx responses"""
        response = await self._client.get(SNAPSHOT_PATH, headers={"Authorization": f"Bearer {token}"})
        response.raise_for_status()
        return PermissionSnapshot.model_validate(response.json())

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "PermissionClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


class AuthSession:
    """
    Token and snapshot of one signed-in caller.

    Every sign_in, sign_out and refresh starts a new generation. A fetch only
    commits its result while its generation is still current, so a slow
    response can never resurrect the snapshot of a signed-out or replaced token.
    """

    def __init__(self, client: PermissionClient):
        self.client = client
        self.token: Optional[str] = None
        self.snapshot = PermissionSnapshot.empty()
        self.loading = False
        self.loaded = False
        self.error: Optional[Exception] = None
        self._listeners: List[SessionListener] = []
        self._generation = 0
        self._pending: Optional[asyncio.Task] = None

    @property
    def authenticated(self) -> bool:
        return self.token is not None

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a change listener; returns the function that detaches it"""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    def _settle(self, snapshot: PermissionSnapshot, error: Optional[Exception]) -> None:
        self.snapshot = snapshot
        self.error = error
        self.loading = False
        self.loaded = True
        self._pending = None
        self._notify()

    async def sign_in(self, token: str) -> PermissionSnapshot:
        self.token = token
        return await self.refresh()

    async def sign_out(self) -> None:
        self.token = None
        self._generation += 1
        self._settle(PermissionSnapshot.empty(), None)

    async def ensure_loaded(self) -> PermissionSnapshot:
        """Join the fetch in flight, start one if nothing was loaded yet, else return the snapshot"""
        if self._pending is not None:
            return await asyncio.shield(self._pending)
        if not self.loaded:
            return await self.refresh()
        return self.snapshot

    async def refresh(self) -> PermissionSnapshot:
        """Refetch the snapshot. Any failure leaves the empty snapshot in place."""
        self._generation += 1
        if self.token is None:
            self._settle(PermissionSnapshot.empty(), None)
            return self.snapshot

        self.loading = True
        self._pending = asyncio.ensure_future(self._load(self._generation, self.token))
        self._notify()
        return await asyncio.shield(self._pending)

    async def _load(self, generation: int, token: str) -> PermissionSnapshot:
        try:
            snapshot = await self.client.fetch_snapshot(token)
            error = None
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Permission snapshot fetch failed: {e}")
            snapshot = PermissionSnapshot.empty()
            error = e

        if generation != self._generation:
            logger.debug("Discarding permission snapshot of a superseded session generation")
            return self.snapshot
        self._settle(snapshot, error)
        return snapshot
