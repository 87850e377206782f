"""Cached, conditionally revalidated retrieval of the caller's grant tree.

``GET /auth/me/permissions?force={bool}`` answers ``200`` with the tree and
an ``ETag``, or ``304`` when the ``If-None-Match`` token still matches.

Lifetime of a cached tree (measured from its last fetch or revalidation):

- younger than ``stale_after``: served without touching the network
- younger than ``retain_for``: served as-is while a background refresh runs
- older: discarded; the next fetch waits for the network

Concurrent fetches share one in-flight request. The cached tree and its
entity tag live in one immutable snapshot that is swapped in a single
assignment, so readers never see a tree paired with another tree's tag.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

import httpx

from ..config import PortalAccessConfig
from ..exceptions import GrantTreeError, GrantTreeUnavailableError
from ..http import raise_for_status, send
from .models import GrantTree

logger = logging.getLogger(__name__)

DEFAULT_PERMISSIONS_PATH = "/auth/me/permissions"
DEFAULT_STALE_AFTER = 300.0  # 5 minutes
DEFAULT_RETAIN_FOR = 600.0  # 10 minutes


@dataclass(frozen=True)
class GrantSnapshot:
    """A grant tree together with the entity tag it was served with."""

    tree: GrantTree
    etag: Optional[str]
    fetched_at: float


class GrantTreeCache:
    """Process-local cache of one caller's grant tree.

    Example::

        async with create_client(config) as client:
            cache = GrantTreeCache.from_config(client, config)
            tree = await cache.fetch()
            resolver = GrantResolver(tree)

    Transport failures propagate; no fallback tree is ever substituted.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        path: str = DEFAULT_PERMISSIONS_PATH,
        stale_after: float = DEFAULT_STALE_AFTER,
        retain_for: float = DEFAULT_RETAIN_FOR,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._path = path
        self._stale_after = stale_after
        self._retain_for = max(retain_for, stale_after)
        self._clock = clock
        self._snapshot: GrantSnapshot | None = None
        self._inflight: dict[bool, asyncio.Task] = {}
        self._epoch = 0
        # Fetches are numbered; a result never replaces one from a later fetch
        self._issued_seq = 0
        self._stored_seq = 0

    @classmethod
    def from_config(cls, client: httpx.AsyncClient, config: PortalAccessConfig) -> "GrantTreeCache":
        return cls(
            client,
            path=config.permissions_path,
            stale_after=config.grant_stale_seconds,
            retain_for=config.grant_retain_seconds,
        )

    @property
    def snapshot(self) -> GrantSnapshot | None:
        return self._snapshot

    @property
    def tree(self) -> GrantTree | None:
        snapshot = self._snapshot
        return snapshot.tree if snapshot else None

    @property
    def etag(self) -> str | None:
        snapshot = self._snapshot
        return snapshot.etag if snapshot else None

    def age(self) -> float | None:
        snapshot = self._snapshot
        return None if snapshot is None else self._clock() - snapshot.fetched_at

    def is_stale(self) -> bool:
        age = self.age()
        return age is None or age >= self._stale_after

    async def fetch(self, force: bool = False) -> GrantTree:
        """Return the caller's grant tree.

        Args:
            force: Bypass the cache and the entity tag; always transfers
                the full tree.

        Raises:
            TransportError: The request failed.
            GrantTreeError: The portal returned an invalid tree.
            GrantTreeUnavailableError: The portal kept answering "not
                modified" although no tree is held locally.
        """
        snapshot = self._snapshot
        if not force and snapshot is not None:
            age = self._clock() - snapshot.fetched_at
            if age < self._stale_after:
                return snapshot.tree
            if age < self._retain_for:
                self._refresh_in_background()
                return snapshot.tree
            logger.debug("Grant tree expired after %.0fs; discarding", age)
            if self._snapshot is snapshot:
                self._snapshot = None

        return await asyncio.shield(self._shared_fetch(force))

    def invalidate(self) -> None:
        """Drop the cached tree and tag (e.g. on logout).

        Fetches already in flight still complete for their callers, but
        their result is not cached.
        """
        self._epoch += 1
        self._snapshot = None
        logger.info("Grant tree cache invalidated")

    async def refresh(self) -> GrantTree:
        """Forced refetch (after a role change, for instance)."""
        return await self.fetch(force=True)

    # ── Internals ───────────────────────────────────────

    def _shared_fetch(self, force: bool) -> asyncio.Task:
        # A forced fetch in flight also satisfies a plain one
        task = self._inflight.get(True) if force else (self._inflight.get(True) or self._inflight.get(False))
        if task is None:
            task = asyncio.ensure_future(self._fetch_and_store(force))
            self._inflight[force] = task
            task.add_done_callback(lambda t, key=force: self._inflight_done(key, t))
        return task

    def _inflight_done(self, key: bool, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    def _refresh_in_background(self) -> None:
        if self._inflight:
            return
        logger.debug("Grant tree is stale; revalidating in background")
        task = self._shared_fetch(False)
        task.add_done_callback(_log_background_failure)

    async def _get(self, force: bool, etag: str | None) -> httpx.Response:
        headers = {"If-None-Match": etag} if etag else {}
        request = self._client.build_request(
            "GET",
            self._path,
            params={"force": "true" if force else "false"},
            headers=headers,
        )
        response = await send(self._client, request)
        raise_for_status(response, allowed=(304,))
        return response

    async def _fetch_and_store(self, force: bool) -> GrantTree:
        epoch = self._epoch
        self._issued_seq += 1
        seq = self._issued_seq
        previous = self._snapshot
        etag = previous.etag if (previous is not None and not force) else None

        response = await self._get(force, etag)

        if response.status_code == 304:
            if etag is not None:
                revalidated = GrantSnapshot(tree=previous.tree, etag=previous.etag, fetched_at=self._clock())
                self._store(revalidated, epoch, seq)
                logger.debug("Grant tree not modified; keeping cached copy")
                return previous.tree
            if force:
                raise GrantTreeUnavailableError("Portal answered 304 to a forced grant tree fetch")
            logger.warning("Portal answered 304 but no grant tree is cached; refetching with force")
            response = await self._get(True, None)
            if response.status_code == 304:
                raise GrantTreeUnavailableError("Portal answered 304 to a forced grant tree fetch")

        try:
            payload = response.json()
        except ValueError as e:
            raise GrantTreeError(f"Grant tree response is not JSON: {e}") from e

        tree = GrantTree.from_payload(payload)
        self._store(GrantSnapshot(tree=tree, etag=response.headers.get("ETag"), fetched_at=self._clock()), epoch, seq)
        logger.debug("Fetched grant tree with %d systems", len(tree.systems))
        return tree

    def _store(self, snapshot: GrantSnapshot, epoch: int, seq: int) -> None:
        if epoch != self._epoch:
            logger.debug("Cache invalidated while fetching; not storing grant tree")
            return
        if seq < self._stored_seq:
            logger.debug("Grant tree fetch %d superseded by fetch %d; not storing", seq, self._stored_seq)
            return
        self._snapshot = snapshot
        self._stored_seq = seq


def _log_background_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.warning("Background grant tree refresh failed: %s", error)


__all__ = [
    "DEFAULT_PERMISSIONS_PATH",
    "GrantSnapshot",
    "GrantTreeCache",
]
