"""Paginated, sorted, filtered fetches against ``POST {resource}/filter``.

Filters travel in the body (``{"criteria": [...]}``); page, size, sort
and extra parameters travel in the query string.

Results are cached per request key (every parameter, including the
cache-bust token). Each issued request gets a generation number per key;
a response is cached only if no newer request for its key was issued and
no invalidation happened while it was in flight, so out-of-order
responses cannot roll a page back.
"""

from __future__ import annotations

import asyncio
import json
import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping, Optional, Union

import httpx

from ..config import PortalAccessConfig
from ..exceptions import TransportError
from ..http import raise_for_status, send
from ..logging import get_access_logger
from ..permissions.scopes import ScopeRestriction, merge_criteria
from .filters import FilterCriterion, FilterRequest, FilterRow, build_filter_request

logger = logging.getLogger(__name__)

DEFAULT_STALE_AFTER = 30.0
DEFAULT_RETAIN_FOR = 300.0
DEFAULT_PAGE_SIZE = 20

FilterInput = Union[FilterRequest, Iterable[Union[FilterCriterion, FilterRow, Mapping[str, Any]]], None]


@dataclass(frozen=True)
class SortOrder:
    """Sort by one field, serialized as ``field,ASC`` / ``field,DESC``."""

    field: str
    descending: bool = False

    def to_param(self) -> str:
        return f"{self.field},{'DESC' if self.descending else 'ASC'}"

    @classmethod
    def parse(cls, value: "SortOrder | str | tuple[str, bool] | None") -> "SortOrder | None":
        if value is None or isinstance(value, SortOrder):
            return value
        if isinstance(value, tuple):
            return cls(field=value[0], descending=bool(value[1]))
        name, _, direction = value.partition(",")
        return cls(field=name.strip(), descending=direction.strip().upper() == "DESC")


@dataclass(frozen=True)
class QueryPage:
    """One page of records. Record contents belong to the record store."""

    rows: tuple[Any, ...] = ()
    total_elements: int = 0
    total_pages: int = 0

    @property
    def total(self) -> int:
        return self.total_elements

    @classmethod
    def from_envelope(cls, data: Any, page_size: int) -> "QueryPage":
        if not isinstance(data, Mapping):
            raise TransportError("Filter response is not a page envelope")
        total = int(data.get("totalElements") or 0)
        pages = data.get("totalPages")
        if pages is None:
            pages = math.ceil(total / page_size) if page_size else 0
        return cls(rows=tuple(data.get("content") or ()), total_elements=total, total_pages=int(pages))


def _normalize_filters(filters: FilterInput) -> tuple[FilterCriterion, ...]:
    if filters is None:
        return ()
    if isinstance(filters, FilterRequest):
        return tuple(filters.criteria)
    criteria = []
    pending_rows = []
    for item in filters:
        if isinstance(item, FilterCriterion):
            criteria.append(item)
        else:
            pending_rows.append(item)
    if pending_rows:
        criteria.extend(build_filter_request(pending_rows).criteria)
    return tuple(criteria)


@dataclass(frozen=True)
class QueryRequest:
    """Everything that identifies one paginated fetch."""

    resource: str
    page: int
    page_size: int
    sort: Optional[SortOrder]
    criteria: tuple[FilterCriterion, ...]
    extra_params: tuple[tuple[str, str], ...]
    cache_bust: Optional[str]

    @classmethod
    def build(
        cls,
        resource: str,
        page: int,
        page_size: int,
        sort: SortOrder | str | None = None,
        filters: FilterInput = None,
        extra_params: Mapping[str, Any] | None = None,
        cache_bust: Any = None,
    ) -> "QueryRequest":
        extras = tuple(
            sorted((k, str(v)) for k, v in (extra_params or {}).items() if v is not None and v != "")
        )
        return cls(
            resource=resource.rstrip("/"),
            page=page,
            page_size=page_size,
            sort=SortOrder.parse(sort),
            criteria=_normalize_filters(filters),
            extra_params=extras,
            cache_bust=None if cache_bust is None else str(cache_bust),
        )

    @property
    def url(self) -> str:
        return f"{self.resource}/filter"

    def cache_key(self) -> str:
        return json.dumps(
            {
                "resource": self.resource,
                "page": self.page,
                "size": self.page_size,
                "sort": self.sort.to_param() if self.sort else None,
                "criteria": [c.to_wire() for c in self.criteria],
                "extra": self.extra_params,
                "bust": self.cache_bust,
            },
            sort_keys=True,
            default=str,
        )

    def params(self) -> list[tuple[str, str]]:
        params = [("page", str(self.page)), ("size", str(self.page_size))]
        if self.sort:
            params.append(("sort", self.sort.to_param()))
        params.extend(self.extra_params)
        if self.cache_bust is not None:
            params.append(("_k", self.cache_bust))
        return params

    def body(self) -> dict[str, Any]:
        return {"criteria": [c.to_wire() for c in self.criteria]}


@dataclass(frozen=True)
class _CachedPage:
    page: QueryPage
    fetched_at: float


class QueryExecutor:
    """Issues filter queries and caches their pages.

    Example::

        executor = QueryExecutor.from_config(client, config)
        page = await executor.query(
            "/api/appointments",
            page=0,
            page_size=25,
            sort=SortOrder("createdAt", descending=True),
            filters=merge_criteria(fixed, restriction, builder.build().criteria),
        )

    Errors propagate; a failed query never turns into an empty page.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        stale_after: float = DEFAULT_STALE_AFTER,
        retain_for: float = DEFAULT_RETAIN_FOR,
        default_page_size: int = DEFAULT_PAGE_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._stale_after = stale_after
        self._retain_for = max(retain_for, stale_after)
        self.default_page_size = default_page_size
        self._clock = clock
        self._pages: dict[str, _CachedPage] = {}
        # Latest generation issued per key, and requests still awaiting a response
        self._issued: dict[str, int] = {}
        self._inflight: dict[str, int] = {}
        self._epoch = 0

    @classmethod
    def from_config(cls, client: httpx.AsyncClient, config: PortalAccessConfig) -> "QueryExecutor":
        return cls(
            client,
            stale_after=config.query_stale_seconds,
            retain_for=config.query_retain_seconds,
            default_page_size=config.default_page_size,
        )

    def _request(self, resource: str, page: int, page_size: int | None, **kwargs: Any) -> QueryRequest:
        return QueryRequest.build(resource, page, page_size or self.default_page_size, **kwargs)

    async def query(
        self,
        resource: str,
        page: int = 0,
        page_size: int | None = None,
        sort: SortOrder | str | None = None,
        filters: FilterInput = None,
        extra_params: Mapping[str, Any] | None = None,
        cache_bust: Any = None,
    ) -> QueryPage:
        """Fetch one page, serving a fresh cached copy when available.

        Raises:
            TransportError: The request failed or the response is malformed.
        """
        request = self._request(
            resource, page, page_size, sort=sort, filters=filters, extra_params=extra_params, cache_bust=cache_bust
        )
        key = request.cache_key()

        cached = self._pages.get(key)
        if cached is not None and self._clock() - cached.fetched_at < self._stale_after:
            return cached.page

        generation = self._issued.get(key, 0) + 1
        self._issued[key] = generation

        epoch = self._epoch
        self._inflight[key] = self._inflight.get(key, 0) + 1
        try:
            result = await self._send(request)
            self._store(key, generation, epoch, result)
        finally:
            self._release(key)
        return result

    def cached_page(
        self,
        resource: str,
        page: int = 0,
        page_size: int | None = None,
        sort: SortOrder | str | None = None,
        filters: FilterInput = None,
        extra_params: Mapping[str, Any] | None = None,
        cache_bust: Any = None,
    ) -> QueryPage | None:
        """Cached page for these parameters, stale or not, if still retained."""
        request = self._request(
            resource, page, page_size, sort=sort, filters=filters, extra_params=extra_params, cache_bust=cache_bust
        )
        cached = self._pages.get(request.cache_key())
        if cached is None or self._clock() - cached.fetched_at >= self._retain_for:
            return None
        return cached.page

    def invalidate(self, resource: str | None = None) -> None:
        """Drop cached pages, for one resource or all of them.

        Responses to requests already in flight are not cached afterwards.
        """
        self._epoch += 1
        if resource is None:
            doomed = list(self._pages)
        else:
            resource = resource.rstrip("/")
            doomed = [k for k in self._pages if json.loads(k)["resource"] == resource]
        for key in doomed:
            self._drop(key)

    async def _send(self, request: QueryRequest) -> QueryPage:
        http_request = self._client.build_request(
            "POST",
            request.url,
            params=request.params(),
            json=request.body(),
        )
        response = await send(self._client, http_request)
        raise_for_status(response)
        try:
            data = response.json()
        except ValueError as e:
            raise TransportError(
                f"POST {request.url} returned a non-JSON body", status_code=response.status_code
            ) from e
        return QueryPage.from_envelope(data, request.page_size)

    def _store(self, key: str, generation: int, epoch: int, page: QueryPage) -> None:
        if epoch != self._epoch:
            logger.debug("Cache invalidated while querying; not caching generation %d", generation)
            return
        latest = self._issued.get(key, 0)
        if generation < latest:
            logger.debug("Discarding response of generation %d; generation %d was issued", generation, latest)
            return
        now = self._clock()
        self._pages[key] = _CachedPage(page=page, fetched_at=now)
        self._evict(now)

    def _release(self, key: str) -> None:
        remaining = self._inflight.get(key, 0) - 1
        if remaining > 0:
            self._inflight[key] = remaining
            return
        self._inflight.pop(key, None)
        if key not in self._pages:
            self._issued.pop(key, None)

    def _drop(self, key: str) -> None:
        del self._pages[key]
        if key not in self._inflight:
            self._issued.pop(key, None)

    def _evict(self, now: float) -> None:
        expired = [k for k, v in self._pages.items() if now - v.fetched_at >= self._retain_for]
        for key in expired:
            self._drop(key)


class PagedQuery:
    """State of one paginated view.

    Keeps the last accepted page visible while the next one loads, applies
    only the result of the most recent :meth:`load`, and cancels a load that
    is superseded. Access restriction and fixed filters are merged ahead of
    user filters on every load.

    Example::

        view = PagedQuery(executor, "/api/appointments", restriction=restriction)
        await view.load(page=0)
        task = view.load(page=1)      # view.page still shows page 0
        await task
    """

    def __init__(
        self,
        executor: QueryExecutor,
        resource: str,
        *,
        page_size: int | None = None,
        sort: SortOrder | str | None = None,
        fixed: Iterable[FilterCriterion] = (),
        restriction: ScopeRestriction | None = None,
        extra_params: Mapping[str, Any] | None = None,
    ) -> None:
        self.executor = executor
        self.resource = resource
        self.page_size = page_size or executor.default_page_size
        self.sort = SortOrder.parse(sort)
        self.fixed = tuple(fixed)
        self.restriction = restriction
        self.extra_params = dict(extra_params or {})
        self.page_index = 0
        self.filters: tuple[FilterCriterion, ...] = ()
        self.page: QueryPage | None = None
        self.error: Exception | None = None
        self._refresh_token = 0
        self._generation = 0
        self._task: asyncio.Task | None = None
        self._log = get_access_logger(__name__, resource=resource)

    @property
    def rows(self) -> tuple[Any, ...]:
        return self.page.rows if self.page else ()

    @property
    def total(self) -> int:
        return self.page.total_elements if self.page else 0

    @property
    def is_fetching(self) -> bool:
        return self._task is not None and not self._task.done()

    def load(
        self,
        *,
        page: int | None = None,
        page_size: int | None = None,
        sort: SortOrder | str | None = ...,  # type: ignore[assignment]
        filters: FilterInput = ...,  # type: ignore[assignment]
        extra_params: Mapping[str, Any] | None = None,
    ) -> asyncio.Task:
        """Start loading with updated parameters; returns the load task.

        Raises:
            AccessDeniedError: The restriction is DenyAll; nothing is sent.
        """
        if page is not None:
            self.page_index = page
        if page_size is not None:
            self.page_size = page_size
        if sort is not ...:
            self.sort = SortOrder.parse(sort)
        if filters is not ...:
            self.filters = _normalize_filters(filters)
        if extra_params is not None:
            self.extra_params = dict(extra_params)

        criteria = merge_criteria(self.fixed, self.restriction, self.filters)

        self._generation += 1
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = asyncio.ensure_future(self._run(self._generation, criteria))
        return self._task

    def refresh(self) -> asyncio.Task:
        """Reload the current page bypassing cached results (e.g. after a mutation)."""
        self._refresh_token += 1
        return self.load()

    async def _run(self, generation: int, criteria: list[FilterCriterion]) -> QueryPage:
        try:
            result = await self.executor.query(
                self.resource,
                page=self.page_index,
                page_size=self.page_size,
                sort=self.sort,
                filters=criteria,
                extra_params=self.extra_params,
                cache_bust=self._refresh_token or None,
            )
        except Exception as e:
            if generation == self._generation:
                self.error = e
            raise

        if generation != self._generation:
            self._log.debug("Discarding superseded page %d (generation %d)", self.page_index, generation)
            return result
        self.page = result
        self.error = None
        return result

    def close(self) -> None:
        """Stop caring about the in-flight load, if any."""
        self._generation += 1
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None


__all__ = [
    "PagedQuery",
    "QueryExecutor",
    "QueryPage",
    "QueryRequest",
    "SortOrder",
]
