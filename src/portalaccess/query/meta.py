"""Retrieval of per-resource filter metadata (``GET {resource}/meta``)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from ..exceptions import TransportError
from ..http import raise_for_status, send
from .filters import FilterMeta

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _CachedMeta:
    meta: FilterMeta
    etag: Optional[str]


class FilterMetaClient:
    """Fetches filter metadata, revalidating with ``If-None-Match``.

    Metadata rarely changes, so entries are kept until :meth:`invalidate`
    and revalidated on every fetch.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client
        self._cache: dict[str, _CachedMeta] = {}

    async def fetch_meta(self, resource: str) -> FilterMeta:
        resource = resource.rstrip("/")
        cached = self._cache.get(resource)
        headers = {"If-None-Match": cached.etag} if cached and cached.etag else {}

        request = self._client.build_request("GET", f"{resource}/meta", headers=headers)
        response = await send(self._client, request)
        raise_for_status(response, allowed=(304,))

        if response.status_code == 304:
            if cached is None:
                raise TransportError(f"GET {resource}/meta answered 304 without cached metadata", status_code=304)
            return cached.meta

        try:
            raw = response.json()
        except ValueError as e:
            raise TransportError(
                f"GET {resource}/meta returned a non-JSON body", status_code=response.status_code
            ) from e

        meta = FilterMeta.normalize(raw)
        self._cache[resource] = _CachedMeta(meta=meta, etag=response.headers.get("ETag"))
        logger.debug("Loaded %d filter fields for %s", len(meta.fields), resource)
        return meta

    def invalidate(self, resource: str | None = None) -> None:
        if resource is None:
            self._cache.clear()
        else:
            self._cache.pop(resource.rstrip("/"), None)


__all__ = ["FilterMetaClient"]
