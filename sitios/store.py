"""Data-layer contract for site and source records.

The publish pipeline only needs ``load_site``; the realtime command handler
uses the rest of the CRUD surface. Every operation takes the caller's
identity and enforces ownership: a site owned by someone else is reported
exactly like a missing one (``SiteNotFound``).

``MemorySiteStore`` keeps records in process memory. It backs the
development server and the test suite; a relational implementation only has
to honour the same protocol.
"""

from __future__ import annotations

import asyncio
import copy
import itertools
import logging
from typing import Any, Mapping, Protocol

from sitios.exceptions import DataValidationError, LoadError, SiteNotFound
from sitios.models import Site, Source

logger = logging.getLogger(__name__)


class SiteStore(Protocol):
    """Async persistence contract used by the orchestrator and the handler."""

    async def list_sites(self, identity: str) -> list[Site]: ...

    async def create_site(self, identity: str, domain: str) -> int: ...

    async def delete_site(self, identity: str, site_id: int) -> None: ...

    async def load_site(self, identity: str, site_id: int) -> Site: ...

    async def update_site_data(
        self, identity: str, site_id: int, data: Mapping[str, Any]
    ) -> Site: ...

    async def add_source(self, identity: str, site_id: int) -> Site: ...

    async def update_source(
        self, identity: str, source: Source, *, keep_data: bool = False
    ) -> Site: ...

    async def remove_source(self, identity: str, source_id: int) -> Site: ...


class MemorySiteStore:
    """In-process ``SiteStore`` implementation.

    Records are copied on the way in and out so callers never share mutable
    state with the store. Domains are unique across all owners.

    Examples
    --------
    >>> import asyncio
    >>> store = MemorySiteStore()
    >>> site_id = asyncio.run(store.create_site("alice", "blog.sitios.xyz"))
    >>> asyncio.run(store.load_site("alice", site_id)).domain
    'blog.sitios.xyz'
    """

    def __init__(self) -> None:
        self._sites: dict[int, Site] = {}
        self._site_ids = itertools.count(1)
        self._source_ids = itertools.count(1)
        self._lock = asyncio.Lock()

    def _owned(self, identity: str, site_id: int) -> Site:
        site = self._sites.get(site_id)
        if site is None or site.owner != identity:
            raise SiteNotFound(
                f"site {site_id} not found", context={"site_id": site_id}
            )
        return site

    def _site_of_source(self, identity: str, source_id: int) -> Site:
        for site in self._sites.values():
            if site.owner != identity:
                continue
            if any(source.id == source_id for source in site.sources):
                return site
        raise LoadError(
            f"source {source_id} not found", context={"source_id": source_id}
        )

    async def list_sites(self, identity: str) -> list[Site]:
        async with self._lock:
            return [
                copy.deepcopy(site)
                for site in sorted(self._sites.values(), key=lambda s: s.id)
                if site.owner == identity
            ]

    async def create_site(self, identity: str, domain: str) -> int:
        domain = domain.strip().lower()
        if not domain or " " in domain:
            raise DataValidationError(f"invalid domain: {domain!r}")
        async with self._lock:
            if any(site.domain == domain for site in self._sites.values()):
                raise DataValidationError(
                    f"domain {domain} is already taken", context={"domain": domain}
                )
            site_id = next(self._site_ids)
            self._sites[site_id] = Site(id=site_id, owner=identity, domain=domain)
            logger.info("Created site %d (%s) for %s", site_id, domain, identity)
            return site_id

    async def delete_site(self, identity: str, site_id: int) -> None:
        async with self._lock:
            self._owned(identity, site_id)
            del self._sites[site_id]

    async def load_site(self, identity: str, site_id: int) -> Site:
        async with self._lock:
            return copy.deepcopy(self._owned(identity, site_id))

    async def update_site_data(
        self, identity: str, site_id: int, data: Mapping[str, Any]
    ) -> Site:
        async with self._lock:
            site = self._owned(identity, site_id)
            site.data = copy.deepcopy(dict(data))
            return copy.deepcopy(site)

    async def add_source(self, identity: str, site_id: int) -> Site:
        async with self._lock:
            site = self._owned(identity, site_id)
            site.sources.append(Source(id=next(self._source_ids), site_id=site_id))
            return copy.deepcopy(site)

    async def update_source(
        self, identity: str, source: Source, *, keep_data: bool = False
    ) -> Site:
        """Replace a source's fields; ``keep_data`` retains its stored data."""
        async with self._lock:
            site = self._site_of_source(identity, source.id)
            site.sources = [
                copy.deepcopy(
                    Source(
                        id=source.id,
                        site_id=site.id,
                        provider=source.provider,
                        root=source.root,
                        reference=source.reference,
                        data=existing.data if keep_data else source.data,
                    )
                )
                if existing.id == source.id
                else existing
                for existing in site.sources
            ]
            return copy.deepcopy(site)

    async def remove_source(self, identity: str, source_id: int) -> Site:
        async with self._lock:
            site = self._site_of_source(identity, source_id)
            site.sources = [s for s in site.sources if s.id != source_id]
            return copy.deepcopy(site)
