"""Publish Orchestrator: the Render -> Storage -> DNS state machine.

A publish attempt follows a single forward path with no retries::

    START -> RENDERING -> SYNCING_STORAGE -> CONFIGURING_DNS -> DONE
                       \\-> FAILED (from any state, terminal)

- A failed load, render or manifest generation stops the run before any
  storage or DNS mutation.
- A failed storage stage leaves the bucket serving its previous, internally
  consistent content (uploads always precede deletions).
- A failed DNS stage is reported even though storage succeeded: the site is
  hosted but not reachable under its name yet.

The build directory is a temporary directory scoped to one attempt and is
removed on every exit path. An optional observer (a live connection)
receives every renderer output line plus progress notices; observer failures
are logged and never affect the outcome.

Overlapping runs for the same site are serialized with a per-site lock,
allocated only after ownership has been checked.

Examples
--------
>>> orchestrator = PublishOrchestrator(store, RenderInvoker(), reconciler, dns)  # doctest: +SKIP
>>> result = await orchestrator.publish("alice", 1, observer=connection)  # doctest: +SKIP
>>> result.state
<PublishState.DONE: 'done'>
"""

from __future__ import annotations

import asyncio
import logging
import tempfile
import weakref
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

from sitios.config import BUILD_DIR_PREFIX, SEND_TIMEOUT
from sitios.exceptions import AppError, DNSError
from sitios.pipeline.dns import DNSProvisioner
from sitios.pipeline.render import RenderInvoker
from sitios.pipeline.storage import StorageReconciler
from sitios.realtime.protocol import notice
from sitios.store import SiteStore

logger = logging.getLogger(__name__)


class PublishState(str, Enum):
    """States of one publish attempt."""

    START = "start"
    RENDERING = "rendering"
    SYNCING_STORAGE = "syncing-storage"
    CONFIGURING_DNS = "configuring-dns"
    DONE = "done"
    FAILED = "failed"


class Observer(Protocol):
    """Push channel receiving progress; see ``sitios.realtime.Connection``."""

    async def send(self, text: str) -> bool: ...


@dataclass
class PublishResult:
    """Outcome of one publish attempt.

    Attributes
    ----------
    site_id : int
        Requested site.
    domain : str
        Site domain, empty when the site could not be loaded.
    state : PublishState
        ``DONE`` or ``FAILED`` once the attempt has finished; otherwise the
        stage in which it currently is.
    error : AppError | None
        The single structured error of a failed attempt.
    log : list[str]
        Renderer output accumulated during the attempt.
    stats : dict[str, int]
        Storage reconciliation counters.
    """

    site_id: int
    domain: str = ""
    state: PublishState = PublishState.START
    error: AppError | None = None
    log: list[str] = field(default_factory=list)
    stats: dict[str, int] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.state is PublishState.DONE

    def to_dict(self) -> dict[str, Any]:
        return {
            "site_id": self.site_id,
            "domain": self.domain,
            "state": self.state.value,
            "error": self.error.to_dict() if self.error is not None else None,
            "log": list(self.log),
            "stats": dict(self.stats),
        }


class PublishOrchestrator:
    r"""Sequence the publish stages for a site.

    Parameters
    ----------
    store : SiteStore
        Data layer; ``load_site`` enforces ownership.
    renderer : RenderInvoker
        Render stage.
    reconciler : StorageReconciler
        Storage stage.
    dns : DNSProvisioner
        DNS stage; also decides which domains are managed.
    """

    def __init__(
        self,
        store: SiteStore,
        renderer: RenderInvoker,
        reconciler: StorageReconciler,
        dns: DNSProvisioner,
    ) -> None:
        self.store = store
        self.renderer = renderer
        self.reconciler = reconciler
        self.dns = dns
        # Entries live only while a run holds or awaits the lock.
        self._locks: weakref.WeakValueDictionary[int, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, site_id: int) -> asyncio.Lock:
        lock = self._locks.get(site_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[site_id] = lock
        return lock

    @staticmethod
    def _enter(result: PublishResult, state: PublishState) -> None:
        logger.info(
            "Site %d publish: %s -> %s", result.site_id, result.state.value, state.value
        )
        result.state = state

    @staticmethod
    async def _notify(observer: Observer | None, text: str) -> None:
        if observer is None:
            return
        try:
            delivered = await asyncio.wait_for(observer.send(text), SEND_TIMEOUT)
        except Exception:
            logger.warning("Failed to push progress to observer", exc_info=True)
            return
        if not delivered:
            logger.debug("Observer did not accept frame %r", text[:80])

    async def publish(
        self, identity: str, site_id: int, observer: Observer | None = None
    ) -> PublishResult:
        r"""Run one publish attempt for a site owned by ``identity``.

        Parameters
        ----------
        identity : str
            Verified identity requesting the publish.
        site_id : int
            Site to publish.
        observer : Observer | None, optional
            Live channel for progress; absence never changes the outcome.

        Returns
        -------
        PublishResult
            Final state, structured error (if any) and accumulated log.
            Errors are reported in the result, never raised.
        """
        result = PublishResult(site_id=site_id)
        try:
            site = await self.store.load_site(identity, site_id)
            result.domain = site.domain
            async with self._lock_for(site_id):
                await self._run(identity, result, observer)
        except AppError as exc:
            self._fail(result, exc)
        except Exception as exc:
            logger.exception("Unexpected error publishing site %d", site_id)
            self._fail(result, AppError("UNEXPECTED_ERROR", str(exc)))
        if result.error is not None:
            await self._notify(observer, notice("error", result.error.message))
        return result

    def _fail(self, result: PublishResult, error: AppError) -> None:
        logger.error(
            "Site %d publish failed in %s: %s", result.site_id, result.state.value, error
        )
        result.error = error
        self._enter(result, PublishState.FAILED)

    async def _run(
        self, identity: str, result: PublishResult, observer: Observer | None
    ) -> None:
        # Reloaded under the lock so a queued run publishes the latest data.
        site = await self.store.load_site(identity, result.site_id)
        result.domain = site.domain

        with tempfile.TemporaryDirectory(prefix=BUILD_DIR_PREFIX) as build_dir:
            self._enter(result, PublishState.RENDERING)
            manifest, output_dir = self.renderer.prepare(site, Path(build_dir))
            async for line in self.renderer.stream(manifest, output_dir):
                result.log.append(line)
                await self._notify(observer, line)

            self._enter(result, PublishState.SYNCING_STORAGE)
            await self._notify(observer, notice("publishing", site.domain))
            await self.reconciler.ensure_public_endpoint(site.domain)
            stats = await self.reconciler.sync(site.domain, output_dir)
            result.stats = stats.to_dict()

        if self.dns.is_managed(site.domain):
            self._enter(result, PublishState.CONFIGURING_DNS)
            try:
                await self.dns.ensure_cname(self.dns.subdomain_of(site.domain))
            except DNSError as exc:
                raise DNSError(
                    f"{site.domain} is hosted but not reachable under its name: "
                    f"{exc.message}",
                    context={"domain": site.domain, **exc.context},
                    transient=exc.transient,
                ) from exc

        self._enter(result, PublishState.DONE)
        await self._notify(observer, notice("publish-success", site.domain))

    async def unpublish(self, identity: str, site_id: int) -> None:
        """Remove a site's DNS record and its bucket.

        Raises
        ------
        LoadError
            If the site cannot be loaded for ``identity``.
        DNSError, StorageSyncError
            If the teardown fails; both steps are idempotent and safe to rerun.
        """
        site = await self.store.load_site(identity, site_id)
        async with self._lock_for(site_id):
            if self.dns.is_managed(site.domain):
                await self.dns.remove_cname(site.domain)
            await self.reconciler.remove_all(site.domain)
        logger.info("Unpublished site %d (%s)", site_id, site.domain)
