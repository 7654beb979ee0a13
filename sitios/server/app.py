"""aiohttp application wiring.

Builds the service's collaborators explicitly from a ``ServiceConfig``
(no process-wide client singletons) and exposes two entrypoints:

- ``GET /ws``: the realtime websocket (origin must match the host);
- ``POST /sites/{site_id}/publish``: stateless publish trigger. The caller's
  live connection, if any, is looked up in the session registry and receives
  the build progress.

Tests build ``Services`` from fakes and call ``create_app`` directly.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass

import aiohttp
from aiohttp import web

from sitios.exceptions import AppError, LoadError
from sitios.pipeline.dns import CloudflareClient, DNSBackend, DNSProvisioner
from sitios.pipeline.publish import PublishOrchestrator
from sitios.pipeline.render import RenderInvoker
from sitios.pipeline.storage import S3StorageBackend, StorageBackend, StorageReconciler
from sitios.realtime import SessionRegistry
from sitios.realtime.auth import IdentityVerifier, StaticTokenVerifier
from sitios.realtime.handler import CommandHandler, parse_id
from sitios.store import MemorySiteStore, SiteStore

from .config import ServiceConfig

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Explicitly constructed collaborators shared by the request handlers."""

    store: SiteStore
    registry: SessionRegistry
    verifier: IdentityVerifier
    orchestrator: PublishOrchestrator
    handler: CommandHandler


SERVICES_KEY = web.AppKey("services", Services)


def build_services(
    config: ServiceConfig,
    session: aiohttp.ClientSession,
    *,
    store: SiteStore | None = None,
    storage_backend: StorageBackend | None = None,
    dns_backend: DNSBackend | None = None,
) -> Services:
    """Construct every collaborator from ``config``.

    Parameters
    ----------
    config : ServiceConfig
        Validated runtime configuration.
    session : aiohttp.ClientSession
        Session for the Cloudflare client; owned by the caller.
    store, storage_backend, dns_backend : optional
        Overrides for the data layer and the external backends.
    """
    store = store if store is not None else MemorySiteStore()
    if storage_backend is None:
        storage_backend = S3StorageBackend(
            region=config.aws_region,
            access_key=config.aws_key_id,
            secret_key=config.aws_secret_key,
        )
    if dns_backend is None:
        dns_backend = CloudflareClient(config, session)
    orchestrator = PublishOrchestrator(
        store,
        RenderInvoker(renderer_bin=config.renderer_bin, skeleton_dir=config.skeleton_dir),
        StorageReconciler(storage_backend),
        DNSProvisioner(
            dns_backend,
            base_domain=config.base_domain,
            storage_endpoint=config.storage_endpoint,
        ),
    )
    registry = SessionRegistry()
    verifier = StaticTokenVerifier(config.tokens)
    handler = CommandHandler(store, orchestrator, registry, verifier)
    return Services(store, registry, verifier, orchestrator, handler)


def origin_allowed(request: web.Request) -> bool:
    """Return True when the Origin header names this very host."""
    origin = request.headers.get("Origin", "")
    return origin in (f"http://{request.host}", f"https://{request.host}")


async def websocket_handler(request: web.Request) -> web.StreamResponse:
    if not origin_allowed(request):
        raise web.HTTPForbidden(text="Origin not allowed")
    ws = web.WebSocketResponse()
    if not ws.can_prepare(request).ok:
        raise web.HTTPBadRequest(text="Could not open websocket connection")
    await ws.prepare(request)
    await request.app[SERVICES_KEY].handler.serve(ws)
    return ws


def bearer_token(request: web.Request) -> str:
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    return token.strip() if scheme.lower() == "bearer" else ""


async def publish_handler(request: web.Request) -> web.Response:
    """Publish a site on behalf of the bearer, streaming to its live session."""
    services = request.app[SERVICES_KEY]
    try:
        identity = await services.verifier.verify(bearer_token(request))
    except AppError as exc:
        return web.json_response({"error": exc.to_dict()}, status=401)
    try:
        site_id = parse_id(request.match_info["site_id"])
    except AppError as exc:
        return web.json_response({"error": exc.to_dict()}, status=400)

    observer = services.registry.get(identity)
    logger.info(
        "Publish of site %d requested by %s (live session: %s)",
        site_id,
        identity,
        observer is not None,
    )
    result = await services.orchestrator.publish(identity, site_id, observer=observer)
    if result.ok:
        status = 200
    elif isinstance(result.error, LoadError):
        status = 404
    else:
        status = 502
    return web.json_response(result.to_dict(), status=status)


def create_app(services: Services) -> web.Application:
    """Return an application serving ``services``."""
    app = web.Application()
    app[SERVICES_KEY] = services
    _add_routes(app)
    return app


def _add_routes(app: web.Application) -> None:
    app.router.add_get("/ws", websocket_handler)
    app.router.add_post("/sites/{site_id}/publish", publish_handler)


def build_app(config: ServiceConfig) -> web.Application:
    """Return the production application; clients live for the app's lifetime."""
    app = web.Application()

    async def _services_ctx(app: web.Application) -> AsyncIterator[None]:
        async with aiohttp.ClientSession() as session:
            app[SERVICES_KEY] = build_services(config, session)
            yield

    app.cleanup_ctx.append(_services_ctx)
    _add_routes(app)
    return app
