"""Websocket command handler.

Reads ``<verb> <argument>`` frames from one websocket and executes them
sequentially: a message is fully processed before the next one is read.
``login`` must succeed before any other verb is accepted; earlier messages
are ignored with a warning. A one-shot timer sends ``not-logged`` if no
successful login arrives within ``NOT_LOGGED_TIMEOUT`` seconds.

Command failures are reported to the client as ``notice error=<message>``
and never end the read loop.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable

from aiohttp import WSMsgType, web

from sitios.config import NOT_LOGGED_MESSAGE, NOT_LOGGED_TIMEOUT
from sitios.exceptions import AppError, DataValidationError
from sitios.models import Source
from sitios.pipeline.publish import PublishOrchestrator
from sitios.store import SiteStore

from .auth import IdentityVerifier
from .connection import Connection
from .protocol import notice, parse_message, site_frame, sites_frame
from .sessions import SessionRegistry

logger = logging.getLogger(__name__)

Command = Callable[[Connection, str], Awaitable[None]]


def parse_id(raw: str) -> int:
    """Parse a numeric id argument.

    Raises
    ------
    DataValidationError
        If ``raw`` is not an integer.
    """
    try:
        return int(raw.strip())
    except ValueError:
        raise DataValidationError(
            f"couldn't convert '{raw}' into a numeric id."
        ) from None


def parse_id_and_json(raw: str) -> tuple[int, dict]:
    """Parse an ``<id> <json object>`` argument."""
    head, _, body = raw.strip().partition(" ")
    item_id = parse_id(head)
    try:
        payload = json.loads(body)
    except json.JSONDecodeError as exc:
        raise DataValidationError(f"invalid JSON payload: {exc}") from exc
    if not isinstance(payload, dict):
        raise DataValidationError("payload must be a JSON object")
    return item_id, payload


class CommandHandler:
    r"""Serve the realtime protocol on websockets.

    Parameters
    ----------
    store : SiteStore
        Data layer for site and source commands.
    orchestrator : PublishOrchestrator
        Publish pipeline for ``publish`` and ``delete-site``.
    registry : SessionRegistry
        Receives the connection of every successful login.
    verifier : IdentityVerifier
        Turns login tokens into identities.
    not_logged_timeout : float, optional
        Delay before ``not-logged`` is sent to a silent connection.
    """

    def __init__(
        self,
        store: SiteStore,
        orchestrator: PublishOrchestrator,
        registry: SessionRegistry,
        verifier: IdentityVerifier,
        *,
        not_logged_timeout: float = NOT_LOGGED_TIMEOUT,
    ) -> None:
        self.store = store
        self.orchestrator = orchestrator
        self.registry = registry
        self.verifier = verifier
        self.not_logged_timeout = not_logged_timeout
        self._commands: dict[str, Command] = {
            "list-sites": self._list_sites,
            "create-site": self._create_site,
            "enter-site": self._enter_site,
            "update-site": self._update_site,
            "delete-site": self._delete_site,
            "add-source": self._add_source,
            "update-source": self._update_source,
            "remove-source": self._remove_source,
            "publish": self._publish,
        }

    async def serve(self, ws: web.WebSocketResponse) -> None:
        """Run the read loop of one prepared websocket until it closes."""
        conn = Connection(ws)
        logged_in = asyncio.Event()
        timer = asyncio.create_task(self.not_logged_notify(conn, logged_in))
        try:
            async for msg in ws:
                if msg.type != WSMsgType.TEXT:
                    logger.error(
                        "Error reading message of type %s: %s", msg.type, ws.exception()
                    )
                    break
                await self.handle(conn, msg.data, logged_in)
        finally:
            timer.cancel()
            if conn.identity:
                self.registry.discard(conn.identity, conn)
            logger.debug("Connection of %s closed", conn.identity or "anonymous")

    async def not_logged_notify(self, conn: Connection, logged_in: asyncio.Event) -> None:
        """Send ``not-logged`` once unless a login succeeds first."""
        try:
            await asyncio.wait_for(logged_in.wait(), self.not_logged_timeout)
        except TimeoutError:
            if not await conn.send(NOT_LOGGED_MESSAGE):
                logger.warning("Failed to send not-logged message")

    async def handle(
        self, conn: Connection, text: str, logged_in: asyncio.Event | None = None
    ) -> None:
        """Process one inbound frame."""
        verb, argument = parse_message(text)
        logger.debug("Got message %r from %s", text[:80], conn.identity or "anonymous")

        if verb == "login":
            await self._login(conn, argument, logged_in)
            return
        if not conn.identity:
            logger.warning("Not logged. Waiting for login message.")
            return
        command = self._commands.get(verb)
        if command is None:
            logger.warning("Invalid message kind %r", verb)
            return
        try:
            await command(conn, argument)
        except AppError as exc:
            logger.error(
                "Command %s failed for %s: %s", verb, conn.identity, exc,
                extra={"error": exc.to_dict()},
            )
            await conn.send(notice("error", exc.message))
        except Exception as exc:
            logger.exception("Unexpected error in command %s for %s", verb, conn.identity)
            await conn.send(notice("error", str(exc)))

    async def _login(
        self, conn: Connection, token: str, logged_in: asyncio.Event | None
    ) -> None:
        try:
            identity = await self.verifier.verify(token)
        except AppError as exc:
            logger.error("Failed to verify auth token: %s", exc)
            await conn.send(notice("error", exc.message))
            return
        if conn.identity and conn.identity != identity:
            self.registry.discard(conn.identity, conn)
        conn.identity = identity
        self.registry.set(identity, conn)
        if logged_in is not None:
            logged_in.set()
        logger.debug("Successful login of %s", identity)
        await conn.send(notice("login-success", identity))

    async def _list_sites(self, conn: Connection, argument: str) -> None:
        await conn.send(sites_frame(await self.store.list_sites(conn.identity)))

    async def _create_site(self, conn: Connection, argument: str) -> None:
        site_id = await self.store.create_site(conn.identity, argument)
        await conn.send(notice("create-site-success", site_id))

    async def _enter_site(self, conn: Connection, argument: str) -> None:
        site = await self.store.load_site(conn.identity, parse_id(argument))
        await conn.send(site_frame(site))

    async def _update_site(self, conn: Connection, argument: str) -> None:
        site_id, data = parse_id_and_json(argument)
        site = await self.store.update_site_data(conn.identity, site_id, data)
        await conn.send(site_frame(site))

    async def _delete_site(self, conn: Connection, argument: str) -> None:
        site_id = parse_id(argument)
        await self.orchestrator.unpublish(conn.identity, site_id)
        await self.store.delete_site(conn.identity, site_id)
        await conn.send(notice("delete-site-success", site_id))

    async def _add_source(self, conn: Connection, argument: str) -> None:
        site = await self.store.add_source(conn.identity, parse_id(argument))
        await conn.send(site_frame(site))

    async def _update_source(self, conn: Connection, argument: str) -> None:
        source_id, payload = parse_id_and_json(argument)
        source = Source.from_dict({**payload, "id": source_id})
        # A payload without "data" edits the other fields only.
        site = await self.store.update_source(
            conn.identity, source, keep_data="data" not in payload
        )
        await conn.send(site_frame(site))

    async def _remove_source(self, conn: Connection, argument: str) -> None:
        site = await self.store.remove_source(conn.identity, parse_id(argument))
        await conn.send(site_frame(site))

    async def _publish(self, conn: Connection, argument: str) -> None:
        # Success and error notices are pushed by the orchestrator itself.
        await self.orchestrator.publish(conn.identity, parse_id(argument), observer=conn)
