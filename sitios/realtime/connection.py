"""Connection capability bound to one websocket.

A ``Connection`` is created once per websocket and passed by reference to
whoever needs to push frames to it (the command handler, the session
registry, the publish orchestrator). Sending never raises: a failed push is
logged and reported as ``False``.
"""

from __future__ import annotations

import logging

from aiohttp import web

logger = logging.getLogger(__name__)


class Connection:
    """Push side of a websocket.

    Parameters
    ----------
    ws : aiohttp.web.WebSocketResponse
        Prepared websocket response.
    identity : str, optional
        Identity once logged in; used for log context only.
    """

    def __init__(self, ws: web.WebSocketResponse, identity: str = "") -> None:
        self.ws = ws
        self.identity = identity

    @property
    def closed(self) -> bool:
        return self.ws.closed

    async def send(self, text: str) -> bool:
        """Send one text frame; return False instead of raising on failure."""
        if self.ws.closed:
            logger.debug("Dropping frame for closed connection of %s", self.identity)
            return False
        logger.debug("Sending %r to %s", text[:80], self.identity)
        try:
            await self.ws.send_str(text)
        except (ConnectionError, RuntimeError) as exc:
            logger.warning("Failed to send message to %s: %s", self.identity, exc)
            return False
        return True
