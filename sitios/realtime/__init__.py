"""Realtime layer: live connections, their wire protocol and the session registry.

The command handler lives in `sitios.realtime.handler` and is imported
directly by the server; it depends on the publish pipeline, which itself
only needs the protocol helpers exported here.
"""

from .connection import Connection
from .protocol import notice, parse_message, site_frame, sites_frame
from .sessions import SessionRegistry

__all__ = [
    "Connection",
    "SessionRegistry",
    "notice",
    "parse_message",
    "site_frame",
    "sites_frame",
]
