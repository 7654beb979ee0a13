"""Text-frame wire protocol of the realtime connection.

Inbound frames are ``<verb> <argument>``, split on the first space.
Outbound frames are notices (``notice <key>=<value>``), resource payloads
(``site <json>``, ``sites <id>=<domain>,...``), the ``not-logged`` marker and
raw renderer log lines.
"""

from __future__ import annotations

import json
from collections.abc import Iterable

from sitios.models import Site


def parse_message(text: str) -> tuple[str, str]:
    """Split an inbound frame into ``(verb, argument)``.

    Examples
    --------
    >>> parse_message("update-source 3 {\\"root\\": \\"/\\"}")
    ('update-source', '3 {"root": "/"}')
    >>> parse_message("list-sites")
    ('list-sites', '')
    """
    verb, _, argument = text.partition(" ")
    return verb, argument


def notice(key: str, value: object) -> str:
    """Return a ``notice <key>=<value>`` frame.

    Examples
    --------
    >>> notice("publish-success", "blog.sitios.xyz")
    'notice publish-success=blog.sitios.xyz'
    """
    return f"notice {key}={value}"


def site_frame(site: Site) -> str:
    """Return a ``site <json>`` frame for ``site``."""
    return "site " + json.dumps(site.to_dict(), ensure_ascii=False)


def sites_frame(sites: Iterable[Site]) -> str:
    """Return a ``sites <id>=<domain>,...`` frame.

    Examples
    --------
    >>> sites_frame([Site(1, "a", "x.sitios.xyz"), Site(2, "a", "y.sitios.xyz")])
    'sites 1=x.sitios.xyz,2=y.sitios.xyz'
    """
    return "sites " + ",".join(f"{site.id}={site.domain}" for site in sites)
