"""Template globals preparation for the renderer.

Builds the globals mapping handed to the renderer manifest: project defaults,
overlaid with the site's own configuration, overlaid with the computed root
URL. Free-text fields (description, aside, footer) are converted from
Markdown to HTML with `markdown2` before the renderer sees them.

System Boundaries
-----------------
- Pure functions; no file or network IO.
- Only the fields listed in ``MARKUP_GLOBAL_FIELDS`` are converted. Page
  content itself is rendered by the external tool, not here.

Example
-------
>>> from sitios.models import Site
>>> from sitios.pipeline.render.globals import build_globals
>>> g = build_globals(Site(1, "alice", "blog.sitios.xyz", {"rootURL": "x"}))
>>> g["rootURL"]
'https://blog.sitios.xyz'
"""

from __future__ import annotations

import copy
import re
from collections.abc import Mapping
from typing import Any

import markdown2

from sitios.config import DEFAULT_GLOBALS, MARKUP_GLOBAL_FIELDS, ROOT_URL_KEY
from sitios.exceptions import ConfigError
from sitios.models import Site


def root_url(domain: str) -> str:
    """Return the public root URL for ``domain``."""
    return f"https://{domain}"


def clean_html_output(html_content: str) -> str:
    r"""Perform lightweight normalization of HTML produced from Markdown.

    Removes empty paragraphs, redundant breaks and whitespace between tags.

    Parameters
    ----------
    html_content : str
        Raw HTML string.

    Returns
    -------
    str
        Cleaned HTML string.

    Raises
    ------
    TypeError
        If input is not str.

    Examples
    --------
    >>> clean_html_output("<p></p><h1>Hi</h1><p>&nbsp;</p><br><br>")
    '<h1>Hi</h1><br>'
    """
    if not isinstance(html_content, str):
        raise TypeError("Input must be a string.")
    html_content = re.sub(r"<p>\s*</p>", "", html_content)
    html_content = re.sub(r"<p>&nbsp;</p>", "", html_content)
    html_content = re.sub(r"<p><br\s*/?>\s*</p>", "", html_content)
    html_content = re.sub(r"(<br\s*/?>\s*){2,}", "<br>", html_content)
    html_content = re.sub(r">\s+<", "><", html_content)
    return html_content.strip()


def markup_to_html(value: Any) -> str:
    """Convert a Markdown text field to cleaned HTML.

    Absent, blank and non-string values normalize to ``""``.

    Examples
    --------
    >>> markup_to_html("*hi*")
    '<p><em>hi</em></p>'
    >>> markup_to_html(None)
    ''
    """
    if not isinstance(value, str) or not value.strip():
        return ""
    return clean_html_output(markdown2.markdown(value, extras=["tables", "fenced-code-blocks"]))


def render_markup_fields(globals_: dict[str, Any]) -> dict[str, Any]:
    """Convert every markup field of ``globals_`` in place and return it."""
    for key in MARKUP_GLOBAL_FIELDS:
        globals_[key] = markup_to_html(globals_.get(key))
    return globals_


def build_globals(site: Site) -> dict[str, Any]:
    r"""Build the renderer globals for ``site``.

    Precedence, lowest first: ``DEFAULT_GLOBALS``, ``site.data``, the
    computed ``rootURL``. The root URL always wins over a user value.

    Parameters
    ----------
    site : Site
        Site whose ``data`` holds the user-supplied globals.

    Returns
    -------
    dict[str, Any]
        Fresh globals mapping, safe to mutate.

    Raises
    ------
    ConfigError
        If ``site.data`` is not a mapping.
    """
    data = site.data if site.data is not None else {}
    if not isinstance(data, Mapping):
        raise ConfigError(
            "site globals must be a key/value mapping",
            context={"site_id": site.id, "type": type(data).__name__},
        )
    globals_: dict[str, Any] = copy.deepcopy(DEFAULT_GLOBALS)
    globals_.update(copy.deepcopy(dict(data)))
    globals_[ROOT_URL_KEY] = root_url(site.domain)
    return render_markup_fields(globals_)


__all__ = [
    "build_globals",
    "clean_html_output",
    "markup_to_html",
    "render_markup_fields",
    "root_url",
]
