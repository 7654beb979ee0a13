"""Render stage of the publish pipeline.

Turns a site's globals and sources into a renderer manifest and runs the
external static-site renderer. See `invoker.py` for the subprocess boundary,
`globals.py` for globals preparation and `manifest.py` for templating.
"""

from .globals import build_globals, clean_html_output, markup_to_html, root_url
from .invoker import RenderInvoker
from .manifest import build_manifest, load_template, source_entries

__all__ = [
    "RenderInvoker",
    "build_globals",
    "build_manifest",
    "clean_html_output",
    "load_template",
    "markup_to_html",
    "root_url",
    "source_entries",
]
