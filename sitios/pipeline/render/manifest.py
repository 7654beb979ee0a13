"""Manifest templating for the renderer.

The renderer is driven by a generated script (the manifest). It is produced
by substituting JSON payloads into ``{placeholder}`` tokens of the template
at ``MANIFEST_TEMPLATE_PATH``: the template globals, the source list and the
provider-to-plugin registry.

Boundaries
----------
- Reads the template file; writes nothing.
- Validates provider tags. An unknown tag is a configuration error raised
  here, before any subprocess runs.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from sitios.config import PROVIDER_PLUGINS
from sitios.exceptions import ConfigError
from sitios.models import Source

MANIFEST_PLACEHOLDERS: tuple[str, ...] = ("globals_json", "sources_json", "plugins_json")


def load_template(path: Path) -> str:
    """Read the manifest template.

    Raises
    ------
    ConfigError
        If the template cannot be read.
    """
    try:
        with path.open("r", encoding="utf-8") as fh:
            return fh.read()
    except OSError as exc:
        raise ConfigError(
            f"cannot read manifest template: {exc}", context={"path": str(path)}
        ) from exc


def extract_placeholders_from_template(content: str) -> list[str]:
    """Return a sorted list of unique ``{name}`` placeholders in the template."""
    return sorted(set(re.findall(r"\{([a-z_]+)\}", content)))


def source_entries(
    sources: Sequence[Source], plugins: Mapping[str, str] = PROVIDER_PLUGINS
) -> list[dict[str, Any]]:
    """Return the manifest entries for ``sources``.

    Each entry carries the provider tag, the root path and the provider data
    with the source reference injected as ``ref``.

    Raises
    ------
    ConfigError
        If a provider tag has no registered plugin.
    """
    entries = []
    for source in sources:
        if source.provider not in plugins:
            raise ConfigError(
                f"unknown provider {source.provider!r} for source {source.id}",
                context={"source_id": source.id, "provider": source.provider},
            )
        data = dict(source.data)
        data["ref"] = source.reference
        entries.append({"provider": source.provider, "root": source.root, "data": data})
    return entries


def build_manifest(
    template_content: str,
    globals_: Mapping[str, Any],
    sources: Sequence[Source],
    plugins: Mapping[str, str] = PROVIDER_PLUGINS,
) -> str:
    r"""Expand the manifest template.

    Parameters
    ----------
    template_content : str
        Template text containing every name in ``MANIFEST_PLACEHOLDERS``.
    globals_ : Mapping[str, Any]
        Prepared template globals (see ``build_globals``).
    sources : Sequence[Source]
        Sources in site order.
    plugins : Mapping[str, str], optional
        Provider registry; defaults to ``PROVIDER_PLUGINS``.

    Returns
    -------
    str
        The manifest script.

    Raises
    ------
    ConfigError
        On an unknown provider, a template lacking a placeholder, or globals
        that are not JSON serializable.

    Examples
    --------
    >>> tpl = "init({globals_json}); run({sources_json}, {plugins_json})"
    >>> build_manifest(tpl, {"name": "x"}, [], {"url:html": "p"})
    'init({"name": "x"}); run([], {"url:html": "p"})'
    """
    missing = [
        name
        for name in MANIFEST_PLACEHOLDERS
        if name not in extract_placeholders_from_template(template_content)
    ]
    if missing:
        raise ConfigError(
            "manifest template is missing placeholders: " + ", ".join(missing)
        )
    entries = source_entries(sources, plugins)
    try:
        payloads = {
            "globals_json": json.dumps(dict(globals_), ensure_ascii=False),
            "sources_json": json.dumps(entries, ensure_ascii=False),
            "plugins_json": json.dumps(dict(plugins), ensure_ascii=False),
        }
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"globals are not serializable: {exc}") from exc
    # Single pass so placeholder-like text inside user data is left alone.
    pattern = re.compile(r"\{(" + "|".join(MANIFEST_PLACEHOLDERS) + r")\}")
    return pattern.sub(lambda match: payloads[match.group(1)], template_content)


__all__ = [
    "MANIFEST_PLACEHOLDERS",
    "build_manifest",
    "extract_placeholders_from_template",
    "load_template",
    "source_entries",
]
