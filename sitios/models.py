"""Site and source records.

Both records are plain dataclasses. ``to_dict``/``from_dict`` define the JSON
shape used on the wire (``site <json>`` frames and ``update-source`` payloads).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from sitios.exceptions import DataValidationError


@dataclass
class Source:
    """One content contributor to a site's build.

    Attributes
    ----------
    id : int
        Source identifier.
    site_id : int
        Identifier of the owning site.
    provider : str
        Provider tag selecting the renderer plugin (e.g. ``"url:markdown"``).
    root : str
        Path inside the generated tree where the provider output is placed.
    reference : str
        Provider reference (URL, list id, ...).
    data : dict
        Provider-specific structured data.
    """

    id: int
    site_id: int
    provider: str = ""
    root: str = ""
    reference: str = ""
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "provider": self.provider,
            "root": self.root,
            "reference": self.reference,
            "data": dict(self.data),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any], *, site_id: int = 0) -> Source:
        """Build a source from a JSON object, validating field types."""
        if not isinstance(payload, Mapping):
            raise DataValidationError("source must be a JSON object")
        data = payload.get("data") or {}
        if not isinstance(data, Mapping):
            raise DataValidationError("source data must be a JSON object")
        try:
            source_id = int(payload.get("id", 0))
        except (TypeError, ValueError) as exc:
            raise DataValidationError(f"invalid source id: {payload.get('id')!r}") from exc
        return cls(
            id=source_id,
            site_id=site_id,
            provider=str(payload.get("provider") or ""),
            root=str(payload.get("root") or ""),
            reference=str(payload.get("reference") or ""),
            data=dict(data),
        )


@dataclass
class Site:
    """The top-level published website entity.

    Attributes
    ----------
    id : int
        Site identifier.
    owner : str
        Identity owning the site.
    domain : str
        Public domain, unique across all sites.
    data : dict
        Template globals (name, description, nav, aside, footer, ...).
    sources : list[Source]
        Ordered content sources.
    """

    id: int
    owner: str
    domain: str
    data: dict[str, Any] = field(default_factory=dict)
    sources: list[Source] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Return the wire representation; the owner is not exposed."""
        return {
            "id": self.id,
            "domain": self.domain,
            "data": self.data,
            "sources": [source.to_dict() for source in self.sources],
        }
