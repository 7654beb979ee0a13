"""DNS Provisioner: idempotent CNAME management for managed subdomains.

Only domains below the platform's base domain are provisioned. Custom
domains are left to their owners and never reach the DNS backend.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from sitios.config import DEFAULT_BASE_DOMAIN, DEFAULT_STORAGE_ENDPOINT
from sitios.exceptions import DNSRecordExistsError

logger = logging.getLogger(__name__)


class DNSBackend(Protocol):
    """DNS record operations used by the provisioner."""

    async def create_record(
        self, record_type: str, name: str, content: str, proxied: bool
    ) -> Any: ...

    async def find_records(self, name: str) -> list[dict[str, Any]]: ...

    async def delete_record(self, record_id: str) -> None: ...


class DNSProvisioner:
    r"""Ensure or remove the CNAME that points a subdomain at storage.

    Parameters
    ----------
    backend : DNSBackend
        DNS API client, injected (``CloudflareClient`` in production).
    base_domain : str, optional
        Platform-managed domain suffix.
    storage_endpoint : str, optional
        CNAME target: the storage website endpoint host.

    Examples
    --------
    >>> p = DNSProvisioner(backend=None, base_domain="sitios.xyz")
    >>> p.is_managed("blog.sitios.xyz"), p.is_managed("example.com")
    (True, False)
    >>> p.subdomain_of("blog.sitios.xyz")
    'blog'
    """

    def __init__(
        self,
        backend: DNSBackend,
        *,
        base_domain: str = DEFAULT_BASE_DOMAIN,
        storage_endpoint: str = DEFAULT_STORAGE_ENDPOINT,
    ) -> None:
        self.backend = backend
        self.base_domain = base_domain.strip(".").lower()
        self.storage_endpoint = storage_endpoint

    def is_managed(self, domain: str) -> bool:
        """Return True when ``domain`` is a strict subdomain of the base domain."""
        domain = domain.strip(".").lower()
        suffix = "." + self.base_domain
        return domain.endswith(suffix) and len(domain) > len(suffix)

    def subdomain_of(self, domain: str) -> str:
        """Return the label(s) of ``domain`` in front of the base domain.

        Raises
        ------
        ValueError
            If ``domain`` is not managed.
        """
        if not self.is_managed(domain):
            raise ValueError(f"{domain} is not below {self.base_domain}")
        domain = domain.strip(".").lower()
        return domain[: -(len(self.base_domain) + 1)]

    async def ensure_cname(self, subdomain: str) -> None:
        """Create ``subdomain -> storage endpoint`` (proxied); existing is success.

        Raises
        ------
        DNSError
            For any failure other than "already exists".
        """
        try:
            await self.backend.create_record(
                "CNAME", subdomain, self.storage_endpoint, True
            )
        except DNSRecordExistsError:
            logger.info("CNAME for %s already exists", subdomain)
            return
        logger.info("Created CNAME %s -> %s", subdomain, self.storage_endpoint)

    async def remove_cname(self, full_domain: str) -> None:
        """Delete the first record named exactly ``full_domain``; none is success.

        Raises
        ------
        DNSError
            If the lookup or the deletion fails.
        """
        records = await self.backend.find_records(full_domain)
        if not records:
            logger.info("No DNS record for %s, nothing to remove", full_domain)
            return
        await self.backend.delete_record(str(records[0]["id"]))
        logger.info("Removed DNS record for %s", full_domain)
