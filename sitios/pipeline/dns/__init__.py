"""DNS stage: CNAME provisioning for platform subdomains."""

from .client import CloudflareClient
from .provisioner import DNSBackend, DNSProvisioner

__all__ = ["CloudflareClient", "DNSBackend", "DNSProvisioner"]
