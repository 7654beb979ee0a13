"""Cloudflare DNS API client.

This module defines `CloudflareClient`, the asynchronous networking boundary
for DNS record operations against the Cloudflare v4 REST API. It performs
authentication, rate limiting (`aiolimiter`), bounded retries with
exponential backoff for transient failures (HTTP 429/5xx, transport errors,
timeouts) and maps API error payloads onto the project's error taxonomy:

- "record already exists" errors raise ``DNSRecordExistsError``;
- every other failure raises ``DNSError``.

The client implements the ``DNSBackend`` contract consumed by
``DNSProvisioner`` and performs no business logic of its own.

Examples
--------
>>> import aiohttp
>>> from sitios.pipeline.dns.client import CloudflareClient
>>> class DummyConfig:
...     cloudflare_token = "secret"
...     base_domain = "sitios.xyz"
>>> async def main():
...     async with aiohttp.ClientSession() as session:
...         client = CloudflareClient(DummyConfig(), session)
...         return await client.find_records("blog.sitios.xyz")
>>> # import asyncio; asyncio.run(main())
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp
from aiolimiter import AsyncLimiter

from sitios.config import (
    CLOUDFLARE_API_BASE,
    CLOUDFLARE_RATE_LIMIT,
    CLOUDFLARE_RATE_PERIOD,
    CLOUDFLARE_RECORD_EXISTS_CODES,
    DEFAULT_BASE_DOMAIN,
)
from sitios.exceptions import DNSError, DNSRecordExistsError

logger = logging.getLogger(__name__)


def _api_errors(payload: Any) -> list[dict[str, Any]]:
    if not isinstance(payload, dict):
        return []
    errors = payload.get("errors") or []
    return [e for e in errors if isinstance(e, dict)]


def _is_record_exists(errors: list[dict[str, Any]]) -> bool:
    for error in errors:
        if error.get("code") in CLOUDFLARE_RECORD_EXISTS_CODES:
            return True
        if "already exists" in str(error.get("message", "")).lower():
            return True
    return False


class CloudflareClient:
    r"""Asynchronous client for the Cloudflare DNS records API.

    Parameters
    ----------
    config : Any
        Object providing ``cloudflare_token`` or ``cloudflare_key`` plus
        ``cloudflare_email``, and ``base_domain`` (the zone name). Optional
        attributes: ``cloudflare_api_base``, ``cloudflare_zone_id``,
        ``max_retries``, ``backoff_factor``, ``retry_sleep_on_429``,
        ``request_timeout``.
    session : aiohttp.ClientSession
        Session used for every request; owned by the caller.
    limiter : AsyncLimiter, optional
        Request rate limiter; defaults to Cloudflare's published budget.

    Notes
    -----
    The zone id is resolved lazily from the zone name and cached.
    """

    def __init__(
        self,
        config: Any,
        session: aiohttp.ClientSession,
        limiter: AsyncLimiter | None = None,
    ) -> None:
        self.config = config
        self.session = session
        self.limiter = limiter or AsyncLimiter(
            CLOUDFLARE_RATE_LIMIT, CLOUDFLARE_RATE_PERIOD
        )
        self.api_base = getattr(config, "cloudflare_api_base", "") or CLOUDFLARE_API_BASE
        self.zone_name = getattr(config, "base_domain", "") or DEFAULT_BASE_DOMAIN
        self._zone_id: str | None = getattr(config, "cloudflare_zone_id", None) or None

    def _headers(self) -> dict[str, str]:
        token = getattr(self.config, "cloudflare_token", "")
        if token:
            return {"Authorization": f"Bearer {token}"}
        return {
            "X-Auth-Key": str(getattr(self.config, "cloudflare_key", "")),
            "X-Auth-Email": str(getattr(self.config, "cloudflare_email", "")),
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        r"""Perform one API call and return the ``result`` member.

        Retries HTTP 429 (after ``retry_sleep_on_429`` seconds), HTTP 5xx,
        ``aiohttp.ClientError`` and ``TimeoutError`` up to ``max_retries``
        times with exponential backoff.

        Raises
        ------
        DNSRecordExistsError
            If Cloudflare reports that the record already exists.
        DNSError
            For every other API failure, or when retries are exhausted.
        """
        url = f"{self.api_base}{path}"
        max_retries = getattr(self.config, "max_retries", 3)
        backoff = getattr(self.config, "backoff_factor", 2.0)
        timeout = aiohttp.ClientTimeout(total=getattr(self.config, "request_timeout", 30))
        context = {"method": method, "path": path}
        last_error = "no attempt made"

        for attempt in range(max_retries + 1):
            try:
                async with self.limiter:
                    async with self.session.request(
                        method,
                        url,
                        params=params,
                        json=json,
                        headers=self._headers(),
                        timeout=timeout,
                    ) as response:
                        status = response.status
                        try:
                            payload = await response.json(content_type=None)
                        except ValueError:
                            payload = None
                            last_error = f"HTTP {status}: invalid JSON body"
            except aiohttp.ClientError as exc:
                last_error = f"ClientError: {exc}"
                if attempt < max_retries:
                    await asyncio.sleep(backoff**attempt)
                    continue
                break
            except TimeoutError:
                last_error = "TimeoutError"
                if attempt < max_retries:
                    await asyncio.sleep(backoff**attempt)
                    continue
                break

            if status == 429:
                last_error = "HTTP 429: rate limited"
                if attempt < max_retries:
                    await asyncio.sleep(
                        getattr(self.config, "retry_sleep_on_429", 10) * (attempt + 1)
                    )
                    continue
                break
            if status >= 500:
                last_error = f"HTTP {status}"
                if attempt < max_retries:
                    await asyncio.sleep(backoff**attempt)
                    continue
                break

            errors = _api_errors(payload)
            if 200 <= status < 300 and isinstance(payload, dict) and payload.get("success", True):
                return payload.get("result")
            if _is_record_exists(errors):
                raise DNSRecordExistsError(
                    "; ".join(str(e.get("message", "")) for e in errors),
                    context=context,
                )
            message = "; ".join(f"{e.get('code')}: {e.get('message')}" for e in errors)
            if not message:
                message = last_error if payload is None else f"HTTP {status}"
            raise DNSError(
                f"cloudflare {method} {path} failed: {message}",
                context={**context, "status": status},
                transient=False,
            )

        raise DNSError(
            f"cloudflare {method} {path} failed after {max_retries + 1} attempts: {last_error}",
            context=context,
        )

    async def zone_id(self) -> str:
        """Return (and cache) the id of the managed zone."""
        if self._zone_id is None:
            zones = await self._request("GET", "/zones", params={"name": self.zone_name})
            if not zones:
                raise DNSError(
                    f"zone {self.zone_name} not found",
                    context={"zone": self.zone_name},
                    transient=False,
                )
            self._zone_id = str(zones[0]["id"])
        return self._zone_id

    async def create_record(
        self, record_type: str, name: str, content: str, proxied: bool
    ) -> dict[str, Any]:
        zone = await self.zone_id()
        return await self._request(
            "POST",
            f"/zones/{zone}/dns_records",
            json={"type": record_type, "name": name, "content": content, "proxied": proxied},
        )

    async def find_records(self, name: str) -> list[dict[str, Any]]:
        """Return the records whose name is exactly ``name``."""
        zone = await self.zone_id()
        result = await self._request(
            "GET", f"/zones/{zone}/dns_records", params={"name": name}
        )
        return list(result or [])

    async def delete_record(self, record_id: str) -> None:
        zone = await self.zone_id()
        await self._request("DELETE", f"/zones/{zone}/dns_records/{record_id}")
