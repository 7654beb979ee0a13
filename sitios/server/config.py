"""Runtime configuration loader for the sitios service.

This module provides ServiceConfig, which loads and validates the settings
needed to construct the service's external clients (object storage,
Cloudflare, identity verification) and the renderer invocation.

Role in Architecture
--------------------
- Boundary between the process environment (and an optional `.env` file at
  the project root) and the explicitly constructed clients.
- No client logic: only loading, structuring and validation.

Examples
--------
>>> import os
>>> os.environ["CLOUDFLARE_TOKEN"] = "unit-test"
>>> from sitios.server.config import ServiceConfig
>>> cfg = ServiceConfig()
>>> cfg.base_domain
'sitios.xyz'
"""

import os
from pathlib import Path

from dotenv import load_dotenv

import sitios.config as _project_config
from sitios.config import (
    DEFAULT_AWS_REGION,
    DEFAULT_BASE_DOMAIN,
    DEFAULT_PORT,
    DEFAULT_STORAGE_ENDPOINT,
    RENDERER_BIN,
    SKELETON_DIR,
)
from sitios.realtime.auth import parse_token_map


class ServiceConfig:
    r"""Configuration loader and validator for the service's collaborators.

    Attributes
    ----------
    aws_key_id, aws_secret_key : str | None
        Storage credentials; ``None`` defers to boto3's credential chain.
    aws_region : str
        Region of the website buckets.
    cloudflare_token : str
        Scoped API token (preferred).
    cloudflare_key, cloudflare_email : str
        Global API key credentials, used when no token is set.
    cloudflare_zone_id : str
        Optional zone id; resolved from ``base_domain`` when empty.
    base_domain : str
        Platform-managed domain; its subdomains get CNAME records.
    storage_endpoint : str
        CNAME target for managed subdomains.
    renderer_bin : str
        Renderer executable.
    skeleton_dir : Path
        Renderer working directory.
    port : int
        HTTP listen port.
    tokens : dict[str, str]
        Login token -> identity table for ``StaticTokenVerifier``.
    max_retries : int
        Retries for transient Cloudflare failures.
    backoff_factor : float
        Exponential backoff base for those retries.
    retry_sleep_on_429 : int
        Seconds to sleep on HTTP 429.
    request_timeout : int
        Timeout (seconds) for individual Cloudflare requests.

    Raises
    ------
    ValueError
        If neither a Cloudflare token nor a key/email pair is configured.
    """

    def __init__(self) -> None:
        env_path = Path(_project_config.PROJECT_ROOT) / ".env"
        if env_path.exists():
            load_dotenv(env_path, override=True)
        self.aws_key_id: str | None = os.getenv("AWS_KEY_ID") or None
        self.aws_secret_key: str | None = os.getenv("AWS_SECRET_KEY") or None
        self.aws_region: str = os.getenv("AWS_REGION", DEFAULT_AWS_REGION)
        self.cloudflare_token: str = os.getenv("CLOUDFLARE_TOKEN", "")
        self.cloudflare_key: str = os.getenv("CLOUDFLARE_KEY", "")
        self.cloudflare_email: str = os.getenv("CLOUDFLARE_EMAIL", "")
        self.cloudflare_zone_id: str = os.getenv("CLOUDFLARE_ZONE_ID", "")
        self.base_domain: str = os.getenv("BASE_DOMAIN", DEFAULT_BASE_DOMAIN)
        self.storage_endpoint: str = os.getenv("STORAGE_ENDPOINT", DEFAULT_STORAGE_ENDPOINT)
        self.renderer_bin: str = os.getenv("RENDERER_BIN", RENDERER_BIN)
        self.skeleton_dir: Path = Path(os.getenv("SKELETON_DIR", str(SKELETON_DIR)))
        self.port = int(os.getenv("PORT", DEFAULT_PORT))
        self.tokens: dict[str, str] = parse_token_map(os.getenv("SITIOS_TOKENS", ""))
        self.max_retries = int(os.getenv("MAX_RETRIES", 3))
        self.backoff_factor = float(os.getenv("BACKOFF_FACTOR", 2.0))
        self.retry_sleep_on_429 = int(os.getenv("RETRY_SLEEP_ON_429", 10))
        self.request_timeout = int(os.getenv("REQUEST_TIMEOUT", 30))
        if not self.cloudflare_token and not (self.cloudflare_key and self.cloudflare_email):
            raise ValueError(
                "Missing Cloudflare credentials: set CLOUDFLARE_TOKEN or "
                "CLOUDFLARE_KEY and CLOUDFLARE_EMAIL"
            )
        if bool(self.aws_key_id) != bool(self.aws_secret_key):
            raise ValueError("AWS_KEY_ID and AWS_SECRET_KEY must be set together")
