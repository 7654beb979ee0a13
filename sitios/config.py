"""Global configuration constants for the project.

Defines paths, renderer flags and publish defaults used across the pipeline
and the server. Runtime settings read from the environment live in
`sitios.server.config`.
"""

from __future__ import annotations

from pathlib import Path

# Project directories
PROJECT_ROOT: Path = Path(__file__).resolve().parents[1]
PACKAGE_DIR: Path = PROJECT_ROOT / "sitios"
LOG_DIR: Path = PROJECT_ROOT / "logs"
# Renderer working directory shipped with the package (body/head scripts)
SKELETON_DIR: Path = PACKAGE_DIR / "skeleton"

# Manifest template handed to the renderer
MANIFEST_TEMPLATE_PATH: Path = PACKAGE_DIR / "templates" / "generate.js.tmpl"
MANIFEST_FILENAME: str = "generate.js"
BUILD_DIR_PREFIX: str = "sitios"
BUILD_OUTPUT_SUBDIR: str = "_site"

# Renderer invocation
RENDERER_BIN: str = "node_modules/.bin/sitio"
RENDERER_BODY_SCRIPT: str = "body.js"
RENDERER_HEAD_SCRIPT: str = "head.js"
RENDER_ERROR_TAIL_LINES: int = 200
RENDER_LINE_LIMIT: int = 64 * 1024

# Provider tag -> renderer plugin
PROVIDER_PLUGINS: dict[str, str] = {
    "url:html": "sitio-url",
    "url:markdown": "sitio-url",
    "trello:list": "sitio-trello/list",
    "evernote:note": "sitio-evernote/note",
}

# Template globals
DEFAULT_GLOBALS: dict[str, object] = {
    "name": "unnamed",
    "nav": [],
    "includes": [],
}
MARKUP_GLOBAL_FIELDS: tuple[str, ...] = ("description", "aside", "footer")
ROOT_URL_KEY: str = "rootURL"

# Storage website
WEBSITE_INDEX_DOCUMENT: str = "index.html"
WEBSITE_ERROR_DOCUMENT: str = "error.html"
DEFAULT_CONTENT_TYPE: str = "application/octet-stream"
DELETE_BATCH_SIZE: int = 1000
DEFAULT_AWS_REGION: str = "us-east-1"

# DNS
DEFAULT_BASE_DOMAIN: str = "sitios.xyz"
DEFAULT_STORAGE_ENDPOINT: str = "s3-website-us-east-1.amazonaws.com"
CLOUDFLARE_API_BASE: str = "https://api.cloudflare.com/client/v4"
CLOUDFLARE_RECORD_EXISTS_CODES: frozenset[int] = frozenset({81053, 81057, 81058})
CLOUDFLARE_RATE_LIMIT: int = 1200
CLOUDFLARE_RATE_PERIOD: float = 300.0

# Realtime
NOT_LOGGED_TIMEOUT: float = 1.0
SEND_TIMEOUT: float = 5.0
NOT_LOGGED_MESSAGE: str = "not-logged"

# Server and logging
DEFAULT_PORT: int = 8080
LOG_FILENAME_SERVER: str = "sitios.log"
LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
