"""Pytest configuration and shared fakes.

- Forces ``DISABLE_FILE_LOGS=1`` to avoid writing log files during tests.
- Ensures the project root is available on ``sys.path`` for imports.
- Provides in-memory stand-ins for the storage and DNS backends, a recording
  connection, and shell-script renderers for end-to-end publish tests.
"""

import os
import stat
import sys
from pathlib import Path

os.environ.setdefault("DISABLE_FILE_LOGS", "1")  # Avoid creating log files during tests

import pytest
import pytest_asyncio

# Ensure project root is on sys.path
ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)

from sitios.exceptions import DNSError, DNSRecordExistsError  # noqa: E402
from sitios.models import Site, Source  # noqa: E402
from sitios.pipeline.dns import DNSProvisioner  # noqa: E402
from sitios.pipeline.publish import PublishOrchestrator  # noqa: E402
from sitios.pipeline.render import RenderInvoker  # noqa: E402
from sitios.pipeline.storage import StorageReconciler  # noqa: E402
from sitios.store import MemorySiteStore  # noqa: E402

BASE_DOMAIN = "platformhost.example"
STORAGE_ENDPOINT = "s3-website-us-east-1.amazonaws.com"


class FakeStorageBackend:
    """In-memory ``StorageBackend`` recording every call."""

    def __init__(self):
        self.buckets: dict[str, dict[str, tuple[bytes, str]]] = {}
        self.public: set[str] = set()
        self.websites: dict[str, tuple[str, str]] = {}
        self.calls: list[tuple] = []
        self.fail_put: set[str] = set()
        self.fail_delete: set[str] = set()
        self.fail_list = False
        self.fail_policy = False

    def bucket_exists(self, bucket):
        self.calls.append(("bucket_exists", bucket))
        return bucket in self.buckets

    def create_bucket(self, bucket):
        self.calls.append(("create_bucket", bucket))
        self.buckets.setdefault(bucket, {})

    def delete_bucket(self, bucket):
        self.calls.append(("delete_bucket", bucket))
        self.buckets.pop(bucket, None)
        self.public.discard(bucket)
        self.websites.pop(bucket, None)

    def set_public_read_policy(self, bucket):
        self.calls.append(("set_public_read_policy", bucket))
        if self.fail_policy:
            raise RuntimeError("AccessDenied")
        self.public.add(bucket)

    def set_website_configuration(self, bucket, index_document, error_document):
        self.calls.append(("set_website_configuration", bucket))
        self.websites[bucket] = (index_document, error_document)

    def put_object(self, bucket, key, body, content_type):
        self.calls.append(("put_object", bucket, key))
        if key in self.fail_put:
            raise RuntimeError(f"upload of {key} failed")
        self.buckets[bucket][key] = (body, content_type)

    def list_objects(self, bucket, prefix=""):
        self.calls.append(("list_objects", bucket))
        if self.fail_list:
            raise RuntimeError("listing failed")
        return [k for k in sorted(self.buckets.get(bucket, {})) if k.startswith(prefix)]

    def delete_objects(self, bucket, keys):
        self.calls.append(("delete_objects", bucket, tuple(keys)))
        failures = []
        for key in keys:
            if key in self.fail_delete:
                failures.append((key, "AccessDenied"))
            else:
                self.buckets.get(bucket, {}).pop(key, None)
        return failures

    def keys(self, bucket):
        return set(self.buckets.get(bucket, {}))


class FakeDNSBackend:
    """In-memory ``DNSBackend`` that reports duplicates like Cloudflare."""

    def __init__(self, base_domain=BASE_DOMAIN):
        self.base_domain = base_domain
        self.records: list[dict] = []
        self.calls: list[tuple] = []
        self.fail_create = False
        self._ids = 0

    async def create_record(self, record_type, name, content, proxied):
        self.calls.append(("create_record", record_type, name, content, proxied))
        if self.fail_create:
            raise DNSError("zone is locked")
        full = f"{name}.{self.base_domain}"
        if any(r["name"] == full for r in self.records):
            raise DNSRecordExistsError("A CNAME record with that host already exists.")
        self._ids += 1
        record = {
            "id": f"rec{self._ids}",
            "type": record_type,
            "name": full,
            "content": content,
            "proxied": proxied,
        }
        self.records.append(record)
        return record

    async def find_records(self, name):
        self.calls.append(("find_records", name))
        return [r for r in self.records if r["name"] == name]

    async def delete_record(self, record_id):
        self.calls.append(("delete_record", record_id))
        self.records = [r for r in self.records if r["id"] != record_id]


class FakeConnection:
    """Connection stand-in recording pushed frames."""

    def __init__(self, identity="", fail=False):
        self.identity = identity
        self.sent: list[str] = []
        self.fail = fail
        self.closed = False

    async def send(self, text):
        if self.fail:
            raise ConnectionResetError("peer went away")
        self.sent.append(text)
        return True


RENDER_OK_SCRIPT = """#!/bin/sh
target=""
for arg in "$@"; do
  case "$arg" in
    --target-dir=*) target="${arg#--target-dir=}" ;;
  esac
done
echo "manifest $1"
mkdir -p "$target/posts"
echo "<h1>home</h1>" > "$target/index.html"
echo "<h1>hello</h1>" > "$target/posts/hello.html"
echo "rendered 2 files" 1>&2
"""

RENDER_FAIL_SCRIPT = """#!/bin/sh
echo "manifest $1"
echo "TypeError: cannot read property 'title'" 1>&2
exit 3
"""


def write_script(path: Path, body: str) -> Path:
    path.write_text(body, encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def storage_backend():
    return FakeStorageBackend()


@pytest.fixture
def dns_backend():
    return FakeDNSBackend()


@pytest.fixture
def store():
    return MemorySiteStore()


@pytest.fixture
def ok_renderer(tmp_path):
    script = write_script(tmp_path / "render-ok.sh", RENDER_OK_SCRIPT)
    return RenderInvoker(renderer_bin=str(script), skeleton_dir=tmp_path)


@pytest.fixture
def failing_renderer(tmp_path):
    script = write_script(tmp_path / "render-fail.sh", RENDER_FAIL_SCRIPT)
    return RenderInvoker(renderer_bin=str(script), skeleton_dir=tmp_path)


@pytest.fixture
def provisioner(dns_backend):
    return DNSProvisioner(
        dns_backend, base_domain=BASE_DOMAIN, storage_endpoint=STORAGE_ENDPOINT
    )


@pytest.fixture
def make_orchestrator(store, storage_backend, provisioner, ok_renderer):
    def _make(renderer=None):
        return PublishOrchestrator(
            store,
            renderer or ok_renderer,
            StorageReconciler(storage_backend),
            provisioner,
        )

    return _make


@pytest_asyncio.fixture
async def blog_site(store):
    """Managed-subdomain site owned by alice with one Markdown source."""
    site_id = await store.create_site("alice", f"blog.{BASE_DOMAIN}")
    await store.update_site_data(
        "alice", site_id, {"name": "Alice's blog", "description": "Notes *and* links"}
    )
    site = await store.add_source("alice", site_id)
    source = site.sources[0]
    await store.update_source(
        "alice",
        Source(
            id=source.id,
            site_id=site_id,
            provider="url:markdown",
            root="/",
            reference="https://example.com/notes.md",
        ),
    )
    return await store.load_site("alice", site_id)


def make_site(domain=f"blog.{BASE_DOMAIN}", data=None, sources=None) -> Site:
    return Site(id=1, owner="alice", domain=domain, data=data or {}, sources=sources or [])
