"""HTTP and websocket tests for the aiohttp application.

Services are built from in-memory backends and a shell-script renderer; the
app runs on a real local test server.
"""

from types import SimpleNamespace

import pytest
import pytest_asyncio
from aiohttp.test_utils import TestClient, TestServer

from conftest import BASE_DOMAIN, STORAGE_ENDPOINT
from sitios.server.app import build_services, create_app

DOMAIN = f"blog.{BASE_DOMAIN}"


@pytest.fixture
def services(store, storage_backend, dns_backend, ok_renderer):
    config = SimpleNamespace(
        renderer_bin=ok_renderer.renderer_bin,
        skeleton_dir=ok_renderer.skeleton_dir,
        base_domain=BASE_DOMAIN,
        storage_endpoint=STORAGE_ENDPOINT,
        tokens={"tok-alice": "alice"},
    )
    built = build_services(
        config,
        session=None,
        store=store,
        storage_backend=storage_backend,
        dns_backend=dns_backend,
    )
    return built


@pytest_asyncio.fixture
async def client(services):
    async with TestClient(TestServer(create_app(services))) as c:
        yield c


def origin(client) -> str:
    return f"http://{client.server.host}:{client.server.port}"


@pytest.mark.asyncio
async def test_websocket_rejects_foreign_origin(client):
    resp = await client.get("/ws", headers={"Origin": "http://evil.example"})
    assert resp.status == 403


@pytest.mark.asyncio
async def test_websocket_login_and_commands(client, services):
    async with client.ws_connect("/ws", headers={"Origin": origin(client)}) as ws:
        await ws.send_str("login tok-alice")
        assert await ws.receive_str() == "notice login-success=alice"
        assert services.registry.get("alice") is not None

        await ws.send_str(f"create-site {DOMAIN}")
        assert await ws.receive_str() == "notice create-site-success=1"
        await ws.send_str("list-sites")
        assert await ws.receive_str() == f"sites 1={DOMAIN}"


@pytest.mark.asyncio
async def test_websocket_not_logged_notice(client, services):
    services.handler.not_logged_timeout = 0.05
    async with client.ws_connect("/ws", headers={"Origin": origin(client)}) as ws:
        assert await ws.receive_str(timeout=2) == "not-logged"


@pytest.mark.asyncio
async def test_publish_endpoint_streams_to_live_session(client, store, storage_backend):
    site_id = await store.create_site("alice", DOMAIN)
    async with client.ws_connect("/ws", headers={"Origin": origin(client)}) as ws:
        await ws.send_str("login tok-alice")
        assert await ws.receive_str() == "notice login-success=alice"

        resp = await client.post(
            f"/sites/{site_id}/publish", headers={"Authorization": "Bearer tok-alice"}
        )
        assert resp.status == 200
        body = await resp.json()
        assert body["state"] == "done"
        assert body["stats"]["uploaded"] == 2

        frames = []
        while not frames or not frames[-1].startswith("notice publish-success"):
            frames.append(await ws.receive_str(timeout=2))
        assert "rendered 2 files" in frames
        assert frames[-1] == f"notice publish-success={DOMAIN}"
    assert storage_backend.keys(DOMAIN) == {"index.html", "posts/hello.html"}


@pytest.mark.asyncio
async def test_publish_endpoint_without_session(client, store):
    site_id = await store.create_site("alice", "www.example.org")
    resp = await client.post(
        f"/sites/{site_id}/publish", headers={"Authorization": "Bearer tok-alice"}
    )
    assert resp.status == 200


@pytest.mark.asyncio
async def test_publish_endpoint_errors(client, store):
    resp = await client.post("/sites/1/publish")
    assert resp.status == 401
    resp = await client.post("/sites/1/publish", headers={"Authorization": "Bearer forged"})
    assert resp.status == 401

    auth = {"Authorization": "Bearer tok-alice"}
    resp = await client.post("/sites/abc/publish", headers=auth)
    assert resp.status == 400
    resp = await client.post("/sites/77/publish", headers=auth)
    assert resp.status == 404
    assert (await resp.json())["error"]["error_code"] == "SITE_NOT_FOUND"


@pytest.mark.asyncio
async def test_publish_endpoint_pipeline_failure(client, store, storage_backend):
    storage_backend.fail_policy = True
    site_id = await store.create_site("alice", DOMAIN)
    resp = await client.post(
        f"/sites/{site_id}/publish", headers={"Authorization": "Bearer tok-alice"}
    )
    assert resp.status == 502
    assert (await resp.json())["error"]["error_code"] == "STORAGE_SYNC_ERROR"
