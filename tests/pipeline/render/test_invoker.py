"""Tests for the renderer subprocess boundary.

Uses small shell scripts as the renderer so the real subprocess plumbing
(streaming, exit codes, output capture) is exercised.
"""

import asyncio
import json

import pytest

from conftest import make_site, write_script
from sitios.config import (
    PROVIDER_PLUGINS,
    RENDER_LINE_LIMIT,
    RENDERER_BODY_SCRIPT,
    RENDERER_HEAD_SCRIPT,
    SKELETON_DIR,
)
from sitios.exceptions import ConfigError, RenderError
from sitios.models import Source
from sitios.pipeline.render import RenderInvoker
from sitios.pipeline.render.invoker import iter_lines


def test_prepare_writes_manifest(ok_renderer, tmp_path):
    build = tmp_path / "build"
    build.mkdir()
    manifest, output_dir = ok_renderer.prepare(make_site(data={"name": "N"}), build)
    assert manifest == build / "generate.js"
    assert output_dir == build / "_site"
    text = manifest.read_text(encoding="utf-8")
    assert '"rootURL": "https://blog.platformhost.example"' in text
    assert '"name": "N"' in text


def test_prepare_rejects_unknown_provider(ok_renderer, tmp_path):
    site = make_site(sources=[Source(1, 1, "ftp:dir", "/", "x")])
    with pytest.raises(ConfigError):
        ok_renderer.prepare(site, tmp_path)
    assert not (tmp_path / "generate.js").exists()


def test_command_shape(tmp_path):
    invoker = RenderInvoker(renderer_bin="bin/sitio", skeleton_dir=tmp_path)
    argv = invoker.command(tmp_path / "generate.js", tmp_path / "_site")
    assert argv[0] == "bin/sitio"
    assert argv[1] == str(tmp_path / "generate.js")
    assert f"--target-dir={tmp_path / '_site'}" in argv
    assert any(a.startswith("--body=") for a in argv)
    assert any(a.startswith("--helmet=") for a in argv)


@pytest.mark.asyncio
async def test_stream_yields_combined_output(ok_renderer, tmp_path):
    build = tmp_path / "build"
    build.mkdir()
    manifest, output_dir = ok_renderer.prepare(make_site(), build)
    lines = [line async for line in ok_renderer.stream(manifest, output_dir)]
    assert lines[0] == f"manifest {manifest}"
    assert "rendered 2 files" in lines
    assert (output_dir / "index.html").is_file()
    assert (output_dir / "posts" / "hello.html").is_file()


@pytest.mark.asyncio
async def test_stream_nonzero_exit_raises_with_output(failing_renderer, tmp_path):
    build = tmp_path / "build"
    build.mkdir()
    manifest, output_dir = failing_renderer.prepare(make_site(), build)
    seen = []
    with pytest.raises(RenderError) as excinfo:
        async for line in failing_renderer.stream(manifest, output_dir):
            seen.append(line)
    assert excinfo.value.context["returncode"] == 3
    assert "TypeError: cannot read property 'title'" in excinfo.value.output
    assert "TypeError: cannot read property 'title'" in seen


@pytest.mark.asyncio
async def test_stream_missing_binary(tmp_path):
    invoker = RenderInvoker(renderer_bin=str(tmp_path / "nope"), skeleton_dir=tmp_path)
    with pytest.raises(RenderError, match="cannot start renderer"):
        async for _ in invoker.stream(tmp_path / "generate.js", tmp_path / "_site"):
            pass


LONG_LINE_SCRIPT = """#!/bin/sh
head -c 200000 /dev/zero | tr '\\0' x
echo
echo done
"""


@pytest.mark.asyncio
async def test_stream_handles_very_long_line(tmp_path):
    script = write_script(tmp_path / "render-long.sh", LONG_LINE_SCRIPT)
    invoker = RenderInvoker(renderer_bin=str(script), skeleton_dir=tmp_path)
    lines = [line async for line in invoker.stream(tmp_path / "generate.js", tmp_path / "_site")]
    assert lines[-1] == "done"
    assert "".join(lines[:-1]) == "x" * 200000
    assert all(len(line) <= RENDER_LINE_LIMIT for line in lines)


@pytest.mark.asyncio
async def test_iter_lines_flushes_partial_last_line():
    reader = asyncio.StreamReader()
    reader.feed_data(b"first\r\nsec")
    reader.feed_data(b"ond\nno newline")
    reader.feed_eof()
    assert [line async for line in iter_lines(reader, limit=8)] == [
        "first",
        "second",
        "no newli",
        "ne",
    ]


def test_environment_points_node_at_skeleton_modules(tmp_path, monkeypatch):
    monkeypatch.delenv("NODE_PATH", raising=False)
    invoker = RenderInvoker(skeleton_dir=tmp_path)
    assert invoker.environment()["NODE_PATH"] == str(tmp_path / "node_modules")

    monkeypatch.setenv("NODE_PATH", "/opt/node")
    assert invoker.environment()["NODE_PATH"].split(":") == [
        str(tmp_path / "node_modules"),
        "/opt/node",
    ]


def test_packaged_skeleton_has_layout_scripts_and_plugins():
    assert RenderInvoker().skeleton_dir == SKELETON_DIR
    assert (SKELETON_DIR / RENDERER_BODY_SCRIPT).is_file()
    assert (SKELETON_DIR / RENDERER_HEAD_SCRIPT).is_file()

    package = json.loads((SKELETON_DIR / "package.json").read_text(encoding="utf-8"))
    dependencies = package["dependencies"]
    assert {"sitio", "run-parallel"} <= set(dependencies)
    for plugin in PROVIDER_PLUGINS.values():
        assert plugin.split("/")[0] in dependencies
