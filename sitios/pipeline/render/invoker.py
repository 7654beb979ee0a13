"""Render Invoker: manifest materialization and renderer subprocess.

The invoker writes the manifest for a site into a build directory and runs
the external static-site renderer against it. The renderer's combined
stdout/stderr is exposed as an async iterator of lines so that the caller
can forward progress while the subprocess is still running; nothing beyond
a bounded tail (kept for error reports) is buffered here.

The build directory itself is owned by the caller (the publish
orchestrator), which creates and removes it around one publish attempt.

Examples
--------
>>> import asyncio, tempfile
>>> from pathlib import Path
>>> from sitios.pipeline.render import RenderInvoker
>>> invoker = RenderInvoker()
>>> async def main(site):
...     with tempfile.TemporaryDirectory() as tmp:
...         manifest, output_dir = invoker.prepare(site, Path(tmp))
...         async for line in invoker.stream(manifest, output_dir):
...             print(line)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections import deque
from collections.abc import AsyncIterator
from pathlib import Path

from sitios.config import (
    BUILD_OUTPUT_SUBDIR,
    MANIFEST_FILENAME,
    MANIFEST_TEMPLATE_PATH,
    RENDER_ERROR_TAIL_LINES,
    RENDER_LINE_LIMIT,
    RENDERER_BIN,
    RENDERER_BODY_SCRIPT,
    RENDERER_HEAD_SCRIPT,
    SKELETON_DIR,
)
from sitios.exceptions import RenderError
from sitios.models import Site

from .globals import build_globals
from .manifest import build_manifest, load_template

logger = logging.getLogger(__name__)


class RenderInvoker:
    r"""Materialize a site's manifest and run the renderer on it.

    Parameters
    ----------
    renderer_bin : str, optional
        Renderer executable, resolved relative to ``skeleton_dir`` when not
        absolute.
    skeleton_dir : Path, optional
        Working directory of the renderer; holds the body/head scripts.
    template_path : Path, optional
        Manifest template.

    Notes
    -----
    ``ConfigError`` from manifest generation propagates unchanged; every
    subprocess failure is reported as ``RenderError``.
    """

    def __init__(
        self,
        renderer_bin: str = RENDERER_BIN,
        skeleton_dir: Path = SKELETON_DIR,
        template_path: Path = MANIFEST_TEMPLATE_PATH,
    ) -> None:
        self.renderer_bin = renderer_bin
        self.skeleton_dir = Path(skeleton_dir)
        self.template_path = Path(template_path)

    def prepare(self, site: Site, build_dir: Path) -> tuple[Path, Path]:
        """Write the manifest for ``site`` into ``build_dir``.

        Parameters
        ----------
        site : Site
            Site with its current globals and sources.
        build_dir : Path
            Empty per-attempt directory owned by the caller.

        Returns
        -------
        tuple[Path, Path]
            ``(manifest_path, output_dir)``; the renderer writes assets into
            ``output_dir``.

        Raises
        ------
        ConfigError
            For malformed globals, unknown providers or a broken template.
        RenderError
            If the manifest cannot be written.
        """
        manifest = build_manifest(
            load_template(self.template_path), build_globals(site), site.sources
        )
        manifest_path = build_dir / MANIFEST_FILENAME
        try:
            manifest_path.write_text(manifest, encoding="utf-8")
        except OSError as exc:
            raise RenderError(f"cannot write manifest: {exc}") from exc
        logger.debug("Wrote manifest for site %d to %s", site.id, manifest_path)
        return manifest_path, build_dir / BUILD_OUTPUT_SUBDIR

    def command(self, manifest_path: Path, output_dir: Path) -> list[str]:
        """Return the renderer argv for a manifest and output directory."""
        return [
            self.renderer_bin,
            str(manifest_path),
            f"--body={RENDERER_BODY_SCRIPT}",
            f"--helmet={RENDERER_HEAD_SCRIPT}",
            f"--target-dir={output_dir}",
        ]

    def environment(self) -> dict[str, str]:
        """Return the renderer environment.

        The manifest lives outside the skeleton, so module lookups from it
        are pointed at the skeleton's installed packages.
        """
        env = dict(os.environ)
        node_path = str(self.skeleton_dir / "node_modules")
        if env.get("NODE_PATH"):
            node_path = os.pathsep.join([node_path, env["NODE_PATH"]])
        env["NODE_PATH"] = node_path
        return env

    async def stream(
        self, manifest_path: Path, output_dir: Path
    ) -> AsyncIterator[str]:
        r"""Run the renderer and yield its output line by line.

        Parameters
        ----------
        manifest_path : Path
            Manifest written by ``prepare``.
        output_dir : Path
            Target directory for rendered assets.

        Yields
        ------
        str
            One decoded line of combined stdout/stderr, without the newline.
            Lines longer than ``RENDER_LINE_LIMIT`` bytes are yielded in
            pieces of at most that size.

        Raises
        ------
        RenderError
            If the renderer cannot be started or exits non-zero. The error
            carries the last ``RENDER_ERROR_TAIL_LINES`` lines of output.
        """
        argv = self.command(manifest_path, output_dir)
        logger.info("Running renderer: %s", " ".join(argv))
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                cwd=self.skeleton_dir,
                env=self.environment(),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as exc:
            raise RenderError(
                f"cannot start renderer: {exc}", context={"argv": argv}
            ) from exc

        tail: deque[str] = deque(maxlen=RENDER_ERROR_TAIL_LINES)
        try:
            if proc.stdout is None:
                raise RenderError("renderer output is not captured")
            async for line in iter_lines(proc.stdout):
                tail.append(line)
                yield line
            returncode = await proc.wait()
        finally:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()

        if returncode != 0:
            raise RenderError(
                f"renderer exited with status {returncode}",
                output="\n".join(tail),
                context={"returncode": returncode},
            )
        logger.info("Renderer finished for %s", manifest_path)


async def iter_lines(
    reader: asyncio.StreamReader, limit: int = RENDER_LINE_LIMIT
) -> AsyncIterator[str]:
    """Yield decoded lines from ``reader`` using bounded reads.

    A line that grows past ``limit`` bytes without a newline is flushed as
    is; the remainder follows as the next line. A final line without a
    trailing newline is yielded at end of stream.
    """
    buffer = b""
    while True:
        chunk = await reader.read(limit)
        if not chunk:
            break
        buffer += chunk
        while True:
            newline = buffer.find(b"\n")
            if newline == -1:
                break
            yield _decode(buffer[:newline])
            buffer = buffer[newline + 1 :]
        while len(buffer) >= limit:
            yield _decode(buffer[:limit])
            buffer = buffer[limit:]
    if buffer:
        yield _decode(buffer)


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace").rstrip("\r")
