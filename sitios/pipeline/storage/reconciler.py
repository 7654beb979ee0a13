"""Storage Reconciler: make a bucket serve exactly a local directory tree.

This module owns the storage half of a publish: provisioning the bucket as a
public website endpoint, reconciling its object set against a rendered build
directory, and tearing it down when a site is deleted.

Reconciliation order
--------------------
Every local file is uploaded first and its key recorded as kept. Only then is
the remote listing taken and every key that is not kept deleted. A reader
hitting the endpoint mid-sync therefore never finds a file missing that the
new build still needs; deletions only remove superseded or orphaned objects.

Failure policy
--------------
- Individual upload/delete failures are logged and counted; the walk goes on.
- The first filesystem error (unreadable directory or file) aborts with
  ``StorageSyncError``, as does a failed listing or a failed provisioning
  call.
- Already-uploaded objects are never rolled back.

Backend calls are blocking (boto3) and run in worker threads.
"""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import os
from collections.abc import Iterator
from dataclasses import asdict, dataclass
from pathlib import Path

from sitios.config import (
    DEFAULT_CONTENT_TYPE,
    DELETE_BATCH_SIZE,
    WEBSITE_ERROR_DOCUMENT,
    WEBSITE_INDEX_DOCUMENT,
)
from sitios.exceptions import StorageSyncError

from .backend import StorageBackend

logger = logging.getLogger(__name__)


@dataclass
class SyncStats:
    """Counters describing one ``sync`` run."""

    uploaded: int = 0
    upload_failed: int = 0
    deleted: int = 0
    delete_failed: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


def content_type_for(path: Path) -> str:
    """Return the MIME type for ``path`` inferred from its extension.

    Examples
    --------
    >>> content_type_for(Path("index.html"))
    'text/html'
    >>> content_type_for(Path("blob.unknownext"))
    'application/octet-stream'
    """
    guessed, _ = mimetypes.guess_type(path.name)
    return guessed or DEFAULT_CONTENT_TYPE


def iter_local_files(local_dir: Path) -> Iterator[tuple[str, Path]]:
    """Yield ``(key, path)`` for every file below ``local_dir``.

    Keys are POSIX relative paths. Traversal is sorted for stable ordering.

    Raises
    ------
    OSError
        On the first directory that cannot be listed.
    """
    if not local_dir.is_dir():
        raise NotADirectoryError(f"not a directory: {local_dir}")

    def _raise(error: OSError) -> None:
        raise error

    for dirpath, dirnames, filenames in os.walk(local_dir, onerror=_raise):
        dirnames.sort()
        for name in sorted(filenames):
            path = Path(dirpath) / name
            yield path.relative_to(local_dir).as_posix(), path


def _batches(keys: list[str], size: int) -> Iterator[list[str]]:
    for start in range(0, len(keys), size):
        yield keys[start : start + size]


class StorageReconciler:
    r"""Provision and reconcile a website bucket through a ``StorageBackend``.

    Parameters
    ----------
    backend : StorageBackend
        Storage client, injected.
    index_document, error_document : str, optional
        Website documents configured on the bucket.

    Examples
    --------
    >>> reconciler = StorageReconciler(backend)  # doctest: +SKIP
    >>> await reconciler.ensure_public_endpoint("blog.sitios.xyz")  # doctest: +SKIP
    >>> stats = await reconciler.sync("blog.sitios.xyz", Path("build/_site"))  # doctest: +SKIP
    """

    def __init__(
        self,
        backend: StorageBackend,
        *,
        index_document: str = WEBSITE_INDEX_DOCUMENT,
        error_document: str = WEBSITE_ERROR_DOCUMENT,
    ) -> None:
        self.backend = backend
        self.index_document = index_document
        self.error_document = error_document

    async def ensure_public_endpoint(self, container: str) -> None:
        """Create ``container`` if absent and configure it as a public website.

        Idempotent: re-running against a configured bucket changes nothing.

        Raises
        ------
        StorageSyncError
            If any backend call fails.
        """
        try:
            if not await asyncio.to_thread(self.backend.bucket_exists, container):
                logger.info("Creating bucket %s", container)
                await asyncio.to_thread(self.backend.create_bucket, container)
            await asyncio.to_thread(self.backend.set_public_read_policy, container)
            await asyncio.to_thread(
                self.backend.set_website_configuration,
                container,
                self.index_document,
                self.error_document,
            )
        except Exception as exc:
            raise StorageSyncError(
                f"cannot provision bucket {container}: {exc}",
                context={"bucket": container},
            ) from exc

    async def sync(self, container: str, local_dir: Path) -> SyncStats:
        r"""Make the objects of ``container`` equal the files below ``local_dir``.

        Parameters
        ----------
        container : str
            Bucket name.
        local_dir : Path
            Rendered build output.

        Returns
        -------
        SyncStats
            Upload/delete counters, including best-effort failures.

        Raises
        ------
        StorageSyncError
            On a filesystem error during the walk or a failed remote listing.
        """
        local_dir = Path(local_dir)
        stats = SyncStats()
        kept: set[str] = set()
        try:
            for key, path in iter_local_files(local_dir):
                body = await asyncio.to_thread(path.read_bytes)
                # Kept even if the upload fails so a previous copy survives.
                kept.add(key)
                try:
                    await asyncio.to_thread(
                        self.backend.put_object,
                        container,
                        key,
                        body,
                        content_type_for(path),
                    )
                    stats.uploaded += 1
                except Exception:
                    stats.upload_failed += 1
                    logger.warning(
                        "Failed to upload %s to bucket %s", key, container, exc_info=True
                    )
        except OSError as exc:
            raise StorageSyncError(
                f"cannot read build output: {exc}",
                context={"bucket": container, "dir": str(local_dir)},
            ) from exc

        try:
            remote = await asyncio.to_thread(
                lambda: list(self.backend.list_objects(container))
            )
        except Exception as exc:
            raise StorageSyncError(
                f"cannot list bucket {container}: {exc}", context={"bucket": container}
            ) from exc

        stale = sorted(key for key in remote if key not in kept)
        await self._delete_keys(container, stale, stats)
        logger.info(
            "Synced bucket %s: uploaded=%d upload_failed=%d deleted=%d delete_failed=%d",
            container,
            stats.uploaded,
            stats.upload_failed,
            stats.deleted,
            stats.delete_failed,
        )
        return stats

    async def _delete_keys(self, container: str, keys: list[str], stats: SyncStats) -> None:
        for batch in _batches(keys, DELETE_BATCH_SIZE):
            try:
                failures = await asyncio.to_thread(
                    self.backend.delete_objects, container, batch
                )
            except Exception:
                stats.delete_failed += len(batch)
                logger.warning(
                    "Failed to delete %d objects from bucket %s",
                    len(batch),
                    container,
                    exc_info=True,
                )
                continue
            for key, message in failures:
                logger.warning(
                    "Failed to remove %s from bucket %s: %s", key, container, message
                )
            stats.delete_failed += len(failures)
            stats.deleted += len(batch) - len(failures)

    async def remove_all(self, container: str) -> None:
        """Delete every object of ``container`` and then the bucket itself.

        An absent bucket is success.

        Raises
        ------
        StorageSyncError
            If the bucket cannot be inspected, listed or deleted.
        """
        try:
            if not await asyncio.to_thread(self.backend.bucket_exists, container):
                logger.info("Bucket %s already absent", container)
                return
            remote = await asyncio.to_thread(
                lambda: list(self.backend.list_objects(container))
            )
            stats = SyncStats()
            await self._delete_keys(container, sorted(remote), stats)
            await asyncio.to_thread(self.backend.delete_bucket, container)
        except Exception as exc:
            raise StorageSyncError(
                f"cannot remove bucket {container}: {exc}", context={"bucket": container}
            ) from exc
        logger.info("Removed bucket %s", container)
