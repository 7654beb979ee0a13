"""Storage stage: bucket provisioning and object-set reconciliation."""

from .backend import S3StorageBackend, StorageBackend, public_read_policy
from .reconciler import StorageReconciler, SyncStats, content_type_for, iter_local_files

__all__ = [
    "S3StorageBackend",
    "StorageBackend",
    "StorageReconciler",
    "SyncStats",
    "content_type_for",
    "iter_local_files",
    "public_read_policy",
]
