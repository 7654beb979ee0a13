"""Object-storage backend contract and its boto3 implementation.

The reconciler talks to storage only through ``StorageBackend``: a small,
synchronous, boto3-shaped surface. ``S3StorageBackend`` implements it on top
of a boto3 S3 client constructed explicitly from credentials (or injected),
so that tests and other deployments can substitute their own backend.

Normalization
-------------
- Creating a bucket that is already ours is success.
- Deleting a bucket that does not exist is success.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Sequence
from typing import Any, Protocol

import boto3
from botocore.exceptions import ClientError

from sitios.config import DEFAULT_AWS_REGION

logger = logging.getLogger(__name__)

_MISSING_BUCKET_CODES = frozenset({"404", "NoSuchBucket", "NotFound"})
_OWNED_BUCKET_CODES = frozenset({"BucketAlreadyOwnedByYou"})


class StorageBackend(Protocol):
    """Synchronous object-storage operations used by the reconciler."""

    def bucket_exists(self, bucket: str) -> bool: ...

    def create_bucket(self, bucket: str) -> None: ...

    def delete_bucket(self, bucket: str) -> None: ...

    def set_public_read_policy(self, bucket: str) -> None: ...

    def set_website_configuration(
        self, bucket: str, index_document: str, error_document: str
    ) -> None: ...

    def put_object(
        self, bucket: str, key: str, body: bytes, content_type: str
    ) -> None: ...

    def list_objects(self, bucket: str, prefix: str = "") -> Iterable[str]: ...

    def delete_objects(
        self, bucket: str, keys: Sequence[str]
    ) -> list[tuple[str, str]]: ...


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


def public_read_policy(bucket: str) -> dict[str, Any]:
    """Return a bucket policy granting anonymous ``s3:GetObject``."""
    return {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Sid": "PublicReadGetObject",
                "Effect": "Allow",
                "Principal": "*",
                "Action": ["s3:GetObject"],
                "Resource": [f"arn:aws:s3:::{bucket}/*"],
            }
        ],
    }


class S3StorageBackend:
    r"""``StorageBackend`` backed by a boto3 S3 client.

    Parameters
    ----------
    client : Any, optional
        Pre-built boto3 S3 client. When omitted one is created from the
        credentials below.
    region : str, optional
        Region for new buckets and for the created client.
    access_key, secret_key : str | None, optional
        Explicit credentials; ``None`` defers to boto3's resolution chain.

    Examples
    --------
    >>> backend = S3StorageBackend(region="us-east-1")  # doctest: +SKIP
    >>> backend.bucket_exists("blog.sitios.xyz")  # doctest: +SKIP
    True
    """

    def __init__(
        self,
        client: Any = None,
        *,
        region: str = DEFAULT_AWS_REGION,
        access_key: str | None = None,
        secret_key: str | None = None,
    ) -> None:
        self.region = region
        if client is None:
            session = boto3.Session(
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                region_name=region,
            )
            client = session.client("s3")
        self.client = client

    def bucket_exists(self, bucket: str) -> bool:
        try:
            self.client.head_bucket(Bucket=bucket)
        except ClientError as exc:
            if _error_code(exc) in _MISSING_BUCKET_CODES:
                return False
            raise
        return True

    def create_bucket(self, bucket: str) -> None:
        kwargs: dict[str, Any] = {"Bucket": bucket}
        if self.region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": self.region}
        try:
            self.client.create_bucket(**kwargs)
        except ClientError as exc:
            if _error_code(exc) in _OWNED_BUCKET_CODES:
                logger.debug("Bucket %s already owned, nothing to create", bucket)
                return
            raise

    def delete_bucket(self, bucket: str) -> None:
        try:
            self.client.delete_bucket(Bucket=bucket)
        except ClientError as exc:
            if _error_code(exc) in _MISSING_BUCKET_CODES:
                logger.debug("Bucket %s already gone", bucket)
                return
            raise

    def set_public_read_policy(self, bucket: str) -> None:
        # New buckets block public policies by default.
        self.client.put_public_access_block(
            Bucket=bucket,
            PublicAccessBlockConfiguration={
                "BlockPublicAcls": False,
                "IgnorePublicAcls": False,
                "BlockPublicPolicy": False,
                "RestrictPublicBuckets": False,
            },
        )
        self.client.put_bucket_policy(
            Bucket=bucket, Policy=json.dumps(public_read_policy(bucket))
        )

    def set_website_configuration(
        self, bucket: str, index_document: str, error_document: str
    ) -> None:
        self.client.put_bucket_website(
            Bucket=bucket,
            WebsiteConfiguration={
                "IndexDocument": {"Suffix": index_document},
                "ErrorDocument": {"Key": error_document},
            },
        )

    def put_object(self, bucket: str, key: str, body: bytes, content_type: str) -> None:
        self.client.put_object(
            Bucket=bucket, Key=key, Body=body, ContentType=content_type
        )

    def list_objects(self, bucket: str, prefix: str = "") -> Iterable[str]:
        paginator = self.client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
            for item in page.get("Contents", []):
                yield item["Key"]

    def delete_objects(self, bucket: str, keys: Sequence[str]) -> list[tuple[str, str]]:
        """Delete ``keys`` in one request; return ``(key, message)`` failures."""
        if not keys:
            return []
        response = self.client.delete_objects(
            Bucket=bucket,
            Delete={"Objects": [{"Key": key} for key in keys], "Quiet": True},
        )
        return [
            (error.get("Key", ""), error.get("Message") or error.get("Code", ""))
            for error in response.get("Errors", [])
        ]
