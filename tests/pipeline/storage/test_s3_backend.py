"""Tests for the boto3-backed storage backend using a fake S3 client."""

import json

import pytest
from botocore.exceptions import ClientError

from sitios.pipeline.storage import S3StorageBackend, public_read_policy


def client_error(code: str, operation: str = "Op") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class FakePaginator:
    def __init__(self, pages):
        self.pages = pages
        self.kwargs = None

    def paginate(self, **kwargs):
        self.kwargs = kwargs
        return iter(self.pages)


class FakeS3Client:
    def __init__(self):
        self.calls = []
        self.errors = {}
        self.pages = []
        self.delete_response = {}

    def _call(self, name, **kwargs):
        self.calls.append((name, kwargs))
        if name in self.errors:
            raise self.errors[name]

    def head_bucket(self, **kwargs):
        self._call("head_bucket", **kwargs)

    def create_bucket(self, **kwargs):
        self._call("create_bucket", **kwargs)

    def delete_bucket(self, **kwargs):
        self._call("delete_bucket", **kwargs)

    def put_public_access_block(self, **kwargs):
        self._call("put_public_access_block", **kwargs)

    def put_bucket_policy(self, **kwargs):
        self._call("put_bucket_policy", **kwargs)

    def put_bucket_website(self, **kwargs):
        self._call("put_bucket_website", **kwargs)

    def put_object(self, **kwargs):
        self._call("put_object", **kwargs)

    def get_paginator(self, name):
        assert name == "list_objects_v2"
        self.paginator = FakePaginator(self.pages)
        return self.paginator

    def delete_objects(self, **kwargs):
        self._call("delete_objects", **kwargs)
        return self.delete_response


@pytest.fixture
def client():
    return FakeS3Client()


def test_bucket_exists_maps_missing_codes(client):
    backend = S3StorageBackend(client)
    assert backend.bucket_exists("b") is True
    client.errors["head_bucket"] = client_error("404", "HeadBucket")
    assert backend.bucket_exists("b") is False


def test_bucket_exists_reraises_other_errors(client):
    client.errors["head_bucket"] = client_error("403", "HeadBucket")
    with pytest.raises(ClientError):
        S3StorageBackend(client).bucket_exists("b")


def test_create_bucket_already_owned_is_success(client):
    client.errors["create_bucket"] = client_error("BucketAlreadyOwnedByYou")
    S3StorageBackend(client).create_bucket("b")


def test_create_bucket_location_constraint_outside_default_region(client):
    S3StorageBackend(client, region="eu-west-1").create_bucket("b")
    assert client.calls[-1][1]["CreateBucketConfiguration"] == {
        "LocationConstraint": "eu-west-1"
    }
    S3StorageBackend(client, region="us-east-1").create_bucket("c")
    assert "CreateBucketConfiguration" not in client.calls[-1][1]


def test_delete_missing_bucket_is_success(client):
    client.errors["delete_bucket"] = client_error("NoSuchBucket")
    S3StorageBackend(client).delete_bucket("b")


def test_public_policy_and_website(client):
    backend = S3StorageBackend(client)
    backend.set_public_read_policy("blog.sitios.xyz")
    backend.set_website_configuration("blog.sitios.xyz", "index.html", "error.html")
    names = [name for name, _ in client.calls]
    assert names == ["put_public_access_block", "put_bucket_policy", "put_bucket_website"]
    policy = json.loads(client.calls[1][1]["Policy"])
    assert policy == public_read_policy("blog.sitios.xyz")
    assert policy["Statement"][0]["Resource"] == ["arn:aws:s3:::blog.sitios.xyz/*"]
    assert client.calls[2][1]["WebsiteConfiguration"]["ErrorDocument"] == {
        "Key": "error.html"
    }


def test_put_object_sets_content_type(client):
    S3StorageBackend(client).put_object("b", "a/index.html", b"x", "text/html")
    assert client.calls[-1] == (
        "put_object",
        {"Bucket": "b", "Key": "a/index.html", "Body": b"x", "ContentType": "text/html"},
    )


def test_list_objects_walks_pages(client):
    client.pages = [{"Contents": [{"Key": "a"}, {"Key": "b"}]}, {}, {"Contents": [{"Key": "c"}]}]
    assert list(S3StorageBackend(client).list_objects("b")) == ["a", "b", "c"]
    assert client.paginator.kwargs == {"Bucket": "b", "Prefix": ""}


def test_delete_objects_reports_failures(client):
    client.delete_response = {
        "Errors": [{"Key": "x", "Code": "AccessDenied", "Message": "Access Denied"}]
    }
    failures = S3StorageBackend(client).delete_objects("b", ["x", "y"])
    assert failures == [("x", "Access Denied")]
    assert client.calls[-1][1]["Delete"]["Quiet"] is True
    assert S3StorageBackend(client).delete_objects("b", []) == []
