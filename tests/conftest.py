# tests/conftest.py
"""
Pytest configuration and fixtures for the s3-spa-upload unit tests.

This module provides an in-memory stand-in for an aiobotocore session and
its S3 clients, so the upload pipeline can be exercised without a network:
- `FakeBucket` holds the objects and records every operation.
- `FakeSession.create_client` hands out region-bound `FakeS3Client`s that
  answer puts from the wrong region with a permanent redirect.
- Factories for SPA build directories and configurations.
"""

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import (
    Any,
    AsyncIterator,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Set,
)

import pytest
from botocore.exceptions import ClientError

from s3_spa_upload.config import Config, S3Config, SyncOptions

BUCKET_NAME: str = "spa-bucket"


def make_client_error(
    code: str, operation: str, message: str = "", **details: str
) -> ClientError:
    """
    Build a botocore `ClientError` as raised by a real S3 client.

    Args:
        code (str): The S3 error code, e.g. "PermanentRedirect".
        operation (str): The operation name, e.g. "PutObject".
        message (str): The error message.
        **details (str): Extra fields of the "Error" element, e.g. Endpoint.

    Returns:
        ClientError: The error.
    """
    return ClientError(
        {"Error": {"Code": code, "Message": message or code, **details}},
        operation,
    )


class FakeBucket:
    """In-memory bucket state shared by all fake clients of a session."""

    def __init__(
        self,
        name: str = BUCKET_NAME,
        region: Optional[str] = None,
        page_size: int = 1000,
        latency_s: float = 0.0,
    ) -> None:
        self.name: str = name
        self.region: Optional[str] = region
        self.page_size: int = page_size
        self.latency_s: float = latency_s
        self.objects: Dict[str, Dict[str, Any]] = {}
        self.put_calls: List[Dict[str, Any]] = []
        self.deleted_keys: List[str] = []
        self.fail_puts: Set[str] = set()
        self.fail_deletes: Set[str] = set()
        self.fail_list_at_page: Optional[int] = None
        self.in_flight: int = 0
        self.peak_in_flight: int = 0
        self.in_flight_at_page_request: List[int] = []

    def add_objects(self, keys: Iterable[str]) -> None:
        """Pre-populate the bucket with objects."""
        for key in keys:
            self.objects[key] = {"Bucket": self.name, "Key": key, "Body": b""}

    @asynccontextmanager
    async def operation(self) -> AsyncIterator[None]:
        """Count an operation as in flight while it runs."""
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.latency_s)
            yield
        finally:
            self.in_flight -= 1


class FakePaginator:
    """Mimics the async `list_objects_v2` paginator."""

    def __init__(self, bucket: FakeBucket) -> None:
        self._bucket: FakeBucket = bucket

    async def paginate(self, Bucket: str, Prefix: str = "") -> AsyncIterator[Dict[str, Any]]:
        keys: List[str] = sorted(k for k in self._bucket.objects if k.startswith(Prefix))
        starts: List[int] = list(range(0, len(keys), self._bucket.page_size)) or [0]
        for page_number, start in enumerate(starts):
            self._bucket.in_flight_at_page_request.append(self._bucket.in_flight)
            if page_number == self._bucket.fail_list_at_page:
                raise make_client_error("AccessDenied", "ListObjectsV2")
            chunk: List[str] = keys[start : start + self._bucket.page_size]
            if not chunk:
                yield {"KeyCount": 0}
                return
            yield {"KeyCount": len(chunk), "Contents": [{"Key": k} for k in chunk]}


class FakeS3Client:
    """A region-bound fake of the aiobotocore S3 client."""

    def __init__(self, bucket: FakeBucket, region: Optional[str]) -> None:
        self._bucket: FakeBucket = bucket
        self.region: Optional[str] = region

    async def put_object(self, **params: Any) -> Dict[str, Any]:
        self._bucket.put_calls.append({"region": self.region, **params})
        if self._bucket.region is not None and self.region != self._bucket.region:
            raise make_client_error(
                "PermanentRedirect",
                "PutObject",
                "The bucket you are attempting to access must be addressed "
                "using the specified endpoint.",
                Bucket=params["Bucket"],
                Endpoint=f"{params['Bucket']}.s3-{self._bucket.region}.amazonaws.com",
            )
        async with self._bucket.operation():
            if params["Key"] in self._bucket.fail_puts:
                raise make_client_error("AccessDenied", "PutObject", "Access Denied")
            self._bucket.objects[params["Key"]] = params
        return {"ETag": '"etag"'}

    async def delete_object(self, Bucket: str, Key: str) -> Dict[str, Any]:
        async with self._bucket.operation():
            if Key in self._bucket.fail_deletes:
                raise make_client_error("AccessDenied", "DeleteObject", "Access Denied")
            self._bucket.objects.pop(Key, None)
            self._bucket.deleted_keys.append(Key)
        return {}

    def get_paginator(self, operation_name: str) -> FakePaginator:
        assert operation_name == "list_objects_v2"
        return FakePaginator(self._bucket)


class FakeSession:
    """Mimics `AioSession.create_client` for the fake bucket."""

    def __init__(self, bucket: FakeBucket) -> None:
        self.bucket: FakeBucket = bucket
        self.client_kwargs: List[Dict[str, Any]] = []
        self.closed_clients: int = 0

    @property
    def created_regions(self) -> List[Optional[str]]:
        return [kwargs.get("region_name") for kwargs in self.client_kwargs]

    @asynccontextmanager
    async def create_client(
        self, service_name: str, **kwargs: Any
    ) -> AsyncIterator[FakeS3Client]:
        assert service_name == "s3"
        self.client_kwargs.append(kwargs)
        try:
            yield FakeS3Client(self.bucket, kwargs.get("region_name"))
        finally:
            self.closed_clients += 1


@pytest.fixture(autouse=True)
def _no_endpoint_override(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a developer's S3_SPA_UPLOAD_ENDPOINT_URL out of the unit tests."""
    monkeypatch.delenv("S3_SPA_UPLOAD_ENDPOINT_URL", raising=False)


@pytest.fixture(scope="function")
def fake_bucket() -> FakeBucket:
    """Provide an empty in-memory bucket."""
    return FakeBucket()


@pytest.fixture(scope="function")
def fake_session(fake_bucket: FakeBucket) -> FakeSession:
    """Provide a fake session bound to `fake_bucket`."""
    return FakeSession(fake_bucket)


@pytest.fixture(scope="function")
def make_config() -> Callable[..., Config]:
    """
    Provide a factory for configurations targeting the fake bucket.

    The factory accepts `SyncOptions` fields as keyword arguments.
    """

    def _factory(**options: Any) -> Config:
        return Config(s3=S3Config(bucket=BUCKET_NAME), options=SyncOptions(**options))

    return _factory


@pytest.fixture(scope="function")
def make_tree(tmp_path: Path) -> Callable[[Dict[str, bytes]], Path]:
    """
    Provide a factory that writes files below a fresh directory.

    The factory takes a mapping of relative POSIX paths to contents and
    returns the directory.
    """
    counter: List[int] = [0]

    def _factory(files: Dict[str, bytes]) -> Path:
        counter[0] += 1
        root: Path = tmp_path / f"tree_{counter[0]}"
        root.mkdir()
        for relative, content in files.items():
            path: Path = root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
        return root

    return _factory


@pytest.fixture(scope="function")
def spa_dir(make_tree: Callable[[Dict[str, bytes]], Path]) -> Path:
    """Provide a minimal SPA build: index.html, app.js and logo.png."""
    return make_tree(
        {
            "index.html": b"<!doctype html><script src=app.js></script>",
            "app.js": b"console.log('hello');",
            "logo.png": b"\x89PNG\r\n\x1a\n",
        }
    )
