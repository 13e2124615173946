"""
Pytest configuration: temp SQLite databases, an in-memory S3 client, tokens
"""

import io
import os
import tempfile
import uuid
from datetime import datetime, timezone

_TMP_DIR = tempfile.mkdtemp(prefix="dashboard-api-tests-")

# Settings are read at import time, so the environment is set up first
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{os.path.join(_TMP_DIR, 'app.db')}")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("USAGE_SCHEDULER_ENABLED", "false")
os.environ.setdefault("API_LOGGING_ENABLED", "true")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from botocore.exceptions import ClientError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from dashboard_api.core.db import init_models
from dashboard_api.core.events import ChangeDispatcher
from dashboard_api.core.security import create_access_token
from dashboard_api.domains.storage.services import StorageService

MB = 1024 * 1024


class FakePaginator:
    """list_objects_v2 paginator returning a few keys per page"""

    def __init__(self, client, page_size=2):
        self.client = client
        self.page_size = page_size

    def paginate(self, Bucket, Prefix=""):
        keys = sorted(key for key in self.client.objects if key.startswith(Prefix))
        if not keys:
            yield {"KeyCount": 0}
            return
        for start in range(0, len(keys), self.page_size):
            yield {
                "Contents": [
                    {
                        "Key": key,
                        "Size": len(self.client.objects[key]["Body"]),
                        "LastModified": self.client.objects[key]["LastModified"],
                    }
                    for key in keys[start:start + self.page_size]
                ]
            }


class FakeS3Client:
    """The subset of the boto3 S3 client the storage service calls"""

    def __init__(self):
        self.objects = {}
        self.buckets = set()
        self.head_calls = []
        self.fail_uploads = False

    def _missing(self, operation):
        raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, operation)

    def list_buckets(self):
        return {"Buckets": [{"Name": name} for name in sorted(self.buckets)]}

    def create_bucket(self, Bucket):
        self.buckets.add(Bucket)

    def upload_fileobj(self, Fileobj, Bucket, Key, ExtraArgs=None, Callback=None):
        if self.fail_uploads:
            raise ClientError({"Error": {"Code": "500", "Message": "Internal Error"}}, "PutObject")
        body = b""
        while True:
            chunk = Fileobj.read(256 * 1024)
            if not chunk:
                break
            body += chunk
            if Callback:
                Callback(len(chunk))
        extra = ExtraArgs or {}
        self.objects[Key] = {
            "Body": body,
            "ContentType": extra.get("ContentType"),
            "Metadata": dict(extra.get("Metadata") or {}),
            "LastModified": datetime.now(timezone.utc),
        }

    def put(self, key, size, content_type="application/octet-stream", metadata=None):
        self.objects[key] = {
            "Body": b"\0" * size,
            "ContentType": content_type,
            "Metadata": dict(metadata or {}),
            "LastModified": datetime.now(timezone.utc),
        }

    def head_object(self, Bucket, Key):
        self.head_calls.append(Key)
        if Key not in self.objects:
            self._missing("HeadObject")
        obj = self.objects[Key]
        return {
            "ContentLength": len(obj["Body"]),
            "ContentType": obj["ContentType"],
            "Metadata": dict(obj["Metadata"]),
            "LastModified": obj["LastModified"],
        }

    def copy_object(self, Bucket, Key, CopySource, Metadata=None, MetadataDirective="COPY", ContentType=None):
        source = self.objects.get(CopySource["Key"])
        if source is None:
            self._missing("CopyObject")
        copied = dict(source)
        if MetadataDirective == "REPLACE":
            copied["Metadata"] = dict(Metadata or {})
            copied["ContentType"] = ContentType or source["ContentType"]
        self.objects[Key] = copied
        return {}

    def delete_object(self, Bucket, Key):
        self.objects.pop(Key, None)
        return {}

    def get_paginator(self, operation_name):
        assert operation_name == "list_objects_v2"
        return FakePaginator(self)

    def generate_presigned_url(self, ClientMethod, Params=None, ExpiresIn=3600):
        return f"https://files.test/{Params['Bucket']}/{Params['Key']}?expires={ExpiresIn}"


class FakeClientFactory:
    def __init__(self, client):
        self.client = client

    def create_s3_client(self):
        return self.client


@pytest.fixture
async def engine():
    engine = create_async_engine(f"sqlite+aiosqlite:///{os.path.join(_TMP_DIR, uuid.uuid4().hex)}.db")
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def dispatcher():
    return ChangeDispatcher()


@pytest.fixture
def s3_client():
    return FakeS3Client()


@pytest.fixture
def storage(s3_client, dispatcher):
    return StorageService(FakeClientFactory(s3_client), "test-bucket", dispatcher=dispatcher)


@pytest.fixture
def make_file():
    def _make(size, fill=b"x"):
        return io.BytesIO(fill * size)
    return _make


@pytest.fixture
def token():
    return create_access_token({"sub": "admin-1", "email": "admin@example.com"})


@pytest.fixture
def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(monkeypatch, s3_client):
    """TestClient running the app lifespan against the in-memory object store"""
    from fastapi.testclient import TestClient

    import dashboard_api.main as main

    monkeypatch.setattr(
        main,
        "storage_service_factory",
        lambda dispatcher=None: StorageService(FakeClientFactory(s3_client), "test-bucket", dispatcher=dispatcher),
    )
    with TestClient(main.app) as test_client:
        yield test_client
