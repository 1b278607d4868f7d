import asyncio
import json
import re
from unittest.mock import patch

import pytest
from botocore.exceptions import ClientError
from fastapi.testclient import TestClient

from gateway.errors import StoreTimeout
from gateway.main import create_app
from gateway.services.kv_store import MemoryKVStore
from gateway.services.uploads import UploadService

URL = "/api/v1/images/upload"
KEY_PATTERN = re.compile(r"^uploads/\d{13}-[0-9a-f]{32}\.png$")


def bucket_keys(s3_client, settings):
    return [obj["Key"] for obj in s3_client.list_objects_v2(Bucket=settings.S3_BUCKET).get("Contents", [])]


def test_upload_valid_png(client, auth_headers, png_bytes, s3_client, kv_store, settings):
    response = client.post(URL, headers=auth_headers, files={"file": ("truck.png", png_bytes, "image/png")})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    data = body["data"]
    assert KEY_PATTERN.match(data["filename"])
    assert data["url"] == f"https://cdn.example.test/cdn/images/{data['filename']}"
    assert data["size"] == len(png_bytes)
    assert data["type"] == "image/png"

    stored = s3_client.get_object(Bucket=settings.S3_BUCKET, Key=data["filename"])
    assert stored["ContentType"] == "image/png"
    assert stored["Body"].read() == png_bytes

    record = json.loads(kv_store._data[f"upload:{data['filename']}"][0])
    assert record["original_name"] == "truck.png"
    assert record["uploader"] == "admin@foodtruck.test"
    assert record["size"] == len(png_bytes)


def test_upload_sanitizes_original_name(client, auth_headers, png_bytes, kv_store):
    response = client.post(URL, headers=auth_headers,
                           files={"file": ("../../etc/passwd.png", png_bytes, "image/png")})
    key = response.json()["data"]["filename"]
    assert json.loads(kv_store._data[f"upload:{key}"][0])["original_name"] == "passwd.png"


def test_generated_names_are_unique(client, auth_headers, png_bytes):
    names = {
        client.post(URL, headers=auth_headers, files={"file": ("a.png", png_bytes, "image/png")}).json()["data"]["filename"]
        for _ in range(5)
    }
    assert len(names) == 5


def test_upload_requires_auth(client, png_bytes, s3_client, settings):
    response = client.post(URL, files={"file": ("truck.png", png_bytes, "image/png")})
    assert response.status_code == 401
    assert response.json() == {"success": False, "error": "unauthorized"}
    assert bucket_keys(s3_client, settings) == []


def test_upload_rejects_no_file(client, auth_headers):
    response = client.post(URL, headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["error"] == "No file provided"


def test_upload_rejects_svg_without_writing(client, auth_headers, s3_client, kv_store, settings):
    svg = b"<svg xmlns='http://www.w3.org/2000/svg'></svg>"
    response = client.post(URL, headers=auth_headers, files={"file": ("logo.svg", svg, "image/svg+xml")})

    assert response.status_code == 400
    assert "not allowed" in response.json()["error"]
    assert bucket_keys(s3_client, settings) == []
    assert len(kv_store) == 0


def test_upload_rejects_oversized_before_any_write(client, auth_headers, blob_store, kv_store):
    data = b"x" * (11 * 1024 * 1024)
    with patch.object(blob_store, "put") as mock_put:
        response = client.post(URL, headers=auth_headers, files={"file": ("big.png", data, "image/png")})

    assert response.status_code == 400
    assert "exceeds" in response.json()["error"]
    mock_put.assert_not_called()
    assert len(kv_store) == 0


def test_blob_failure_returns_500_without_metadata(client, auth_headers, png_bytes, blob_store, kv_store):
    error = ClientError({"Error": {"Code": "InternalError", "Message": "boom"}}, "PutObject")
    with patch.object(blob_store, "put", side_effect=error):
        response = client.post(URL, headers=auth_headers, files={"file": ("a.png", png_bytes, "image/png")})

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Internal storage error"}
    assert len(kv_store) == 0


def test_metadata_failure_removes_blob(client, auth_headers, png_bytes, kv_store, s3_client, settings):
    with patch.object(kv_store, "set", side_effect=ConnectionError("kv down")):
        response = client.post(URL, headers=auth_headers, files={"file": ("a.png", png_bytes, "image/png")})

    assert response.status_code == 500
    assert response.json()["success"] is False
    assert bucket_keys(s3_client, settings) == []


class SlowMetadataStore(MemoryKVStore):
    """KV store whose writes land `delay` seconds after being issued."""

    def __init__(self, delay):
        super().__init__()
        self.delay = delay

    async def set(self, key, value, ttl=None):
        await asyncio.sleep(self.delay)
        await super().set(key, value, ttl)


def store_with_slow_metadata(blob_store, settings, png_bytes, delay):
    settings.STORE_TIMEOUT_SECONDS = 0.3
    kv_store = SlowMetadataStore(delay)
    uploads = UploadService(blob_store, kv_store, settings)

    async def scenario():
        with pytest.raises(StoreTimeout):
            await uploads.store(png_bytes, "image/png", "a.png", "admin@foodtruck.test")
        # Anything still in flight would land within this pause.
        await asyncio.sleep(delay + 0.1)

    asyncio.run(scenario())
    return kv_store


def test_timed_out_metadata_write_is_cancelled(blob_store, settings, s3_client, png_bytes):
    kv_store = store_with_slow_metadata(blob_store, settings, png_bytes, delay=1.0)

    assert asyncio.run(kv_store.keys("upload:*")) == []
    assert bucket_keys(s3_client, settings) == []


def test_late_metadata_write_is_rolled_back(blob_store, settings, s3_client, png_bytes):
    # Lands after the timeout but inside the grace period, before the rollback.
    kv_store = store_with_slow_metadata(blob_store, settings, png_bytes, delay=0.45)

    assert asyncio.run(kv_store.keys("upload:*")) == []
    assert bucket_keys(s3_client, settings) == []


def test_upload_quota_comes_from_app_settings(settings, kv_store, blob_store, auth_headers, png_bytes):
    settings.UPLOAD_ROUTE_LIMIT = "2/minute"
    client = TestClient(create_app(settings, kv_store=kv_store, blob_store=blob_store))

    statuses = [
        client.post(URL, headers=auth_headers, files={"file": ("a.png", png_bytes, "image/png")}).status_code
        for _ in range(3)
    ]
    assert statuses == [200, 200, 429]


def test_upload_quota_can_be_disabled_per_app(settings, kv_store, blob_store, auth_headers, png_bytes):
    settings.UPLOAD_ROUTE_LIMIT = "1/minute"
    settings.ROUTE_LIMITS_ENABLED = False
    client = TestClient(create_app(settings, kv_store=kv_store, blob_store=blob_store))

    statuses = [
        client.post(URL, headers=auth_headers, files={"file": ("a.png", png_bytes, "image/png")}).status_code
        for _ in range(3)
    ]
    assert statuses == [200, 200, 200]
