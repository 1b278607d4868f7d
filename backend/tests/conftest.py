import io

import boto3
import pytest
from fastapi.testclient import TestClient
from moto import mock_aws
from PIL import Image

from gateway.auth import issue_token
from gateway.config import Settings
from gateway.limiter import limiter
from gateway.main import create_app
from gateway.services.blob_store import BlobStore
from gateway.services.kv_store import MemoryKVStore

AUTH_SECRET = "test-secret"


def make_image(fmt: str = "PNG", size=(100, 100), mode: str = "RGB") -> bytes:
    buffer = io.BytesIO()
    Image.new(mode, size, color="red").save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def settings():
    return Settings(
        AUTH_SECRET=AUTH_SECRET,
        ALLOWED_IMAGE_TYPES=["image/png", "image/jpeg"],
        MAX_UPLOAD_SIZE=10 * 1024 * 1024,
        RATE_LIMIT_MAX_REQUESTS=5,
        RATE_LIMIT_WINDOW_SECONDS=60,
        RATE_LIMIT_SWEEP_PROBABILITY=0.0,
        PUBLIC_BASE_URL="https://cdn.example.test",
        REDIS_URL="",
        STORE_TIMEOUT_SECONDS=2,
    )


@pytest.fixture
def s3_client(settings):
    """Provide a mocked S3 client with a test bucket."""
    with mock_aws():
        client = boto3.client("s3", region_name=settings.AWS_REGION)
        client.create_bucket(Bucket=settings.S3_BUCKET)
        yield client


@pytest.fixture
def kv_store():
    return MemoryKVStore()


@pytest.fixture
def blob_store(settings, s3_client):
    return BlobStore(settings, client=s3_client)


@pytest.fixture(autouse=True)
def reset_route_limits():
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
def app(settings, kv_store, blob_store):
    return create_app(settings, kv_store=kv_store, blob_store=blob_store)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {issue_token('admin@foodtruck.test', AUTH_SECRET)}"}


@pytest.fixture
def png_bytes():
    return make_image("PNG")


@pytest.fixture
def jpeg_bytes():
    return make_image("JPEG")
