import asyncio
from datetime import datetime, timedelta, timezone

from cleanup_uploads import cleanup
from gateway.services.uploads import UploadService


def bucket_keys(s3_client, settings):
    return sorted(obj["Key"] for obj in s3_client.list_objects_v2(Bucket=settings.S3_BUCKET).get("Contents", []))


def seed(blob_store, kv_store, settings, png_bytes):
    """One upload with metadata plus one orphan blob. Returns (uploads, kept_key, orphan_key)."""
    uploads = UploadService(blob_store, kv_store, settings)
    record, _ = asyncio.run(uploads.store(png_bytes, "image/png", "truck.png", "admin@foodtruck.test"))
    orphan = "uploads/1700000000000-orphan.png"
    blob_store.put(orphan, png_bytes, "image/png", {})
    return uploads, record.filename, orphan


def test_deletes_old_blobs_without_metadata(blob_store, kv_store, settings, s3_client, png_bytes):
    uploads, kept, orphan = seed(blob_store, kv_store, settings, png_bytes)
    later = datetime.now(timezone.utc) + timedelta(hours=2)

    removed = asyncio.run(cleanup(blob_store, uploads, settings.UPLOAD_PREFIX, now=later))

    assert removed == 1
    assert bucket_keys(s3_client, settings) == [kept]


def test_skips_recent_blobs(blob_store, kv_store, settings, s3_client, png_bytes):
    uploads, kept, orphan = seed(blob_store, kv_store, settings, png_bytes)

    # An upload in progress has its blob but not yet its metadata.
    removed = asyncio.run(cleanup(blob_store, uploads, settings.UPLOAD_PREFIX))

    assert removed == 0
    assert bucket_keys(s3_client, settings) == sorted([kept, orphan])


def test_only_scans_the_upload_prefix(blob_store, kv_store, settings, s3_client, png_bytes):
    uploads = UploadService(blob_store, kv_store, settings)
    blob_store.put("other/logo.png", png_bytes, "image/png", {})
    later = datetime.now(timezone.utc) + timedelta(hours=2)

    assert asyncio.run(cleanup(blob_store, uploads, settings.UPLOAD_PREFIX, now=later)) == 0
    assert bucket_keys(s3_client, settings) == ["other/logo.png"]
