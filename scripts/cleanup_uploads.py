"""
Limpieza de blobs de uploads cuya metadata ya expiro.

La retencion (UPLOAD_METADATA_TTL, 1 ano por defecto) aplica a la
metadata en el KV store, NO al blob. Cuando la metadata vence, el blob
queda sin dueno: este script lo elimina. Tambien recoge blobs huerfanos
de uploads cuya escritura de metadata fallo.

Para no borrar un upload que esta en curso (blob escrito, metadata a
punto de escribirse), solo se consideran blobs con mas de MIN_AGE.

Se ejecuta periodicamente, por ejemplo una vez al dia:
    0 3 * * * cd /ruta/proyecto && python scripts/cleanup_uploads.py

Requisitos:
    - Credenciales del bucket (AWS o R2) en el entorno
    - REDIS_URL apuntando al mismo KV store que el gateway
"""

import asyncio
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import structlog

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "backend"))

from gateway.config import settings  # noqa: E402
from gateway.log import configure_logging  # noqa: E402
from gateway.services.blob_store import BlobStore  # noqa: E402
from gateway.services.kv_store import build_kv_store  # noqa: E402
from gateway.services.uploads import UploadService  # noqa: E402

logger = structlog.get_logger("cleanup_uploads")

MIN_AGE = timedelta(hours=1)


async def cleanup(blob_store, uploads: UploadService, prefix: str, now: datetime | None = None) -> int:
    """
    Recorre los blobs bajo `prefix` y borra los que no tienen metadata.

    Retorna:
        int: cantidad de blobs eliminados.
    """
    now = now or datetime.now(timezone.utc)
    removed = 0
    paginator = blob_store.client.get_paginator("list_objects_v2")
    for page in paginator.paginate(Bucket=blob_store.bucket, Prefix=f"{prefix}/"):
        for obj in page.get("Contents", []):
            if now - obj["LastModified"] < MIN_AGE:
                continue
            if await uploads.get_record(obj["Key"]) is not None:
                continue
            blob_store.delete(obj["Key"])
            removed += 1
            logger.info("cleanup.deleted", key=obj["Key"])
    return removed


async def main() -> None:
    configure_logging(settings.LOG_LEVEL, settings.LOG_JSON)
    if not settings.REDIS_URL:
        # Con el store en memoria no hay metadata que consultar: se
        # borraria TODO. Abortamos.
        logger.error("cleanup.no_kv_store", hint="set REDIS_URL")
        raise SystemExit(1)

    kv_store = build_kv_store(settings)
    try:
        blob_store = BlobStore(settings)
        uploads = UploadService(blob_store, kv_store, settings)
        removed = await cleanup(blob_store, uploads, settings.UPLOAD_PREFIX)
    finally:
        await kv_store.close()
    logger.info("cleanup.finished", removed=removed)


if __name__ == "__main__":
    asyncio.run(main())
