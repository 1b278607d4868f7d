"""
Servicio de uploads: genera la key, escribe el blob y luego la metadata.

Orden de escritura y consistencia
---------------------------------
    1. Blob store:  uploads/{epoch_millis}-{random_id}.{ext}
    2. KV store:    upload:{key} -> JSON con la metadata (TTL 1 ano)

Blob PRIMERO y metadata DESPUES: si el blob falla, no existe metadata que
apunte a un archivo inexistente. Si el blob se escribio pero la metadata
falla, borramos la metadata que pudiera haber quedado y despues el blob
(compensacion) y el caller ve UN solo error. El
cliente nunca recibe "exito" cuando algun paso fallo.

Unicidad de la key
------------------
epoch_millis + secrets.token_hex(16) (128 bits aleatorios de una fuente
criptografica). Dentro del mismo milisegundo hay 2^128 nombres posibles,
asi que la probabilidad de colision es despreciable.
"""

import asyncio
import json
import secrets
import time
from dataclasses import asdict, dataclass

import structlog

from gateway.errors import StorageError
from gateway.services.guard import guarded
from gateway.services.validator import MIME_TO_EXT

logger = structlog.get_logger(__name__)

METADATA_PREFIX = "upload:"


@dataclass(frozen=True)
class UploadRecord:
    filename: str
    original_name: str
    content_type: str
    size: int
    uploader: str
    uploaded_at: int


def generate_key(prefix: str, content_type: str, now_ms: int | None = None) -> str:
    now_ms = int(time.time() * 1000) if now_ms is None else now_ms
    ext = MIME_TO_EXT.get(content_type, "bin")
    return f"{prefix}/{now_ms}-{secrets.token_hex(16)}.{ext}"


class UploadService:
    def __init__(self, blob_store, kv_store, settings):
        self.blob_store = blob_store
        self.kv_store = kv_store
        self.prefix = settings.UPLOAD_PREFIX
        self.metadata_ttl = settings.UPLOAD_METADATA_TTL
        self.timeout = settings.STORE_TIMEOUT_SECONDS

    async def store(self, data: bytes, content_type: str, original_name: str,
                    uploader: str) -> tuple[UploadRecord, str]:
        """
        Persiste un upload YA validado.

        Retorna:
            (UploadRecord, url_publica)

        Raises:
            StorageError: si cualquiera de las dos escrituras falla.
        """
        uploaded_at = int(time.time() * 1000)
        key = generate_key(self.prefix, content_type, uploaded_at)
        record = UploadRecord(
            filename=key,
            original_name=original_name,
            content_type=content_type,
            size=len(data),
            uploader=uploader,
            uploaded_at=uploaded_at,
        )

        # boto3 es sincrono: lo corremos en un thread para no bloquear el event loop.
        await guarded(
            asyncio.to_thread(self.blob_store.put, key, data, content_type,
                              {"uploader": uploader, "original-name": original_name}),
            operation="blob.put", timeout=self.timeout, shield=True,
        )

        try:
            await guarded(
                self.kv_store.set(f"{METADATA_PREFIX}{key}", json.dumps(asdict(record)),
                                  ttl=self.metadata_ttl),
                operation="upload.metadata", timeout=self.timeout, shield=True,
            )
        except StorageError:
            logger.error("upload.metadata_failed", key=key)
            await self._rollback(key)
            raise

        logger.info("upload.stored", key=key, size=record.size, type=content_type, uploader=uploader)
        return record, self.blob_store.url_for(key)

    async def _rollback(self, key: str) -> None:
        # guarded() ya espero o cancelo la escritura de metadata, asi que no
        # puede aparecer despues de este borrado. Metadata PRIMERO: si no se
        # puede borrar, el blob se queda y la metadata nunca apunta a la nada.
        try:
            await guarded(self.kv_store.delete(f"{METADATA_PREFIX}{key}"),
                          operation="upload.metadata_delete", timeout=self.timeout, shield=True)
        except StorageError:
            logger.error("upload.rollback_failed", key=key)
            return
        try:
            await guarded(asyncio.to_thread(self.blob_store.delete, key),
                          operation="blob.delete", timeout=self.timeout, shield=True)
        except StorageError:
            # El blob queda huerfano; scripts/cleanup_uploads.py lo recoge
            # porque no tiene metadata.
            logger.error("upload.orphaned_blob", key=key)

    async def get_record(self, key: str) -> UploadRecord | None:
        raw = await guarded(self.kv_store.get(f"{METADATA_PREFIX}{key}"),
                            operation="upload.metadata_get", timeout=self.timeout)
        return UploadRecord(**json.loads(raw)) if raw else None
