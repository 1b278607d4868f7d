"""
Ruta de subida de imagenes: POST /api/v1/images/upload

Flujo:
    1. Autenticacion (dependencia require_principal) -> 401 si falla
    2. Cuota por ruta (SlowAPI, UPLOAD_ROUTE_LIMIT) -> 429 si se excede
    3. Leer a lo sumo MAX_UPLOAD_SIZE + 1 bytes del campo `file`
    4. Validar (archivo presente, tipo permitido, tamano, magic bytes) -> 400
    5. Blob store + metadata en KV store -> 500 si algo falla
    6. Responder {success, data: {filename, url, size, type}}

Los pasos 1-4 corren ANTES de cualquier escritura: un upload rechazado no
deja rastro en ningun store.
"""

import os

from fastapi import APIRouter, Depends, File, UploadFile
from starlette.requests import Request

from gateway.auth import require_principal
from gateway.dependencies import get_settings, get_upload_service
from gateway.errors import ValidationFailed
from gateway.limiter import bind_route_settings, limiter, route_limits_disabled, route_quota
from gateway.models.schemas import UploadData, UploadResponse, error_responses
from gateway.services.validator import validate_upload

router = APIRouter()


@router.post("/api/v1/images/upload", response_model=UploadResponse,
             responses=error_responses(400, 401, 403, 429, 500),
             dependencies=[Depends(bind_route_settings)])
@limiter.limit(route_quota("UPLOAD_ROUTE_LIMIT"), exempt_when=route_limits_disabled)
async def upload_image(
    request: Request,
    file: UploadFile | None = File(None),
    principal: str = Depends(require_principal),
    settings=Depends(get_settings),
    uploads=Depends(get_upload_service),
):
    """
    Sube una imagen.

    El campo `file` es opcional a nivel de FastAPI para que un request
    sin archivo reciba NUESTRO 400 ("No file provided") en vez del 422
    generico de validacion.

    Leemos MAX_UPLOAD_SIZE + 1 bytes: si llegan mas de MAX_UPLOAD_SIZE,
    el archivo es demasiado grande y nunca cargamos el resto en memoria.
    """
    data = await file.read(settings.MAX_UPLOAD_SIZE + 1) if file is not None else None
    declared_type = file.content_type if file is not None else None

    result = validate_upload(declared_type, data, settings)
    if not result.ok:
        raise ValidationFailed.from_result(result)

    # os.path.basename() descarta rutas ("../../etc/passwd" -> "passwd").
    original_name = os.path.basename(file.filename or "unknown")
    record, url = await uploads.store(data, result.mime_type, original_name, principal)

    return UploadResponse(
        data=UploadData(filename=record.filename, url=url, size=record.size, type=record.content_type)
    )
