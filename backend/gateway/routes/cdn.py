"""
Ruta de CDN: GET /cdn/images/{path}

`{path:path}` captura el resto de la URL, incluidas las barras:
    /cdn/images/uploads/1700000000000-ab12.png -> path = "uploads/1700000000000-ab12.png"

Sin parametros se devuelve el blob tal cual. Con ?w=, ?h=, ?q= o
?format= se genera una variante con Pillow (ver image_transform.py).

Las keys son inmutables (cada upload genera una nueva), asi que la
respuesta se puede cachear "para siempre" en navegadores y en el borde:
    Cache-Control: public, max-age=31536000, immutable
"""

import asyncio

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from gateway.dependencies import get_blob_store, get_settings
from gateway.errors import NotFound, ValidationFailed
from gateway.models.schemas import error_responses
from gateway.services.guard import guarded
from gateway.services.image_transform import TransformError, TransformOptions, transform_image

router = APIRouter()


@router.get("/cdn/images/{path:path}", responses=error_responses(400, 404, 500))
async def serve_image(
    path: str,
    w: int | None = None,
    h: int | None = None,
    q: int | None = None,
    format: str | None = None,
    settings=Depends(get_settings),
    blob_store=Depends(get_blob_store),
):
    # Rechazamos keys con ".." o absolutas antes de tocar el bucket.
    if not path or path.startswith("/") or ".." in path.split("/"):
        raise ValidationFailed("Invalid image path")

    options = TransformOptions(width=w, height=h, quality=q, format=format)
    try:
        options.validate(settings.CDN_MAX_DIMENSION)
    except TransformError as exc:
        raise ValidationFailed(str(exc)) from exc

    found = await guarded(asyncio.to_thread(blob_store.get, path), operation="blob.get",
                          timeout=settings.STORE_TIMEOUT_SECONDS)
    if found is None:
        raise NotFound("Image not found")
    data, content_type = found

    if not options.is_identity:
        try:
            # Pillow es CPU-bound: fuera del event loop.
            data, content_type = await asyncio.to_thread(transform_image, data, options)
        except TransformError as exc:
            raise ValidationFailed(str(exc)) from exc

    return Response(
        content=data,
        media_type=content_type,
        headers={
            "Cache-Control": f"public, max-age={settings.CDN_CACHE_MAX_AGE}, immutable",
            "X-Content-Type-Options": "nosniff",
        },
    )
