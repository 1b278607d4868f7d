"""
Esquemas (schemas) de entrada y salida de la API, con Pydantic.

Todas las respuestas exitosas usan el mismo envelope:

    {"success": true, "data": {...}}

y todos los errores:

    {"success": false, "error": "mensaje"}

Asi el frontend siempre sabe donde buscar el resultado o el error, sin
importar el endpoint.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class HealthResponse(BaseModel):
    """GET /health. `timestamp` es ISO 8601 en UTC."""
    status: str
    timestamp: str
    version: str


class UploadData(BaseModel):
    """
    Datos de un upload exitoso.

    Atributos:
        filename (str): Key generada en el blob store
            (uploads/{epoch_millis}-{random_id}.{ext}).
        url (str): URL publica servida por /cdn/images.
        size (int): Tamano en bytes.
        type (str): Tipo MIME declarado (y verificado por magic bytes).
    """
    filename: str
    url: str
    size: int
    type: str


class UploadResponse(BaseModel):
    success: bool = True
    data: UploadData


class CacheSetRequest(BaseModel):
    """
    Body de PUT /api/v1/cache/{key}.

    `value` es cualquier JSON (objeto, lista, string, numero, null).
    `ttl` en segundos; si se omite se usa CACHE_DEFAULT_TTL.
    """
    value: Any = None
    ttl: int | None = Field(default=None, gt=0)


class CachePurgeRequest(BaseModel):
    """Prefijo ("uploads:") o glob ("uploads:*", "img-?")."""
    pattern: str = Field(min_length=1)


class CantonResponse(BaseModel):
    # El frontend espera camelCase: postalCode, taxRate.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    postal_code: str
    canton: str
    tax_rate: float
    language: str


class ErrorResponse(BaseModel):
    success: bool = False
    error: str


def error_responses(*status_codes: int) -> dict:
    """`responses=` para el OpenAPI: todos los errores usan el mismo sobre."""
    return {code: {"model": ErrorResponse} for code in status_codes}
