"""
Rutas del cache (todas requieren autenticacion).

    GET    /api/v1/cache/{key}    -> 200 con el valor, 404 si es miss
    PUT    /api/v1/cache/{key}    -> guarda {value, ttl?}
    DELETE /api/v1/cache/{key}    -> borra (idempotente)
    POST   /api/v1/cache/purge    -> borra por prefijo o glob, devuelve cuantas

Un metodo no registrado (ej. PATCH /api/v1/cache/foo) responde 404,
igual que una ruta inexistente (ver main.py).
"""

from fastapi import APIRouter, Depends
from starlette.requests import Request

from gateway.auth import require_principal
from gateway.dependencies import get_cache
from gateway.errors import NotFound
from gateway.limiter import bind_route_settings, limiter, route_limits_disabled, route_quota
from gateway.models.schemas import CachePurgeRequest, CacheSetRequest, error_responses
from gateway.services.cache import MISS

router = APIRouter(
    dependencies=[Depends(require_principal)],
    responses=error_responses(401, 403, 500),
)


@router.post("/api/v1/cache/purge", responses=error_responses(400, 429),
             dependencies=[Depends(bind_route_settings)])
@limiter.limit(route_quota("PURGE_ROUTE_LIMIT"), exempt_when=route_limits_disabled)
async def purge_cache(request: Request, body: CachePurgeRequest, cache=Depends(get_cache)):
    removed = await cache.purge(body.pattern)
    return {"success": True, "data": {"pattern": body.pattern, "removed": removed}}


@router.get("/api/v1/cache/{key}", responses=error_responses(404))
async def get_cached(key: str, cache=Depends(get_cache)):
    value = await cache.get(key)
    if value is MISS:
        raise NotFound(f"Cache miss for '{key}'")
    return {"success": True, "data": {"key": key, "value": value}}


@router.put("/api/v1/cache/{key}", responses=error_responses(400))
async def put_cached(key: str, body: CacheSetRequest, cache=Depends(get_cache)):
    ttl = await cache.set(key, body.value, body.ttl)
    return {"success": True, "data": {"key": key, "ttl": ttl}}


@router.delete("/api/v1/cache/{key}")
async def delete_cached(key: str, cache=Depends(get_cache)):
    deleted = await cache.delete(key)
    return {"success": True, "data": {"key": key, "deleted": deleted}}
