"""
Health checks.

    GET /health        -> liveness: el proceso responde.
    GET /health/ready  -> readiness: ademas, el KV store contesta.

Los load balancers usan /health para decidir si reiniciar la instancia y
/health/ready para decidir si mandarle trafico.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from gateway.dependencies import get_kv_store, get_settings
from gateway.errors import StorageError
from gateway.models.schemas import HealthResponse
from gateway.services.guard import guarded

router = APIRouter()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/health", response_model=HealthResponse)
async def health(settings=Depends(get_settings)):
    return HealthResponse(status="ok", timestamp=_now_iso(), version=settings.APP_VERSION)


@router.get("/health/ready")
async def ready(settings=Depends(get_settings), kv_store=Depends(get_kv_store)):
    try:
        await guarded(kv_store.ping(), operation="kv.ping", timeout=settings.STORE_TIMEOUT_SECONDS)
    except StorageError:
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "timestamp": _now_iso(), "version": settings.APP_VERSION},
        )
    return {"status": "ready", "timestamp": _now_iso(), "version": settings.APP_VERSION}
