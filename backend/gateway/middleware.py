"""
Middleware de logging de peticiones.

Emite UN registro estructurado por peticion:

    request.completed method=GET path=/health status=200 latency_ms=1.3 client=1.2.3.4

Ademas agrega dos headers a la respuesta:
    X-Request-ID     -> id para correlacionar logs (se respeta el del cliente)
    X-Response-Time  -> latencia en milisegundos

Orden de la cadena (de afuera hacia adentro):
    CORS -> logging -> auth (dependencia) -> handler
"""

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware

from gateway.limiter import client_key

logger = structlog.get_logger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        structlog.contextvars.bind_contextvars(request_id=request_id)
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            latency_ms = round((time.perf_counter() - started) * 1000, 2)
            logger.exception("request.failed", method=request.method, path=request.url.path,
                             latency_ms=latency_ms, client=client_key(request))
            raise
        finally:
            structlog.contextvars.unbind_contextvars("request_id")

        latency_ms = round((time.perf_counter() - started) * 1000, 2)
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{latency_ms}ms"
        logger.info(
            "request.completed",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            latency_ms=latency_ms,
            client=client_key(request),
            request_id=request_id,
        )
        return response
