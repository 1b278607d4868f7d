"""
Identidad del cliente y cuotas gruesas por ruta (SlowAPI).

El gateway tiene DOS niveles de limitacion:

1. RateLimiterRegistry (services/rate_limiter.py): ventana deslizante
   por IP, con actores serializados y estado en el KV store. Es el que
   expone los headers X-RateLimit-*.

2. SlowAPI (este modulo): cuotas fijas por ruta para operaciones caras
   o destructivas, con la misma sintaxis de siempre:

       @limiter.limit(route_quota("UPLOAD_ROUTE_LIMIT"))  -> uploads ("20/hour")
       @limiter.limit(route_quota("PURGE_ROUTE_LIMIT"))   -> purge del cache ("10/minute")

   Las cuotas salen de los settings de la app que atiende la peticion
   (los que recibio create_app), no de los globales del modulo.

Ambos identifican al cliente con `client_key()`.
"""

from contextvars import ContextVar

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from gateway.config import settings


def client_key(request: Request) -> str:
    """
    Deriva la clave del cliente.

    Orden de preferencia:
        1. Header del proxy de confianza (CF-Connecting-IP por defecto).
        2. Primer elemento de X-Forwarded-For, si TRUST_FORWARDED_FOR.
        3. IP del socket (get_remote_address de SlowAPI).
        4. "unknown".

    Supuesto de confianza: el paso 2 solo es seguro detras de un proxy
    que reescribe X-Forwarded-For. Si el cliente llega directo, puede
    mandar un valor distinto en cada peticion y estrenar cuota cada vez.
    """
    app_settings = getattr(request.app.state, "settings", settings)
    trusted = request.headers.get(app_settings.CLIENT_IP_HEADER)
    if trusted:
        return trusted.strip()

    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded and app_settings.TRUST_FORWARDED_FOR:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    return get_remote_address(request) or "unknown"


# Los proveedores de limite de SlowAPI no reciben el request. La
# dependencia bind_route_settings deja los settings de la app que atiende
# la peticion en este ContextVar antes de que corra el endpoint.
_route_settings: ContextVar = ContextVar("route_settings", default=None)


async def bind_route_settings(request: Request) -> None:
    _route_settings.set(request.app.state.settings)


def _active_settings():
    return _route_settings.get() or settings


def route_quota(name: str):
    """Limite dinamico: route_quota("UPLOAD_ROUTE_LIMIT") -> "20/hour"."""
    def provider() -> str:
        return getattr(_active_settings(), name)
    return provider


def route_limits_disabled() -> bool:
    return not _active_settings().ROUTE_LIMITS_ENABLED


# En memoria por defecto. Con varias instancias del gateway se pasa
# storage_uri=REDIS_URL para compartir los contadores.
limiter = Limiter(
    key_func=client_key,
    storage_uri=settings.REDIS_URL or "memory://",
)
