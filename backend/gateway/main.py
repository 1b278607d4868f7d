"""
Punto de entrada del gateway de borde.

Aqui se:
1. Construyen los stores (KV y blob) y los servicios, UNA sola vez.
2. Configuran los middlewares (CORS, logging) y SlowAPI.
3. Registran los exception handlers (taxonomia de errores -> HTTP).
4. Registran todas las rutas.

Arquitectura:
-------------
    main.py (create_app)
        |
        +-- routes/        health, cdn, upload, cache, rate_limit, geo
        +-- services/      kv_store, blob_store, cache, rate_limiter,
        |                  uploads, validator, image_transform, swiss, guard
        +-- models/        schemas (Pydantic)
        +-- auth.py        Bearer JWT (dependencia)
        +-- middleware.py  logging por peticion
        +-- limiter.py     client_key + cuotas SlowAPI
        +-- errors.py      ErrorKind, ValidationResult, excepciones
        +-- config.py      Settings

Flujo de una peticion:
    Cliente -> CORS -> logging -> router -> auth -> cuota -> handler -> respuesta

Inyeccion de dependencias:
--------------------------
create_app() acepta settings y stores ya construidos. En produccion
`app = create_app()` usa Redis (si hay REDIS_URL) y S3/R2; en tests se
pasa un MemoryKVStore y un BlobStore con cliente de moto.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded as RouteLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from gateway.config import Settings, settings as default_settings
from gateway.errors import GatewayError, RateLimitExceeded, StorageError, StoreTimeout
from gateway.limiter import limiter
from gateway.log import configure_logging
from gateway.middleware import RequestLoggingMiddleware
from gateway.routes.cache import router as cache_router
from gateway.routes.cdn import router as cdn_router
from gateway.routes.geo import router as geo_router
from gateway.routes.health import router as health_router
from gateway.routes.rate_limit import router as rate_limit_router
from gateway.routes.upload import router as upload_router
from gateway.services.blob_store import BlobStore
from gateway.services.cache import CacheController
from gateway.services.kv_store import build_kv_store
from gateway.services.rate_limiter import RateLimiterRegistry, RateLimitPolicy
from gateway.services.uploads import UploadService

logger = structlog.get_logger(__name__)


def _error_body(message: str) -> dict:
    return {"success": False, "error": message}


async def gateway_error_handler(request, exc: GatewayError):
    if isinstance(exc, StoreTimeout):
        logger.error("request.store_timeout", path=request.url.path, operation=exc.operation)
    elif isinstance(exc, StorageError):
        logger.error("request.storage_error", path=request.url.path, operation=exc.operation,
                     detail=exc.message)

    headers = exc.decision.headers() if isinstance(exc, RateLimitExceeded) else None
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.public_message),
                        headers=headers)


async def http_error_handler(request, exc: StarletteHTTPException):
    # Ruta sin el metodo pedido (405) o ruta inexistente: ambos son 404.
    if exc.status_code in (404, 405):
        return JSONResponse(status_code=404, content=_error_body("Not found"))
    return JSONResponse(status_code=exc.status_code, content=_error_body(str(exc.detail)),
                        headers=getattr(exc, "headers", None))


async def request_validation_handler(request, exc: RequestValidationError):
    # "body.ttl: Input should be greater than 0; ..."
    rules = "; ".join(
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
    )
    return JSONResponse(status_code=400, content=_error_body(f"Invalid request: {rules}"))


def create_app(settings: Settings | None = None, kv_store=None, blob_store=None) -> FastAPI:
    settings = settings or default_settings
    configure_logging(settings.LOG_LEVEL, settings.LOG_JSON)

    kv_store = kv_store if kv_store is not None else build_kv_store(settings)
    blob_store = blob_store if blob_store is not None else BlobStore(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("gateway.started", version=settings.APP_VERSION, environment=settings.ENVIRONMENT)
        yield
        await kv_store.close()
        logger.info("gateway.stopped")

    app = FastAPI(title="Edge Gateway", version=settings.APP_VERSION, lifespan=lifespan)

    # ---------- Servicios (construidos una vez) ----------
    app.state.settings = settings
    app.state.kv_store = kv_store
    app.state.blob_store = blob_store
    app.state.cache = CacheController(
        kv_store,
        default_ttl=settings.CACHE_DEFAULT_TTL,
        prefix=settings.CACHE_KEY_PREFIX,
        timeout=settings.STORE_TIMEOUT_SECONDS,
    )
    app.state.rate_limiter = RateLimiterRegistry(
        kv_store,
        RateLimitPolicy.from_settings(settings),
        sweep_probability=settings.RATE_LIMIT_SWEEP_PROBABILITY,
        timeout=settings.STORE_TIMEOUT_SECONDS,
    )
    app.state.uploads = UploadService(blob_store, kv_store, settings)

    # ---------- SlowAPI ----------
    app.state.limiter = limiter
    app.add_exception_handler(RouteLimitExceeded, _rate_limit_exceeded_handler)

    # ---------- Errores ----------
    app.add_exception_handler(GatewayError, gateway_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    # ---------- Middlewares ----------
    # Starlette ejecuta primero el ULTIMO middleware agregado. Agregamos
    # logging antes que CORS para que el orden de entrada sea CORS -> logging.
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=[
            "X-Request-ID",
            "X-Response-Time",
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
            "Retry-After",
        ],
        max_age=86400,
    )

    # ---------- Rutas ----------
    # El orden importa: ante dos patrones que matchean, gana el primero.
    app.include_router(health_router)
    app.include_router(cdn_router)
    app.include_router(upload_router)
    app.include_router(cache_router)
    app.include_router(rate_limit_router)
    app.include_router(geo_router)

    return app


app = create_app()
