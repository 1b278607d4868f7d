"""
GET /api/v1/rate-limit-test: evalua el rate limiter para la IP que llama.

    200 + X-RateLimit-Limit / -Remaining / -Reset    si se admite
    429 + los mismos headers (Remaining=0) + Retry-After  si se rechaza

Si el KV store falla al persistir, el limiter lanza StorageError y la
respuesta es 500: nunca se admite sin haber registrado el consumo.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from starlette.requests import Request

from gateway.dependencies import get_rate_limiter
from gateway.errors import RateLimitExceeded
from gateway.limiter import client_key
from gateway.models.schemas import error_responses

router = APIRouter()


@router.get("/api/v1/rate-limit-test", responses=error_responses(429, 500))
async def rate_limit_test(request: Request, rate_limiter=Depends(get_rate_limiter)):
    key = client_key(request)
    decision = await rate_limiter.evaluate(key)
    if not decision.allowed:
        raise RateLimitExceeded(decision)

    return JSONResponse(
        {
            "success": True,
            "data": {
                "key": key,
                "limit": decision.limit,
                "remaining": decision.remaining,
                "reset": decision.reset_ms // 1000,
            },
        },
        headers=decision.headers(),
    )
