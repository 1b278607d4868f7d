"""
Autenticacion por Bearer token (JWT firmado con AUTH_SECRET).

Se usa como dependencia de FastAPI en las rutas protegidas:

    @router.put("/api/v1/cache/{key}")
    async def put(..., principal: str = Depends(require_principal)):

Las dependencias corren DESPUES de los middlewares (CORS y logging) y
ANTES del handler. Si el token falta o es invalido, se lanza AuthError y
el handler nunca se ejecuta (el exception handler responde 401).

El claim `sub` es el "principal" (quien hace la peticion). Queda en
request.state.principal para quien lo necesite despues.
"""

from fastapi import Request
from jose import JWTError, jwt

from gateway.dependencies import get_settings
from gateway.errors import AuthError, ForbiddenError


def decode_principal(token: str, secret: str, algorithm: str = "HS256") -> str:
    try:
        claims = jwt.decode(token, secret, algorithms=[algorithm])
    except JWTError as exc:
        raise AuthError(f"Invalid token: {exc}") from exc

    principal = claims.get("sub")
    if not principal:
        raise ForbiddenError("Token has no subject")
    return str(principal)


def issue_token(principal: str, secret: str, algorithm: str = "HS256", **claims) -> str:
    """Emite un token para `principal`. Lo usan los scripts de operacion y los tests."""
    return jwt.encode({"sub": principal, **claims}, secret, algorithm=algorithm)


async def require_principal(request: Request) -> str:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthError("Missing bearer token")

    settings = get_settings(request)
    principal = decode_principal(token.strip(), settings.AUTH_SECRET, settings.AUTH_ALGORITHM)
    request.state.principal = principal
    return principal
