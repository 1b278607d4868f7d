"""
Rutas de geolocalizacion.

El proxy de borde (Cloudflare, con "visitor location headers" activado)
agrega a cada peticion headers como:

    cf-ipcountry: CH
    cf-ipcity: Zurich
    cf-postal-code: 8001
    cf-iplatitude / cf-iplongitude / cf-timezone / ...

GET /api/v1/geo           -> devuelve esos campos tal cual
GET /api/v1/swiss/canton  -> codigo postal -> canton, IVA, idioma
"""

from fastapi import APIRouter, Query
from starlette.requests import Request

from gateway.errors import ValidationFailed
from gateway.limiter import client_key
from gateway.models.schemas import CantonResponse, error_responses
from gateway.services.swiss import lookup_canton

router = APIRouter()

# campo de la respuesta -> header del borde
GEO_HEADERS = {
    "country": "cf-ipcountry",
    "city": "cf-ipcity",
    "continent": "cf-ipcontinent",
    "region": "cf-region",
    "regionCode": "cf-region-code",
    "postalCode": "cf-postal-code",
    "latitude": "cf-iplatitude",
    "longitude": "cf-iplongitude",
    "timezone": "cf-timezone",
}


@router.get("/api/v1/geo")
async def geo(request: Request):
    data = {field: request.headers.get(header) for field, header in GEO_HEADERS.items()}
    data["ip"] = client_key(request)
    return {"success": True, "data": data}


@router.get("/api/v1/swiss/canton", response_model=CantonResponse, responses=error_responses(400))
async def swiss_canton(request: Request, postal_code: str | None = Query(None, alias="postalCode")):
    """
    El codigo postal sale del query (?postalCode=8001) o, si no viene,
    del header cf-postal-code. Sin ninguno de los dos -> 400.
    """
    postal_code = postal_code or request.headers.get("cf-postal-code")
    if not postal_code:
        raise ValidationFailed("Unable to determine location: no postal code available")

    info = lookup_canton(postal_code)
    return CantonResponse(
        postal_code=info.postal_code,
        canton=info.canton,
        tax_rate=info.tax_rate,
        language=info.language,
    )
