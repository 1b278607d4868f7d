"""
Dependencias de FastAPI que entregan los servicios construidos al inicio.

create_app() crea los stores y servicios UNA vez y los guarda en
app.state. Las rutas nunca importan instancias globales: las piden aqui,
y en tests basta con construir la app con stores falsos.
"""

from fastapi import Request


def get_settings(request: Request):
    return request.app.state.settings


def get_cache(request: Request):
    return request.app.state.cache


def get_rate_limiter(request: Request):
    return request.app.state.rate_limiter


def get_upload_service(request: Request):
    return request.app.state.uploads


def get_blob_store(request: Request):
    return request.app.state.blob_store


def get_kv_store(request: Request):
    return request.app.state.kv_store
