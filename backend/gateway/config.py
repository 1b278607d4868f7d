"""
Modulo de configuracion centralizada del gateway.

Este archivo define TODAS las constantes y configuraciones que el gateway
necesita para funcionar: limites de subida, ventana del rate limiter,
TTL del cache, credenciales de almacenamiento, etc.

Todo se lee de variables de entorno (os.getenv) para que la misma
aplicacion corra en desarrollo, staging y produccion SIN cambiar codigo.

Diferencia importante con un "singleton" puro:
----------------------------------------------
La clase Settings lee el entorno en __init__ y acepta overrides por
keyword. Asi los tests pueden construir una configuracion a medida:

    Settings(RATE_LIMIT_MAX_REQUESTS=3, REDIS_URL="")

y pasarla explicitamente a create_app(). La instancia `settings` de abajo
es solo el valor por defecto que usa la app de produccion.
"""

import os


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: str) -> list[str]:
    # "a, b,,c" -> ["a", "b", "c"]
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


class Settings:
    """
    Configuracion de la aplicacion.

    Cada atributo tiene un valor por defecto razonable para desarrollo.
    Los overrides (kwargs) tienen prioridad sobre las variables de entorno,
    que a su vez tienen prioridad sobre los defaults.
    """

    def __init__(self, **overrides):
        # ---------- General ----------
        self.APP_VERSION: str = os.getenv("APP_VERSION", "1.0.0")
        self.ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

        # ---------- Logging ----------
        # LOG_JSON=true en produccion para que el colector de logs
        # (Datadog, CloudWatch, Loki...) pueda parsear cada registro.
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
        self.LOG_JSON: bool = _env_bool("LOG_JSON", "false")

        # ---------- CORS ----------
        self.CORS_ORIGINS: list[str] = _env_list("CORS_ORIGINS", "http://localhost:5173")

        # ---------- Identidad del cliente ----------
        # Header que pone el proxy de confianza (Cloudflare) con la IP real.
        # NUNCA confiamos en headers arbitrarios del cliente: solo en este.
        self.CLIENT_IP_HEADER: str = os.getenv("CLIENT_IP_HEADER", "CF-Connecting-IP")
        # Sin ese header, X-Forwarded-For. Lo escribe el cliente si no hay un
        # proxy delante que lo reescriba: con el gateway expuesto directo,
        # TRUST_FORWARDED_FOR=false para que no se puedan rotar claves.
        self.TRUST_FORWARDED_FOR: bool = _env_bool("TRUST_FORWARDED_FOR", "true")

        # ---------- Autenticacion ----------
        self.AUTH_SECRET: str = os.getenv("AUTH_SECRET", "change-me")
        self.AUTH_ALGORITHM: str = os.getenv("AUTH_ALGORITHM", "HS256")

        # ---------- Rate limiting (ventana deslizante) ----------
        # W = duracion de la ventana, L = maximo de peticiones admitidas en W.
        self.RATE_LIMIT_WINDOW_SECONDS: int = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))
        self.RATE_LIMIT_MAX_REQUESTS: int = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "100"))
        # Probabilidad de barrer actores inactivos en cada evaluacion (1%).
        self.RATE_LIMIT_SWEEP_PROBABILITY: float = float(
            os.getenv("RATE_LIMIT_SWEEP_PROBABILITY", "0.01")
        )

        # Cuotas gruesas por ruta (SlowAPI), en formato "N/periodo".
        self.ROUTE_LIMITS_ENABLED: bool = _env_bool("ROUTE_LIMITS_ENABLED", "true")
        self.UPLOAD_ROUTE_LIMIT: str = os.getenv("UPLOAD_ROUTE_LIMIT", "20/hour")
        self.PURGE_ROUTE_LIMIT: str = os.getenv("PURGE_ROUTE_LIMIT", "10/minute")

        # ---------- Cache ----------
        self.CACHE_DEFAULT_TTL: int = int(os.getenv("CACHE_DEFAULT_TTL", "3600"))
        # Todas las entradas del cache viven bajo este prefijo en el KV store,
        # para que un purge nunca toque metadata de uploads ni del rate limiter.
        self.CACHE_KEY_PREFIX: str = os.getenv("CACHE_KEY_PREFIX", "cache:")

        # ---------- Uploads ----------
        # Lista blanca de tipos MIME de imagen. Lo que no esta aqui, no entra.
        self.ALLOWED_IMAGE_TYPES: list[str] = _env_list(
            "ALLOWED_IMAGE_TYPES",
            "image/png,image/jpeg,image/webp,image/gif,image/avif",
        )
        # 10 MB = 10 * 1024 * 1024 = 10,485,760 bytes
        self.MAX_UPLOAD_SIZE: int = int(os.getenv("MAX_UPLOAD_SIZE", str(10 * 1024 * 1024)))
        self.UPLOAD_PREFIX: str = os.getenv("UPLOAD_PREFIX", "uploads")
        # La metadata de cada upload expira en 1 ano (el blob NO).
        self.UPLOAD_METADATA_TTL: int = int(os.getenv("UPLOAD_METADATA_TTL", str(365 * 24 * 3600)))
        self.PUBLIC_BASE_URL: str = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000")

        # ---------- Blob store (S3 / R2) ----------
        # Cloudflare R2 habla el protocolo de S3, asi que boto3 sirve para
        # ambos: basta con apuntar BLOB_ENDPOINT_URL al endpoint de R2.
        self.S3_BUCKET: str = os.getenv("S3_BUCKET", "edge-gateway-assets")
        self.AWS_REGION: str = os.getenv("AWS_REGION", "us-east-1")
        self.BLOB_ENDPOINT_URL: str = os.getenv("BLOB_ENDPOINT_URL", "")

        # ---------- KV store ----------
        # Vacio = store en memoria del proceso (solo desarrollo y tests).
        self.REDIS_URL: str = os.getenv("REDIS_URL", "")

        # Timeout de cualquier operacion contra un store. Un timeout se
        # trata como fallo (fail-closed en el rate limiter).
        self.STORE_TIMEOUT_SECONDS: float = float(os.getenv("STORE_TIMEOUT_SECONDS", "5"))

        # ---------- CDN ----------
        self.CDN_MAX_DIMENSION: int = int(os.getenv("CDN_MAX_DIMENSION", "4096"))
        self.CDN_CACHE_MAX_AGE: int = int(os.getenv("CDN_CACHE_MAX_AGE", str(365 * 24 * 3600)))

        for name, value in overrides.items():
            if not hasattr(self, name):
                raise AttributeError(f"Unknown setting: {name}")
            setattr(self, name, value)


# Instancia por defecto, usada por gateway.main para construir la app.
settings = Settings()
