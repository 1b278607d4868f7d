"""
Cache controller: get / set / delete / purge sobre el KV store.

Formato de cada entrada en el KV store:

    key:   "cache:{clave del usuario}"
    value: '{"value": <cualquier JSON>, "expires_at": 1735689600.0}'

Por que guardamos expires_at si el KV store ya tiene TTL?
---------------------------------------------------------
Porque el backend puede tardar en desalojar una clave vencida (Redis
expira de forma perezosa + muestreo; un KV distribuido puede tardar
segundos en propagar). La regla es: una lectura DESPUES de expires_at
devuelve "miss", nunca un dato viejo. Asi que lo verificamos nosotros
al leer, sin depender del backend.

Concurrencia: dos `set` sobre la misma clave -> gana la ultima escritura.
No hay merge.
"""

import json
import time

import structlog

from gateway.services.guard import guarded

logger = structlog.get_logger(__name__)

# Caracteres que convierten un patron en glob. Sin ellos, el patron es un prefijo.
GLOB_CHARS = set("*?[")

MISS = object()


class CacheController:
    def __init__(self, store, default_ttl: int = 3600, prefix: str = "cache:",
                 timeout: float = 5.0, clock=time.time):
        self.store = store
        self.default_ttl = default_ttl
        self.prefix = prefix
        self.timeout = timeout
        self._clock = clock

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def get(self, key: str):
        """
        Retorna el valor guardado o `MISS`.

        Usamos un centinela (MISS) en vez de None porque None es un valor
        JSON valido (null) que alguien pudo haber guardado a proposito.
        """
        raw = await guarded(self.store.get(self._key(key)), operation="cache.get", timeout=self.timeout)
        if raw is None:
            return MISS

        entry = json.loads(raw)
        if entry["expires_at"] <= self._clock():
            # Vencida pero todavia presente en el backend: la tratamos
            # como ausente y la limpiamos de paso.
            logger.debug("cache.stale_entry", key=key)
            await guarded(self.store.delete(self._key(key)), operation="cache.delete",
                          timeout=self.timeout, shield=True)
            return MISS
        return entry["value"]

    async def set(self, key: str, value, ttl: int | None = None) -> int:
        """Guarda `value` por `ttl` segundos (default_ttl si no se indica). Retorna el TTL usado."""
        ttl = ttl if ttl and ttl > 0 else self.default_ttl
        entry = json.dumps({"value": value, "expires_at": self._clock() + ttl})
        await guarded(self.store.set(self._key(key), entry, ttl=ttl), operation="cache.set",
                      timeout=self.timeout, shield=True)
        return ttl

    async def delete(self, key: str) -> bool:
        return await guarded(self.store.delete(self._key(key)), operation="cache.delete",
                             timeout=self.timeout, shield=True)

    async def purge(self, pattern: str) -> int:
        """
        Elimina todas las claves vivas que matcheen `pattern`.

        "uploads:"   -> prefijo, equivale a "uploads:*"
        "uploads:*"  -> glob
        "img-?"      -> glob

        Retorna cuantas claves se borraron (0 si ninguna matchea; no es error).
        """
        if not GLOB_CHARS.intersection(pattern):
            pattern = f"{pattern}*"

        keys = await guarded(self.store.keys(self._key(pattern)), operation="cache.keys",
                             timeout=self.timeout)
        removed = 0
        for full_key in keys:
            if await guarded(self.store.delete(full_key), operation="cache.delete",
                             timeout=self.timeout, shield=True):
                removed += 1

        logger.info("cache.purged", pattern=pattern, removed=removed)
        return removed
