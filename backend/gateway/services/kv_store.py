"""
Abstraccion de KV store (clave -> string, con TTL por entrada).

Lo usan tres consumidores, cada uno bajo su propio prefijo de claves:

    cache:{key}        -> CacheController
    ratelimit:{key}    -> RateLimiterActor (lista de timestamps)
    upload:{filename}  -> metadata de cada upload

Implementaciones:
-----------------
- RedisKVStore: produccion. Usa redis.asyncio; el TTL lo aplica Redis
  con EX y la busqueda por patron usa SCAN MATCH (nunca KEYS, que
  bloquea el servidor con muchos datos).
- MemoryKVStore: desarrollo y tests. Un dict del proceso con expiracion
  perezosa (la entrada vencida se descarta cuando alguien la lee).

Supuesto explicito: si el backend es eventualmente consistente (replicas),
esta capa NO garantiza read-after-write entre replicas distintas.
"""

import asyncio
import fnmatch
import time

import redis.asyncio as redis


class KVStore:
    """Interfaz comun. Todos los metodos son async."""

    async def get(self, key: str) -> str | None:
        raise NotImplementedError

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        raise NotImplementedError

    async def delete(self, key: str) -> bool:
        raise NotImplementedError

    async def keys(self, pattern: str) -> list[str]:
        raise NotImplementedError

    def lock(self, name: str, lease: float):
        """
        Lock exclusivo sobre `name`, compartido por todos los procesos que
        usan el mismo backend. Objeto con `acquire()` y `release()` async.
        `lease` es la vida maxima del lock si su dueno muere sin liberarlo.
        """
        raise NotImplementedError

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class RedisKVStore(KVStore):
    def __init__(self, client: redis.Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str, timeout: float = 5.0) -> "RedisKVStore":
        # socket_timeout hace que una operacion colgada falle en vez de
        # bloquear el request para siempre.
        client = redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=timeout,
            socket_timeout=timeout,
        )
        return cls(client)

    async def get(self, key: str) -> str | None:
        return await self.client.get(key)

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        # ex=None significa "sin expiracion".
        await self.client.set(key, value, ex=ttl if ttl and ttl > 0 else None)

    async def delete(self, key: str) -> bool:
        return bool(await self.client.delete(key))

    async def keys(self, pattern: str) -> list[str]:
        return [key async for key in self.client.scan_iter(match=pattern, count=500)]

    def lock(self, name: str, lease: float):
        # Lock de redis-py (SET NX PX + token): vale entre instancias del
        # gateway. Sin blocking_timeout: quien llama acota la espera.
        return self.client.lock(name, timeout=lease, sleep=0.01)

    async def ping(self) -> bool:
        return bool(await self.client.ping())

    async def close(self) -> None:
        await self.client.aclose()


class _MemoryLock:
    """asyncio.Lock con release() awaitable, igual que el lock de redis-py."""

    def __init__(self, lock: asyncio.Lock):
        self._lock = lock

    async def acquire(self) -> bool:
        return await self._lock.acquire()

    async def release(self) -> None:
        self._lock.release()


class MemoryKVStore(KVStore):
    """
    KV store en memoria del proceso.

    `clock` es inyectable para que los tests controlen el tiempo sin
    dormir: MemoryKVStore(clock=lambda: 1000.0).
    """

    def __init__(self, clock=time.time):
        self._clock = clock
        # key -> (value, expires_at | None)
        self._data: dict[str, tuple[str, float | None]] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _alive(self, key: str) -> bool:
        entry = self._data.get(key)
        if entry is None:
            return False
        _, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            del self._data[key]
            return False
        return True

    async def get(self, key: str) -> str | None:
        if not self._alive(key):
            return None
        return self._data[key][0]

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        expires_at = self._clock() + ttl if ttl and ttl > 0 else None
        self._data[key] = (value, expires_at)

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def keys(self, pattern: str) -> list[str]:
        # list() porque _alive() puede borrar del dict mientras iteramos.
        return [k for k in list(self._data) if fnmatch.fnmatchcase(k, pattern) and self._alive(k)]

    def lock(self, name: str, lease: float):
        # Un asyncio.Lock por nombre, compartido por todo lo que use ESTA
        # instancia del store. El lease no aplica dentro de un proceso.
        return _MemoryLock(self._locks.setdefault(name, asyncio.Lock()))

    def __len__(self) -> int:
        return len(self._data)


def build_kv_store(settings) -> KVStore:
    """Redis si hay REDIS_URL, memoria en caso contrario."""
    if settings.REDIS_URL:
        return RedisKVStore.from_url(settings.REDIS_URL, timeout=settings.STORE_TIMEOUT_SECONDS)
    return MemoryKVStore()
