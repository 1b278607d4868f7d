"""
Rate limiter de ventana deslizante (sliding window log) por cliente.

Algoritmo
---------
Para cada clave (la IP del cliente) guardamos la lista ordenada de los
timestamps (epoch en milisegundos) de las peticiones ADMITIDAS. En cada
evaluacion, con W = ventana y L = limite:

    1. Cargar la lista (vacia si no existe).
    2. Descartar todo timestamp <= now - W.
    3. Si quedan >= L: RECHAZAR. remaining=0, reset = mas_antiguo + W.
       `now` NO se agrega a la lista.
    4. Si no: agregar `now`, persistir, ADMITIR.
       remaining = L - nuevo_total, reset = now + W.

Por que "log" y no un contador por minuto?
Un contador por bloque fijo (12:00-12:01) deja pasar 2L peticiones en la
frontera (L al final de un bloque + L al inicio del siguiente). Con la
ventana deslizante, en CUALQUIER intervalo de W segundos nunca se
admiten mas de L.

Actores
-------
Si dos peticiones de la misma IP se evaluan a la vez, ambas podrian leer
"99 usadas", ambas admitir y dejar 101. Para evitarlo, cada clave tiene
un actor propio (RateLimiterActor) con un asyncio.Lock: las evaluaciones
de una misma clave se procesan de una en una, en orden de llegada.
Con varias instancias del gateway sobre el mismo Redis, ademas se toma
un lock del store (lock:ratelimit:{key}) alrededor de leer y persistir.
Claves distintas tienen actores distintos y avanzan en paralelo (no hay
un mutex global).

Los timestamps viven en el KV store (ratelimit:{key}) con TTL = W, asi
que una clave sin actividad desaparece sola del backend. En memoria, el
registro de actores se barre de forma probabilistica: ~1% de las
evaluaciones revisa y descarta actores inactivos. Esto solo ahorra
memoria; la correctitud viene de la limpieza en cada evaluacion.

Fallos
------
Fail-closed: si no podemos persistir la lista actualizada, la peticion
NO se admite. Se lanza StorageError (respuesta 5xx). Admitir sin haber
registrado el consumo haria perder la cuenta de la cuota.
"""

import asyncio
import json
import math
import random
import time
from dataclasses import dataclass

import structlog

from gateway.services.guard import guarded, locked

logger = structlog.get_logger(__name__)

KEY_PREFIX = "ratelimit:"


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class RateLimitPolicy:
    limit: int = 100
    window_ms: int = 60_000

    @classmethod
    def from_settings(cls, settings) -> "RateLimitPolicy":
        return cls(limit=settings.RATE_LIMIT_MAX_REQUESTS,
                   window_ms=settings.RATE_LIMIT_WINDOW_SECONDS * 1000)


@dataclass(frozen=True)
class RateLimitDecision:
    """
    Resultado de una evaluacion.

    Atributos:
        allowed (bool): Si la peticion fue admitida.
        limit (int): L.
        remaining (int): Cuota restante en la ventana actual.
        reset_ms (int): Epoch (ms) en que se libera el siguiente cupo.
        now_ms (int): Instante de la evaluacion.
    """
    allowed: bool
    limit: int
    remaining: int
    reset_ms: int
    now_ms: int

    @property
    def retry_after(self) -> int:
        return max(0, math.ceil((self.reset_ms - self.now_ms) / 1000))

    def headers(self) -> dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            # Epoch en SEGUNDOS, redondeado hacia arriba.
            "X-RateLimit-Reset": str(math.ceil(self.reset_ms / 1000)),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
        return headers


class RateLimiterActor:
    """Unidad de estado de UNA clave. Serializa sus evaluaciones con un lock."""

    def __init__(self, key: str, store, policy: RateLimitPolicy, timeout: float = 5.0):
        self.key = key
        self.store = store
        self.policy = policy
        self.timeout = timeout
        self.pending = 0
        self.last_seen_ms = 0
        self._lock = asyncio.Lock()

    @property
    def storage_key(self) -> str:
        return f"{KEY_PREFIX}{self.key}"

    async def _load(self) -> list[int]:
        raw = await guarded(self.store.get(self.storage_key), operation="ratelimit.load",
                            timeout=self.timeout)
        return json.loads(raw) if raw else []

    @property
    def lock_key(self) -> str:
        return f"lock:{self.storage_key}"

    async def evaluate(self, now: int | None = None) -> RateLimitDecision:
        # asyncio.Lock: orden dentro del proceso. Lock del store: exclusion
        # entre instancias del gateway que comparten el mismo backend.
        # El lease cubre la lectura y la escritura, cada una con su timeout.
        async with self._lock:
            async with locked(self.store.lock(self.lock_key, lease=3 * self.timeout),
                              operation="ratelimit.lock", timeout=self.timeout):
                return await self._evaluate_locked(now)

    async def _evaluate_locked(self, now: int | None) -> RateLimitDecision:
        now = now_ms() if now is None else now
        self.last_seen_ms = now
        limit, window = self.policy.limit, self.policy.window_ms

        timestamps = [ts for ts in await self._load() if ts > now - window]

        if len(timestamps) >= limit:
            return RateLimitDecision(allowed=False, limit=limit, remaining=0,
                                     reset_ms=min(timestamps) + window, now_ms=now)

        timestamps.append(now)
        # TTL = W: el timestamp mas nuevo es `now`, asi que toda la
        # lista queda obsoleta a los W segundos.
        ttl = math.ceil(window / 1000)
        await guarded(self.store.set(self.storage_key, json.dumps(timestamps), ttl=ttl),
                      operation="ratelimit.persist", timeout=self.timeout, shield=True)

        return RateLimitDecision(allowed=True, limit=limit, remaining=limit - len(timestamps),
                                 reset_ms=now + window, now_ms=now)


class RateLimiterRegistry:
    """
    Directorio de actores: una clave -> siempre el mismo actor.

    `rng` es inyectable para que los tests fuercen (o impidan) el barrido.
    """

    def __init__(self, store, policy: RateLimitPolicy, sweep_probability: float = 0.01,
                 timeout: float = 5.0, rng=random.random):
        self.store = store
        self.policy = policy
        self.sweep_probability = sweep_probability
        self.timeout = timeout
        self._rng = rng
        self._actors: dict[str, RateLimiterActor] = {}

    def actor_for(self, key: str) -> RateLimiterActor:
        actor = self._actors.get(key)
        if actor is None:
            actor = RateLimiterActor(key, self.store, self.policy, timeout=self.timeout)
            self._actors[key] = actor
        return actor

    async def evaluate(self, key: str, now: int | None = None) -> RateLimitDecision:
        # Entre actor_for() y pending += 1 no hay ningun await, asi que el
        # barrido nunca puede descartar un actor que ya tiene una
        # evaluacion en camino.
        actor = self.actor_for(key)
        actor.pending += 1
        try:
            decision = await actor.evaluate(now)
        finally:
            actor.pending -= 1

        if not decision.allowed:
            logger.info("ratelimit.rejected", key=key, limit=decision.limit,
                        retry_after=decision.retry_after)
        if self._rng() < self.sweep_probability:
            self.sweep(decision.now_ms)
        return decision

    def sweep(self, now: int | None = None) -> int:
        """Descarta actores sin evaluaciones en curso ni actividad en la ventana."""
        now = now_ms() if now is None else now
        stale = [
            key for key, actor in self._actors.items()
            if actor.pending == 0 and actor.last_seen_ms <= now - self.policy.window_ms
        ]
        for key in stale:
            del self._actors[key]
        if stale:
            logger.debug("ratelimit.swept", actors=len(stale))
        return len(stale)

    def __len__(self) -> int:
        return len(self._actors)
