"""
Envoltorio comun para TODAS las llamadas a stores (KV y blob).

Por que un envoltorio?
----------------------
Cada backend lanza sus propias excepciones (botocore.ClientError,
redis.RedisError, OSError...). Las rutas no deberian conocerlas. Aqui
las normalizamos a dos tipos de nuestro dominio:

    - StoreTimeout: la operacion no termino dentro del timeout.
    - StorageError: cualquier otro fallo del backend.

Ademas, las ESCRITURAS se protegen con asyncio.shield(): si el cliente
corta la conexion y la tarea del request se cancela, la escritura que
ya estaba en vuelo termina igual (no hay rollback parcial), pero el
handler no sigue ejecutando logica.
Si lo que vence es el TIMEOUT, la escritura tiene un plazo extra para
terminar y despues se cancela: cuando el caller recibe StoreTimeout ya
no queda ninguna escritura en vuelo. La excepcion son las llamadas en un
thread (boto3): el thread no se puede cancelar, y un blob tardio sin
metadata lo recoge scripts/cleanup_uploads.py.
"""

import asyncio
from contextlib import asynccontextmanager

import structlog

from gateway.errors import StorageError, StoreTimeout

logger = structlog.get_logger(__name__)


async def guarded(awaitable, *, operation: str, timeout: float, shield: bool = False):
    """
    Ejecuta `awaitable` con timeout y traduce sus errores.

    Parametros:
        awaitable: Corutina de la operacion contra el store.
        operation (str): Nombre para el log ("kv.set", "blob.put", ...).
        timeout (float): Segundos maximos de espera.
        shield (bool): True para escrituras que deben completarse aunque
            el request se cancele.
    """
    task = asyncio.ensure_future(awaitable)
    try:
        if shield:
            return await asyncio.wait_for(asyncio.shield(task), timeout)
        return await asyncio.wait_for(task, timeout)
    except asyncio.TimeoutError as exc:
        logger.error("store.timeout", operation=operation, timeout=timeout)
        if shield:
            await _settle(task, timeout)
        raise StoreTimeout(f"{operation} timed out after {timeout}s", operation=operation) from exc
    except StorageError:
        raise
    except Exception as exc:
        logger.error("store.failed", operation=operation, error=str(exc))
        raise StorageError(f"{operation} failed: {exc}", operation=operation) from exc


async def _settle(task: asyncio.Future, timeout: float) -> None:
    """
    Una escritura protegida sigue corriendo despues del timeout. Le damos
    otro `timeout` para terminar y, si no, la cancelamos. Al volver, la
    escritura ya no puede aterrizar despues de que el caller compense
    (por ejemplo, borrando el blob).
    """
    done, _ = await asyncio.wait({task}, timeout=timeout)
    if not done:
        task.cancel()
        await asyncio.wait({task})
    if not task.cancelled() and task.exception() is not None:
        logger.error("store.late_failure", error=str(task.exception()))


@asynccontextmanager
async def locked(lock, *, operation: str, timeout: float):
    """
    Seccion critica sobre un lock del KV store (KVStore.lock()).

    La espera para adquirirlo tambien esta acotada por `timeout`: si otra
    instancia lo retiene demasiado, StoreTimeout. La liberacion va
    protegida con shield para que una cancelacion no deje el lock tomado
    hasta que venza su lease.
    """
    acquired = await guarded(lock.acquire(), operation=operation, timeout=timeout)
    if not acquired:
        raise StoreTimeout(f"{operation} not acquired", operation=operation)
    try:
        yield
    finally:
        await guarded(lock.release(), operation=f"{operation}.release", timeout=timeout, shield=True)
