"""
Configuracion de logging estructurado con structlog.

Cada registro es un evento con nombre ("request.completed",
"store.timeout", ...) mas pares clave-valor, en vez de un string libre.
En produccion (LOG_JSON=true) se emite JSON, una linea por evento; en
desarrollo se usa el renderer de consola, mas legible.

Uso en cualquier modulo:

    import structlog
    logger = structlog.get_logger(__name__)
    logger.info("upload.stored", key=key, size=size)
"""

import logging

import structlog


def configure_logging(log_level: str = "INFO", json_logs: bool = False) -> None:
    """Configura structlog y el logger raiz de la biblioteca estandar."""
    logging.basicConfig(format="%(message)s", level=log_level.upper())

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer(),
    ]

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
