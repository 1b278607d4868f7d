"""
Taxonomia de errores del gateway.

Hay dos piezas:

1. **ErrorKind + ValidationResult:** un resultado "etiquetado" para las
   validaciones. En vez de devolver {is_valid, error} con un string libre,
   devolvemos un `kind` de un enum, asi el caller puede decidir con un
   `if result.kind is ErrorKind.TOO_LARGE` sin comparar mensajes.

2. **GatewayError y subclases:** excepciones que las rutas y servicios
   lanzan. Los exception handlers registrados en main.py las traducen a
   una respuesta HTTP con el envelope {"success": false, "error": ...}.

Tabla de traduccion:
    ValidationFailed   -> 400  (mensaje con la regla violada)
    AuthError          -> 401  ("unauthorized", sin mas detalle)
    ForbiddenError     -> 403
    RateLimitExceeded  -> 429  (+ headers X-RateLimit-*)
    NotFound           -> 404
    StorageError       -> 500  (mensaje generico; el detalle va al log)
    StoreTimeout       -> 500  (igual que StorageError, log distinto)
"""

import enum
from dataclasses import dataclass


class ErrorKind(str, enum.Enum):
    VALIDATION = "validation"
    MISSING_FILE = "missing_file"
    TYPE_NOT_ALLOWED = "type_not_allowed"
    TOO_LARGE = "too_large"
    CONTENT_MISMATCH = "content_mismatch"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    RATE_LIMITED = "rate_limited"
    NOT_FOUND = "not_found"
    STORAGE = "storage"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class ValidationResult:
    """
    Resultado de una validacion.

    Atributos:
        ok (bool): True si paso todas las reglas.
        kind (ErrorKind | None): Que regla fallo. None si ok es True.
        message (str): Descripcion legible del fallo ("" si ok).
        mime_type (str): Tipo MIME aceptado (util para el caller).
    """
    ok: bool
    kind: ErrorKind | None = None
    message: str = ""
    mime_type: str = ""

    @classmethod
    def success(cls, mime_type: str = "") -> "ValidationResult":
        return cls(ok=True, mime_type=mime_type)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> "ValidationResult":
        return cls(ok=False, kind=kind, message=message)


class GatewayError(Exception):
    """Error base. `status_code` es el codigo HTTP que le corresponde."""

    status_code = 500
    kind = ErrorKind.STORAGE

    def __init__(self, message: str = "", kind: ErrorKind | None = None):
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind

    @property
    def public_message(self) -> str:
        return self.message


class ValidationFailed(GatewayError):
    status_code = 400
    kind = ErrorKind.VALIDATION

    @classmethod
    def from_result(cls, result: ValidationResult) -> "ValidationFailed":
        return cls(result.message, kind=result.kind)


class AuthError(GatewayError):
    status_code = 401
    kind = ErrorKind.UNAUTHORIZED

    @property
    def public_message(self) -> str:
        # Nunca revelamos POR QUE fallo la autenticacion.
        return "unauthorized"


class ForbiddenError(AuthError):
    status_code = 403
    kind = ErrorKind.FORBIDDEN

    @property
    def public_message(self) -> str:
        return "forbidden"


class RateLimitExceeded(GatewayError):
    status_code = 429
    kind = ErrorKind.RATE_LIMITED

    def __init__(self, decision):
        super().__init__("Rate limit exceeded")
        self.decision = decision


class NotFound(GatewayError):
    status_code = 404
    kind = ErrorKind.NOT_FOUND


class StorageError(GatewayError):
    status_code = 500
    kind = ErrorKind.STORAGE

    def __init__(self, message: str = "", operation: str = ""):
        super().__init__(message)
        self.operation = operation

    @property
    def public_message(self) -> str:
        return "Internal storage error"


class StoreTimeout(StorageError):
    kind = ErrorKind.TIMEOUT
