"""
Modulo de validacion de uploads de imagenes.

Este servicio es la PRIMERA linea de defensa: corre ANTES de cualquier
escritura en los stores. Si algo falla aqui, no se toca ni el blob store
ni el KV store (fail fast, sin escrituras parciales).

Orden de las reglas (de la mas barata a la mas cara):
    1. Hay archivo?                       -> MISSING_FILE
    2. El tipo declarado esta permitido?  -> TYPE_NOT_ALLOWED
    3. El tamano esta dentro del maximo?  -> TOO_LARGE
    4. Los magic bytes coinciden con el tipo declarado? -> CONTENT_MISMATCH

Por que la regla 4?
-------------------
El Content-Type lo manda el cliente y puede mentir: un atacante puede
subir un HTML con "Content-Type: image/png" y luego servirlo desde nuestro
dominio. python-magic lee la firma real del archivo (los primeros bytes)
igual que el comando `file` de Linux.
"""

import magic

from gateway.errors import ErrorKind, ValidationResult

# Mapea tipo MIME -> extension usada en la key generada.
MIME_TO_EXT = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
    "image/avif": "avif",
    "image/svg+xml": "svg",
}

# Variantes que libmagic puede reportar para un mismo formato.
SNIFF_ALIASES = {
    "image/jpg": "image/jpeg",
    "image/pjpeg": "image/jpeg",
    "image/x-png": "image/png",
}


def sniff_mime(data: bytes) -> str:
    detected = magic.from_buffer(data[:4096], mime=True)
    return SNIFF_ALIASES.get(detected, detected)


def validate_upload(declared_type: str | None, data: bytes | None, settings) -> ValidationResult:
    """
    Valida un upload contra la politica configurada.

    Parametros:
        declared_type (str | None): Content-Type declarado por el cliente.
        data (bytes | None): Contenido del archivo. El caller puede haber
            leido solo MAX_UPLOAD_SIZE + 1 bytes: alcanza para saber si
            el archivo es demasiado grande.
        settings: Configuracion (ALLOWED_IMAGE_TYPES, MAX_UPLOAD_SIZE).

    Retorna:
        ValidationResult: ok=True con mime_type, o ok=False con kind y message.

    Ejemplos:
        >>> validate_upload("image/svg+xml", b"<svg/>", settings)
        ValidationResult(ok=False, kind=ErrorKind.TYPE_NOT_ALLOWED, ...)
    """
    if not data:
        return ValidationResult.failure(ErrorKind.MISSING_FILE, "No file provided")

    content_type = (declared_type or "").split(";")[0].strip().lower()
    if content_type not in settings.ALLOWED_IMAGE_TYPES:
        allowed = ", ".join(settings.ALLOWED_IMAGE_TYPES)
        return ValidationResult.failure(
            ErrorKind.TYPE_NOT_ALLOWED,
            f"File type '{content_type or 'unknown'}' is not allowed. Allowed types: {allowed}",
        )

    if len(data) > settings.MAX_UPLOAD_SIZE:
        return ValidationResult.failure(
            ErrorKind.TOO_LARGE,
            f"File size exceeds maximum of {settings.MAX_UPLOAD_SIZE} bytes",
        )

    detected = sniff_mime(data)
    if detected != content_type:
        return ValidationResult.failure(
            ErrorKind.CONTENT_MISMATCH,
            f"File content '{detected}' does not match declared type '{content_type}'",
        )

    return ValidationResult.success(mime_type=content_type)
