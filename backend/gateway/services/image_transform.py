"""
Transformaciones de imagen para la ruta /cdn/images.

La CDN sirve el blob tal cual, salvo que la URL pida una variante:

    /cdn/images/uploads/123-abc.png?w=320            -> ancho 320, alto proporcional
    /cdn/images/uploads/123-abc.png?w=320&h=200      -> cabe en 320x200
    /cdn/images/uploads/123-abc.png?format=webp&q=70 -> re-codifica a WebP

Todo se procesa en memoria (bytes -> BytesIO -> Pillow -> bytes).

Nota sobre JPEG y transparencia:
    JPEG NO soporta canal alpha. Si la imagen es RGBA/LA/P y el destino es
    JPEG, la convertimos a RGB antes de guardar; si no, Pillow lanza
    "OSError: cannot write mode RGBA as JPEG".
"""

import io
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

# Mapea el parametro `format` -> (nombre de formato Pillow, tipo MIME)
FORMATS = {
    "png": ("PNG", "image/png"),
    "jpeg": ("JPEG", "image/jpeg"),
    "jpg": ("JPEG", "image/jpeg"),
    "webp": ("WEBP", "image/webp"),
    "gif": ("GIF", "image/gif"),
}

PIL_TO_MIME = {name: mime for name, mime in FORMATS.values()}


class TransformError(ValueError):
    """Parametros de transformacion invalidos o imagen ilegible."""


@dataclass(frozen=True)
class TransformOptions:
    width: int | None = None
    height: int | None = None
    quality: int | None = None
    format: str | None = None

    @property
    def is_identity(self) -> bool:
        return self.width is None and self.height is None and self.quality is None and self.format is None

    def validate(self, max_dimension: int) -> None:
        for name, value in (("w", self.width), ("h", self.height)):
            if value is not None and not 1 <= value <= max_dimension:
                raise TransformError(f"'{name}' must be between 1 and {max_dimension}")
        if self.quality is not None and not 1 <= self.quality <= 100:
            raise TransformError("'q' must be between 1 and 100")
        if self.format is not None and self.format.lower() not in FORMATS:
            raise TransformError(f"Unsupported format '{self.format}'")


def transform_image(data: bytes, options: TransformOptions) -> tuple[bytes, str]:
    """
    Aplica `options` a la imagen.

    El redimensionado usa Image.thumbnail(): mantiene la proporcion y
    nunca agranda la imagen. Si solo se indica un lado, el otro queda libre.

    Retorna:
        (bytes, content_type) de la variante.
    """
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise TransformError("Stored object is not a readable image") from exc

    source_format = img.format or "PNG"

    if options.width or options.height:
        # LANCZOS: el filtro de mayor calidad de Pillow para reducir.
        img.thumbnail((options.width or img.width, options.height or img.height), Image.LANCZOS)

    target_format = FORMATS[options.format.lower()][0] if options.format else source_format
    if target_format == "JPEG" and img.mode in ("RGBA", "LA", "P"):
        img = img.convert("RGB")

    save_kwargs = {}
    if options.quality is not None and target_format in ("JPEG", "WEBP"):
        save_kwargs["quality"] = options.quality
    if target_format == "JPEG":
        save_kwargs["optimize"] = True

    buffer = io.BytesIO()
    img.save(buffer, format=target_format, **save_kwargs)
    return buffer.getvalue(), PIL_TO_MIME.get(target_format, f"image/{target_format.lower()}")
