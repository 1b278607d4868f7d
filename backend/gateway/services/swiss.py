"""
Lookup suizo: codigo postal -> canton -> {tasa de IVA, idioma}.

Es una funcion pura sobre tablas: sin I/O, sin estado, sin concurrencia.

Los codigos postales suizos tienen 4 digitos (1000-9699) y estan
agrupados geograficamente, pero las fronteras postales NO coinciden
exactamente con las de los cantones. La tabla usa rangos: el primero
que contiene al codigo gana, por eso los rangos especificos (ej. 8200
Schaffhausen) van ANTES que los generales (8000-8999 Zurich).

Entradas invalidas o sin rango ("0000", "abc") -> canton "CH" con los
valores por defecto.
"""

from dataclasses import dataclass

DEFAULT_CANTON = "CH"
DEFAULT_LANGUAGE = "de"
# Tasa normal de IVA suizo (MWST/TVA/IVA), identica en todos los cantones.
VAT_RATE = 7.7

# (desde, hasta, canton), inclusivo, en orden de prioridad.
POSTAL_RANGES = [
    (1200, 1299, "GE"),
    (1000, 1199, "VD"),
    (1300, 1499, "VD"),
    (1500, 1799, "FR"),
    (1800, 1899, "VD"),
    (1900, 1999, "VS"),
    (2000, 2499, "NE"),
    (2500, 2799, "BE"),
    (2800, 2999, "JU"),
    (3900, 3999, "VS"),
    (3000, 3899, "BE"),
    (4000, 4099, "BS"),
    (4100, 4499, "BL"),
    (4500, 4799, "SO"),
    (4800, 5799, "AG"),
    (6060, 6079, "OW"),
    (6000, 6099, "LU"),
    (6100, 6299, "LU"),
    (6300, 6349, "ZG"),
    (6350, 6399, "NW"),
    (6400, 6449, "SZ"),
    (6450, 6499, "UR"),
    (6500, 6999, "TI"),
    (7000, 7799, "GR"),
    (8200, 8299, "SH"),
    (8500, 8599, "TG"),
    (8750, 8799, "GL"),
    (8800, 8899, "ZH"),
    (8000, 8999, "ZH"),
    (9050, 9059, "AI"),
    (9100, 9129, "AR"),
    (9500, 9599, "TG"),
    (9000, 9699, "SG"),
]

CANTON_LANGUAGES = {
    "ZH": "de", "BE": "de", "LU": "de", "UR": "de", "SZ": "de", "OW": "de",
    "NW": "de", "GL": "de", "ZG": "de", "FR": "fr", "SO": "de", "BS": "de",
    "BL": "de", "SH": "de", "AR": "de", "AI": "de", "SG": "de", "GR": "de",
    "AG": "de", "TG": "de", "TI": "it", "VD": "fr", "VS": "fr", "NE": "fr",
    "GE": "fr", "JU": "fr",
}


@dataclass(frozen=True)
class CantonInfo:
    postal_code: str
    canton: str
    tax_rate: float
    language: str


def canton_for_postal_code(postal_code: str) -> str:
    code = (postal_code or "").strip()
    if len(code) != 4 or not code.isdigit():
        return DEFAULT_CANTON
    number = int(code)
    for start, end, canton in POSTAL_RANGES:
        if start <= number <= end:
            return canton
    return DEFAULT_CANTON


def lookup_canton(postal_code: str) -> CantonInfo:
    """
    >>> lookup_canton("8001")
    CantonInfo(postal_code='8001', canton='ZH', tax_rate=7.7, language='de')
    """
    canton = canton_for_postal_code(postal_code)
    return CantonInfo(
        postal_code=(postal_code or "").strip(),
        canton=canton,
        tax_rate=VAT_RATE,
        language=CANTON_LANGUAGES.get(canton, DEFAULT_LANGUAGE),
    )
