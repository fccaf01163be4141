"""
Status message catalog.

Jobs remember the language they were submitted with and every status message
is rendered from this catalog, falling back to English for unknown keys.
"""

from __future__ import annotations

from typing import Dict, Optional

DEFAULT_LANGUAGE = "en"

MESSAGES: Dict[str, Dict[str, str]] = {
    "en": {
        "accepted": "Conversion started. Use the /status endpoint to check its progress.",
        "queued": "Conversion queued.",
        "processing": "Conversion in progress.",
        "rendering": "Rendering label {done} of {total}.",
        "storing": "Storing PDF.",
        "completed": "Conversion completed.",
        "completed_with_warnings": "Conversion completed with {count} warning(s): {warnings}",
        "failed": "Conversion failed ({kind}): {detail}",
        "interrupted": "Conversion interrupted by a service restart.",
        "internal_error": "Internal error while converting labels: {detail}",
    },
    "es": {
        "accepted": "Conversión iniciada. Use el endpoint /status para verificar el estado.",
        "queued": "Conversión en cola.",
        "processing": "Conversión en progreso.",
        "rendering": "Generando etiqueta {done} de {total}.",
        "storing": "Guardando PDF.",
        "completed": "Conversión completada.",
        "completed_with_warnings": "Conversión completada con {count} advertencia(s): {warnings}",
        "failed": "La conversión falló ({kind}): {detail}",
        "interrupted": "Conversión interrumpida por un reinicio del servicio.",
        "internal_error": "Error interno al convertir las etiquetas: {detail}",
    },
}

SUPPORTED_LANGUAGES = frozenset(MESSAGES)


def normalize_language(language: Optional[str], default: str = DEFAULT_LANGUAGE) -> str:
    """Reduce a language tag such as 'es-MX' to a supported catalog key."""
    if language:
        primary = language.strip().lower().replace("_", "-").split("-")[0]
        if primary in SUPPORTED_LANGUAGES:
            return primary
    return default if default in SUPPORTED_LANGUAGES else DEFAULT_LANGUAGE


def translate(key: str, language: str = DEFAULT_LANGUAGE, **fields: object) -> str:
    catalog = MESSAGES.get(language, MESSAGES[DEFAULT_LANGUAGE])
    template = catalog.get(key) or MESSAGES[DEFAULT_LANGUAGE][key]
    return template.format(**fields)
