"""Utilidades para los constructores de parámetros SAP."""

import importlib
import json
import re
from datetime import date, datetime
from typing import Any, Callable, Dict, Mapping, Optional

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def load_builder(path: Optional[str], default: Callable) -> Callable:
    """Carga un constructor de parámetros a partir de una ruta 'modulo:funcion'."""
    if not path:
        return default
    module_name, _, attr = path.partition(':') if ':' in path else path.rpartition('.')
    if not module_name or not attr:
        raise ValueError(f"Constructor SAP inválido: {path}")
    module = importlib.import_module(module_name)
    func = getattr(module, attr)
    if not callable(func):
        raise TypeError(f"Constructor SAP no callable: {path}")
    return func


def format_sap_date(value: Any) -> str:
    """Formatea una fecha como YYYYMMDD; devuelve '' si no es interpretable."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(('Z', 'z')):
            text = text[:-1] + '+00:00'
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return ''
    else:
        return ''
    return f"{parsed.year:04d}{parsed.month:02d}{parsed.day:02d}"


def today_sap_date() -> str:
    return format_sap_date(date.today())


def to_sap_field_name(key: str) -> str:
    """camelCase -> CAMEL_CASE; los nombres ya en mayúsculas no cambian."""
    key = str(key)
    if key == key.upper():
        return key
    return _CAMEL_BOUNDARY.sub("_", key).upper()


def stringify_sap_value(value: Any) -> str:
    if value is None:
        return ''
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str)
    return str(value)


def build_update_flags(fields: Mapping[str, Any]) -> Dict[str, str]:
    """Estructura ...X paralela: una marca por cada campo modificado."""
    return {key: 'X' for key in fields}


def first_present(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    """Primer valor no vacío entre varias claves alternativas."""
    for key in keys:
        value = data.get(key)
        if value not in (None, ''):
            return value
    return default
