"""Errores del adaptador SAP."""

from typing import List, Optional


class SAPAdapterError(Exception):
    """Error base del adaptador."""

    kind = "adapter"
    retryable = False


class ValidationError(SAPAdapterError):
    """Evento o registro SAP mal formado. Nunca se reintenta."""

    kind = "validation"

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = list(errors or [])


class UnsupportedOperationError(SAPAdapterError):
    """No existe BAPI para la combinación entidad/operación."""

    kind = "unsupported"


class SAPTransportError(SAPAdapterError):
    """Fallo del mecanismo RFC (conexión, sesión, red)."""

    kind = "transport"
    retryable = True
