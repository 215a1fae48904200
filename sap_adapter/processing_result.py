"""Resultado normalizado del procesamiento de un evento en SAP."""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class SAPOperation(Enum):
    """Operaciones SAP"""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    READ = "READ"
    SYNC = "SYNC"
    VALIDATE = "VALIDATE"


# Operación genérica para fallos anteriores a la selección de BAPI
PROCESS_OPERATION = "PROCESS"


def _operation_name(operation: Any) -> str:
    return operation.value if isinstance(operation, SAPOperation) else str(operation)


@dataclass
class ProcessingResult:
    """Resultado de intentar una operación en SAP"""
    success: bool
    event_id: Optional[str]
    entity_type: Optional[str]
    operation: str
    sap_result: Optional[Dict[str, Any]] = None
    message: Optional[str] = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    processing_time_ms: Optional[float] = None
    retryable: bool = True

    @classmethod
    def succeeded(cls, event_id, entity_type, operation, sap_result=None,
                  metadata: Optional[Dict[str, Any]] = None) -> "ProcessingResult":
        operation = _operation_name(operation)
        return cls(
            success=True,
            event_id=event_id,
            entity_type=entity_type,
            operation=operation,
            sap_result=sap_result,
            message=f"Successfully processed {operation} for {entity_type}",
            metadata=dict(metadata or {}),
            retryable=False,
        )

    @classmethod
    def failed(cls, event_id, entity_type, operation, error: Any, retryable: bool = True,
               metadata: Optional[Dict[str, Any]] = None) -> "ProcessingResult":
        operation = _operation_name(operation)
        error_message = str(error)
        return cls(
            success=False,
            event_id=event_id,
            entity_type=entity_type,
            operation=operation,
            error=error_message,
            message=f"Failed to process {operation} for {entity_type}: {error_message}",
            metadata=dict(metadata or {}),
            retryable=retryable,
        )

    def __post_init__(self):
        self.operation = _operation_name(self.operation)
        # Un resultado exitoso nunca es reintentable
        if self.success:
            self.retryable = False

    def set_processing_time(self, start: float) -> float:
        """
        Fija el tiempo de procesamiento a partir de un time.monotonic() previo

        Solo la primera llamada tiene efecto.
        """
        if self.processing_time_ms is None:
            self.processing_time_ms = max(0.0, round((time.monotonic() - start) * 1000, 3))
            self.metadata["processing_time_ms"] = self.processing_time_ms
        return self.processing_time_ms

    def add_sap_metadata(self, sap_metadata: Dict[str, Any]):
        self.metadata.setdefault("sap", {}).update(sap_metadata)

    def summary(self) -> str:
        status = "SUCCESS" if self.success else "FAILURE"
        elapsed = f" ({self.processing_time_ms}ms)" if self.processing_time_ms is not None else ""
        return f"[{status}] {self.operation} {self.entity_type} - Event: {self.event_id}{elapsed}"

    def to_wire(self) -> Dict[str, Any]:
        """Forma que recibe el transporte que entregó el evento"""
        wire = {
            "success": self.success,
            "message": self.message,
            "eventId": self.event_id,
            "timestamp": self.timestamp,
        }
        if self.error is not None:
            wire["error"] = self.error
        return wire

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "eventId": self.event_id,
            "entityType": self.entity_type,
            "operation": self.operation,
            "sapResult": self.sap_result,
            "message": self.message,
            "error": self.error,
            "metadata": self.metadata,
            "timestamp": self.timestamp,
            "processingTime": self.processing_time_ms,
            "retryable": self.retryable,
        }
