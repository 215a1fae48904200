"""
Evento de integración canónico

Normaliza los eventos que llegan por el canal push (hub MQTT) o por el
webhook HTTP. Los dos transportes no coinciden en el formato de los nombres
de campo: se acepta lower-camel y upper-camel, prefiriendo el primero.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from sap_adapter.exceptions import ValidationError


class EventType(Enum):
    """Tipos de evento del hub"""
    CREATE = "Create"
    UPDATE = "Update"
    DELETE = "Delete"
    SYNC = "Sync"

    @classmethod
    def is_valid(cls, value: Any) -> bool:
        return value in {member.value for member in cls}


class EntityType(Enum):
    """Entidades conocidas por el adaptador"""
    # Entidades estándar del hub
    PRODUCT = "Product"
    USER = "User"
    STORE = "Store"
    INVOICE = "Invoice"

    # Entidades específicas de SAP
    MATERIAL = "Material"
    CUSTOMER = "Customer"
    VENDOR = "Vendor"
    SALES_ORDER = "SalesOrder"
    PURCHASE_ORDER = "PurchaseOrder"
    GOODS_RECEIPT = "GoodsReceipt"
    GOODS_ISSUE = "GoodsIssue"
    INVENTORY = "Inventory"
    COST_CENTER = "CostCenter"
    PROFIT_CENTER = "ProfitCenter"
    GL_ACCOUNT = "GLAccount"

    @classmethod
    def is_valid(cls, value: Any) -> bool:
        return value in {member.value for member in cls}


class EventStatus(Enum):
    """Estado del evento dentro del adaptador"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRY = "retry"


# Transiciones permitidas; 'processing' puede omitirse (pending -> completed)
_TRANSITIONS = {
    EventStatus.PENDING: {EventStatus.PROCESSING, EventStatus.COMPLETED, EventStatus.FAILED},
    EventStatus.PROCESSING: {EventStatus.COMPLETED, EventStatus.FAILED},
    EventStatus.FAILED: {EventStatus.RETRY},
    EventStatus.RETRY: {EventStatus.PROCESSING, EventStatus.COMPLETED, EventStatus.FAILED},
    EventStatus.COMPLETED: set(),
}


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _pick(source: Optional[Mapping[str, Any]], *names: str) -> Any:
    """Devuelve el primer campo presente probando lower-camel y upper-camel."""
    if not isinstance(source, Mapping):
        return None
    for name in names:
        for candidate in (name[:1].lower() + name[1:], name[:1].upper() + name[1:]):
            value = source.get(candidate)
            if value not in (None, ""):
                return value
    return None


@dataclass
class SourceSystem:
    """Sistema origen del evento"""
    erp_name: Optional[str] = None
    instance_id: Optional[str] = None
    version: Optional[str] = None

    @classmethod
    def from_raw(cls, raw: Any) -> Optional["SourceSystem"]:
        if not isinstance(raw, Mapping):
            return None
        return cls(
            erp_name=_pick(raw, "erpName"),
            instance_id=_pick(raw, "instanceId"),
            version=_pick(raw, "version"),
        )


@dataclass
class EventContext:
    """Contexto de tenant y correlación"""
    tenant_id: Optional[str] = None
    correlation_id: Optional[str] = None
    retry_count: int = 0

    @classmethod
    def from_raw(cls, raw: Any) -> Optional["EventContext"]:
        if not isinstance(raw, Mapping):
            return None
        header = _pick(raw, "header") or {}
        try:
            retry_count = int(_pick(raw, "retryCount") or 0)
        except (TypeError, ValueError):
            retry_count = 0
        return cls(
            tenant_id=_pick(header, "tenantId"),
            correlation_id=_pick(header, "correlationId"),
            retry_count=retry_count,
        )


@dataclass
class ErrorEntry:
    """Entrada del historial de errores de un evento"""
    timestamp: str
    error: Optional[str]
    retry_count: int


@dataclass
class IntegrationEvent:
    """Evento de integración validado, independiente del transporte"""
    event_type: str
    entity_type: str
    event_id: str
    timestamp: str
    data: Dict[str, Any] = field(default_factory=dict)
    payload_metadata: Optional[Dict[str, Any]] = None
    source_system: Optional[SourceSystem] = None
    context: Optional[EventContext] = None
    retry_count: int = 0
    status: EventStatus = EventStatus.PENDING
    errors: List[ErrorEntry] = field(default_factory=list)
    processed_at: Optional[str] = None

    def __post_init__(self):
        self._validate()

    @classmethod
    def from_raw_payload(cls, raw: Mapping[str, Any]) -> "IntegrationEvent":
        """
        Construye el evento canónico a partir del payload de un transporte

        Args:
            raw: Payload recibido (campos lower-camel o upper-camel)

        Returns:
            IntegrationEvent en estado pending

        Raises:
            ValidationError: si falta un campo obligatorio o es inválido
        """
        if not isinstance(raw, Mapping):
            raise ValidationError(
                "Integration Event validation failed: payload must be an object",
                ["payload must be an object"],
            )

        errors = []
        payload = _pick(raw, "payload")
        data: Any = {}
        payload_metadata = None
        if payload is not None:
            if not isinstance(payload, Mapping) or _pick(payload, "data") is None:
                errors.append("Payload must contain data property")
            else:
                data = _pick(payload, "data")
                payload_metadata = _pick(payload, "metadata")
                if not isinstance(data, Mapping):
                    errors.append("Payload data must be an object")

        event_type = _pick(raw, "eventType")
        entity_type = _pick(raw, "entityType")
        event_id = _pick(raw, "eventId")
        timestamp = _pick(raw, "timeStamp", "timestamp")
        errors = _collect_field_errors(event_type, entity_type, event_id, timestamp) + errors
        if errors:
            raise ValidationError(
                f"Integration Event validation failed: {', '.join(errors)}", errors
            )

        return cls(
            event_type=event_type,
            entity_type=entity_type,
            event_id=str(event_id),
            timestamp=str(timestamp),
            data=dict(data),
            payload_metadata=payload_metadata,
            source_system=SourceSystem.from_raw(_pick(raw, "sourceSystem")),
            context=EventContext.from_raw(_pick(raw, "context")),
        )

    def _validate(self):
        errors = _collect_field_errors(self.event_type, self.entity_type, self.event_id, self.timestamp)
        if not isinstance(self.data, dict):
            errors.append("Payload data must be an object")
        if errors:
            raise ValidationError(
                f"Integration Event validation failed: {', '.join(errors)}", errors
            )

    @property
    def correlation_id(self) -> str:
        if self.context and self.context.correlation_id:
            return self.context.correlation_id
        return self.event_id

    @property
    def tenant_id(self) -> Optional[str]:
        return self.context.tenant_id if self.context else None

    def mark_processing(self):
        self._transition(EventStatus.PROCESSING)

    def mark_as_processed(self, result) -> None:
        """Marca el evento como completado o fallido según el resultado"""
        self._transition(EventStatus.COMPLETED if result.success else EventStatus.FAILED)
        self.processed_at = _utcnow_iso()
        if not result.success:
            self.errors.append(ErrorEntry(
                timestamp=_utcnow_iso(),
                error=result.error,
                retry_count=self.retry_count,
            ))

    def mark_for_retry(self):
        """Incrementa el contador de reintentos y pasa a 'retry'"""
        self._transition(EventStatus.RETRY)
        self.retry_count += 1

    def can_retry(self, max_retries: int = 3) -> bool:
        return self.retry_count < max_retries and self.status == EventStatus.FAILED

    def _transition(self, target: EventStatus):
        if target not in _TRANSITIONS[self.status]:
            raise ValidationError(
                f"Invalid status transition {self.status.value} -> {target.value}"
            )
        self.status = target

    def to_dict(self) -> Dict[str, Any]:
        return {
            "eventType": self.event_type,
            "entityType": self.entity_type,
            "eventId": self.event_id,
            "timestamp": self.timestamp,
            "sourceSystem": {
                "erpName": self.source_system.erp_name,
                "instanceId": self.source_system.instance_id,
                "version": self.source_system.version,
            } if self.source_system else None,
            "payload": {"data": self.data, "metadata": self.payload_metadata},
            "context": {
                "header": {
                    "tenantId": self.context.tenant_id,
                    "correlationId": self.context.correlation_id,
                },
                "retryCount": self.context.retry_count,
            } if self.context else None,
            "processedAt": self.processed_at,
            "retryCount": self.retry_count,
            "status": self.status.value,
            "errors": [
                {"timestamp": e.timestamp, "error": e.error, "retryCount": e.retry_count}
                for e in self.errors
            ],
        }


def _collect_field_errors(event_type, entity_type, event_id, timestamp) -> List[str]:
    errors = []
    if not event_type:
        errors.append("Invalid or missing eventType")
    elif not EventType.is_valid(event_type):
        errors.append(f"Unsupported event type: {event_type}")
    if not entity_type:
        errors.append("Invalid or missing entityType")
    elif not EntityType.is_valid(entity_type):
        errors.append(f"Unsupported entity type: {entity_type}")
    if not event_id:
        errors.append("Missing eventId")
    if not timestamp:
        errors.append("Missing timestamp")
    return errors
