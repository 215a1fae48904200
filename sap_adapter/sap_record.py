"""Registro SAP derivado de un evento de integración."""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sap_adapter.entity_mapping import resolve_sap_entity_type
from sap_adapter.exceptions import ValidationError


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class SAPRecord:
    """Registro en SAP con el contexto de mandante/sociedad"""
    id: str
    sap_entity_type: str
    sap_key: str
    entity_type: str
    integration_event_id: str
    data: Dict[str, Any]
    sap_client: str
    company_code: str
    plant: Optional[str] = None
    warehouse: Optional[str] = None
    language: str = "EN"
    created_at: str = field(default_factory=_utcnow_iso)
    updated_at: str = field(default_factory=_utcnow_iso)
    version: int = 0

    def __post_init__(self):
        errors = []
        if not self.sap_entity_type:
            errors.append("Missing sapEntityType")
        if not self.sap_key:
            errors.append("Missing sapKey")
        if not self.entity_type:
            errors.append("Missing entityType")
        if not self.sap_client:
            errors.append("Missing sapClient")
        if not self.company_code:
            errors.append("Missing companyCode")
        if not isinstance(self.data, dict):
            errors.append("Invalid or missing data")
        if errors:
            raise ValidationError(f"SAP Record validation failed: {', '.join(errors)}", errors)

    @classmethod
    def from_integration_event(cls, event, sap_config) -> "SAPRecord":
        """
        Construye el registro SAP de un evento

        Args:
            event: IntegrationEvent validado
            sap_config: SAPConfig con mandante, sociedad, centro y almacén
        """
        data = dict(event.data or {})
        return cls(
            id=f"{event.event_id}_{int(time.time() * 1000)}",
            sap_entity_type=resolve_sap_entity_type(event.entity_type),
            sap_key=str(data.get('id') or event.event_id),
            entity_type=event.entity_type,
            integration_event_id=event.event_id,
            data=data,
            sap_client=sap_config.client,
            company_code=sap_config.company_code,
            plant=sap_config.plant,
            warehouse=sap_config.warehouse,
            language=sap_config.language or "EN",
        )

    def update_data(self, new_data: Dict[str, Any]):
        """Fusiona datos nuevos (lectura-modificación-escritura)"""
        self.data = {**self.data, **new_data}
        self.updated_at = _utcnow_iso()
        self.version += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "sapEntityType": self.sap_entity_type,
            "sapKey": self.sap_key,
            "entityType": self.entity_type,
            "integrationEventId": self.integration_event_id,
            "data": self.data,
            "sapClient": self.sap_client,
            "companyCode": self.company_code,
            "plant": self.plant,
            "warehouse": self.warehouse,
            "language": self.language,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "version": self.version,
        }
