"""
Tabla de mapeo de entidades y registro de BAPIs

Cada tipo de entidad SAP se registra como un EntityOperations con las BAPIs
que soporta por tipo de operación. Añadir una entidad nueva es registrar
un dato, no modificar código.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional

from sap_adapter.exceptions import UnsupportedOperationError
from sap_adapter.processing_result import SAPOperation
from sap_adapter.transform_utils import today_sap_date

# Entidad canónica -> entidad SAP
SAP_ENTITY_MAPPING: Dict[str, str] = {
    'Product': 'MATERIAL',
    'User': 'USER',
    'Store': 'PLANT',
    'Invoice': 'BILLING_DOCUMENT',
    'Material': 'MATERIAL',
    'Customer': 'CUSTOMER',
    'Vendor': 'VENDOR',
    'SalesOrder': 'SALES_ORDER',
    'PurchaseOrder': 'PURCHASE_ORDER',
    'GoodsReceipt': 'GOODS_RECEIPT',
    'GoodsIssue': 'GOODS_ISSUE',
    'Inventory': 'STOCK',
    'CostCenter': 'COST_CENTER',
    'ProfitCenter': 'PROFIT_CENTER',
    'GLAccount': 'GL_ACCOUNT',
}

# Tablas base para lecturas genéricas con RFC_READ_TABLE
SAP_TABLE_NAMES: Dict[str, str] = {
    'MATERIAL': 'MARA',
    'CUSTOMER': 'KNA1',
    'VENDOR': 'LFA1',
    'SALES_ORDER': 'VBAK',
    'PURCHASE_ORDER': 'EKKO',
    'GOODS_RECEIPT': 'MKPF',
    'GOODS_ISSUE': 'MKPF',
    'STOCK': 'MARD',
    'COST_CENTER': 'CSKS',
    'PROFIT_CENTER': 'CEPC',
    'GL_ACCOUNT': 'SKA1',
}

COMMIT_FUNCTION = 'BAPI_TRANSACTION_COMMIT'
GENERIC_BUILDER = 'generic'


class OperationKind(Enum):
    """Clase de operación solicitada al registro"""
    CREATE = "Create"
    UPDATE = "Update"
    DELETE = "Delete"
    READ = "Read"
    SEARCH = "Search"


_KIND_TO_OPERATION = {
    OperationKind.CREATE: SAPOperation.CREATE,
    OperationKind.UPDATE: SAPOperation.UPDATE,
    OperationKind.DELETE: SAPOperation.DELETE,
    OperationKind.READ: SAPOperation.READ,
    OperationKind.SEARCH: SAPOperation.READ,
}


@dataclass(frozen=True)
class BAPIOperation:
    """BAPI registrada para una operación"""
    function_name: str
    builder_id: Optional[str] = None  # None -> constructor genérico
    commit: bool = True


@dataclass
class EntityOperations:
    """Operaciones soportadas por un tipo de entidad SAP"""
    sap_entity_type: str
    operations: Dict[OperationKind, BAPIOperation] = field(default_factory=dict)
    physical_delete: bool = False


@dataclass
class ResolvedOperation:
    """Resultado de resolver (entidad, operación) contra el registro"""
    function_name: str
    builder_id: str
    commit: bool
    kind: OperationKind
    operation: SAPOperation
    sap_entity_type: str
    extra_fields: Dict[str, str] = field(default_factory=dict)


def _entity(sap_entity_type: str, **operations: BAPIOperation) -> EntityOperations:
    return EntityOperations(
        sap_entity_type=sap_entity_type,
        operations={OperationKind[name.upper()]: op for name, op in operations.items()},
    )


BAPI_REGISTRY: Dict[str, EntityOperations] = {}


def register_entity(entity: EntityOperations) -> None:
    """Registra o reemplaza las operaciones de un tipo de entidad"""
    BAPI_REGISTRY[entity.sap_entity_type] = entity


for _entry in (
    _entity(
        'MATERIAL',
        create=BAPIOperation('BAPI_MATERIAL_SAVEDATA', 'material_create'),
        update=BAPIOperation('BAPI_MATERIAL_SAVEDATA', 'material_update'),
        read=BAPIOperation('BAPI_MATERIAL_GET_DETAIL', 'material_read', commit=False),
        search=BAPIOperation('BAPI_MATERIAL_GETLIST', 'material_search', commit=False),
    ),
    _entity(
        'CUSTOMER',
        create=BAPIOperation('BAPI_CUSTOMER_CREATEFROMDATA1', 'customer_create'),
        update=BAPIOperation('BAPI_CUSTOMER_CHANGEFROMDATA1', 'customer_update'),
        read=BAPIOperation('BAPI_CUSTOMER_GETDETAIL2', 'customer_read', commit=False),
        search=BAPIOperation('BAPI_CUSTOMER_GETLIST', 'customer_search', commit=False),
    ),
    _entity(
        'VENDOR',
        create=BAPIOperation('BAPI_VENDOR_CREATE', 'vendor_create'),
        update=BAPIOperation('BAPI_VENDOR_CHANGE', 'vendor_update'),
        read=BAPIOperation('BAPI_VENDOR_GETDETAIL', 'vendor_read', commit=False),
        search=BAPIOperation('BAPI_VENDOR_GETLIST', 'vendor_search', commit=False),
    ),
    _entity(
        'SALES_ORDER',
        create=BAPIOperation('BAPI_SALESORDER_CREATEFROMDAT2', 'sales_order_create'),
        update=BAPIOperation('BAPI_SALESORDER_CHANGE', 'sales_order_update'),
        read=BAPIOperation('BAPI_SALESORDER_GETDETAIL', 'sales_order_read', commit=False),
        search=BAPIOperation('BAPI_SALESORDER_GETLIST', 'sales_order_search', commit=False),
    ),
    _entity(
        'PURCHASE_ORDER',
        create=BAPIOperation('BAPI_PO_CREATE1', 'purchase_order_create'),
        update=BAPIOperation('BAPI_PO_CHANGE', 'purchase_order_update'),
        read=BAPIOperation('BAPI_PO_GETDETAIL1', 'purchase_order_read', commit=False),
    ),
    _entity(
        'GOODS_RECEIPT',
        create=BAPIOperation('BAPI_GOODSMVT_CREATE', 'goods_movement_create'),
    ),
    _entity(
        'GOODS_ISSUE',
        create=BAPIOperation('BAPI_GOODSMVT_CREATE', 'goods_movement_create'),
    ),
    _entity(
        'COST_CENTER',
        create=BAPIOperation('BAPI_COSTCENTER_CREATEMULTIPLE'),
        update=BAPIOperation('BAPI_COSTCENTER_CHANGEMULTIPLE'),
    ),
    _entity(
        'PROFIT_CENTER',
        create=BAPIOperation('BAPI_PROFITCENTER_CREATE'),
    ),
):
    register_entity(_entry)


def resolve_sap_entity_type(entity_type: str) -> str:
    """Entidad canónica -> entidad SAP. Lo desconocido se devuelve igual."""
    return SAP_ENTITY_MAPPING.get(entity_type, entity_type)


def get_sap_table_name(sap_entity_type: str) -> str:
    return SAP_TABLE_NAMES.get(str(sap_entity_type).upper(), str(sap_entity_type).upper())


def resolve_operation(sap_entity_type: str, kind: OperationKind,
                      physical_delete: bool = False) -> ResolvedOperation:
    """
    Selecciona la BAPI para una entidad SAP y una clase de operación

    Delete se resuelve como Update con marca de borrado (DELETION_FLAG y
    DELETION_DATE) salvo que se pida borrado físico.

    Raises:
        UnsupportedOperationError: si la combinación no está registrada
    """
    entity_key = str(sap_entity_type).upper()
    entity = BAPI_REGISTRY.get(entity_key)

    if kind == OperationKind.DELETE:
        if physical_delete:
            bapi = entity.operations.get(OperationKind.DELETE) if entity and entity.physical_delete else None
            if bapi is None:
                raise UnsupportedOperationError(
                    f"Physical deletion not supported for entity type: {sap_entity_type}"
                )
            return _resolved(entity_key, kind, bapi)
        bapi = entity.operations.get(OperationKind.UPDATE) if entity else None
        if bapi is None:
            raise UnsupportedOperationError(
                f"Unsupported entity type for {kind.value}: {sap_entity_type}"
            )
        return _resolved(entity_key, kind, bapi, extra_fields={
            'DELETION_FLAG': 'X',
            'DELETION_DATE': today_sap_date(),
        })

    bapi = entity.operations.get(kind) if entity else None
    if bapi is None:
        raise UnsupportedOperationError(
            f"Unsupported entity type for {kind.value}: {sap_entity_type}"
        )
    return _resolved(entity_key, kind, bapi)


def _resolved(sap_entity_type: str, kind: OperationKind, bapi: BAPIOperation,
              extra_fields: Optional[Dict[str, str]] = None) -> ResolvedOperation:
    return ResolvedOperation(
        function_name=bapi.function_name,
        builder_id=bapi.builder_id or GENERIC_BUILDER,
        commit=bapi.commit,
        kind=kind,
        operation=_KIND_TO_OPERATION[kind],
        sap_entity_type=sap_entity_type,
        extra_fields=dict(extra_fields or {}),
    )
