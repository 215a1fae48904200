"""
Constructores de parámetros BAPI

Cada constructor recibe los datos canónicos del evento y un BuildContext y
devuelve el diccionario de parámetros que espera la BAPI. Son funciones
puras: un campo opcional ausente toma su valor por defecto, nunca provoca
una excepción.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

from sap_adapter.entity_mapping import GENERIC_BUILDER, OperationKind, ResolvedOperation
from sap_adapter.transform_utils import (
    build_update_flags,
    first_present,
    format_sap_date,
    load_builder,
    stringify_sap_value,
    to_sap_field_name,
    today_sap_date,
)

Builder = Callable[[Mapping[str, Any], "BuildContext"], Dict[str, Any]]


@dataclass
class BuildContext:
    """Contexto SAP disponible para los constructores"""
    sap_key: str
    sap_entity_type: str = ""
    client: Optional[str] = None
    company_code: Optional[str] = None
    plant: Optional[str] = None
    warehouse: Optional[str] = None
    language: str = "EN"
    event_type: Optional[str] = None

    @classmethod
    def from_record(cls, record, event_type: Optional[str] = None) -> "BuildContext":
        return cls(
            sap_key=record.sap_key,
            sap_entity_type=record.sap_entity_type,
            client=record.sap_client,
            company_code=record.company_code,
            plant=record.plant,
            warehouse=record.warehouse,
            language=record.language,
            event_type=event_type,
        )


def _key(data: Mapping[str, Any], context: BuildContext, *alternates: str) -> str:
    return str(first_present(data, 'id', *alternates, default=context.sap_key))


def _date_or_today(value: Any) -> str:
    return format_sap_date(value) if value else today_sap_date()


def _changed_fields(data: Mapping[str, Any]) -> Dict[str, Any]:
    return {to_sap_field_name(key): value for key, value in data.items()}


def _items(data: Mapping[str, Any]) -> List[Mapping[str, Any]]:
    items = data.get('items')
    if isinstance(items, list):
        return [item for item in items if isinstance(item, Mapping)]
    return []


def _search_pattern(data: Mapping[str, Any], *keys: str) -> str:
    return str(first_present(data, *keys, default='*'))


# --- Material ---------------------------------------------------------------

def material_create(data, context):
    client_data = {
        'BASE_UOM': first_present(data, 'baseUnit', default='EA'),
        'MATL_GROUP': first_present(data, 'materialGroup', 'category', default=''),
        'DIVISION': first_present(data, 'division', default='00'),
        'NET_WEIGHT': first_present(data, 'weight', default=0),
        'UNIT_OF_WT': first_present(data, 'weightUnit', default='KG'),
    }
    return {
        'HEADDATA': {
            'MATERIAL': _key(data, context, 'code'),
            'IND_SECTOR': first_present(data, 'industrySector', default='M'),
            'MATL_TYPE': first_present(data, 'type', 'materialType', default='FERT'),
            'BASIC_VIEW': 'X',
        },
        'CLIENTDATA': client_data,
        'CLIENTDATAX': build_update_flags(client_data),
        'MATERIALDESCRIPTION': [{
            'LANGU': context.language,
            'MATL_DESC': first_present(data, 'name', 'description', default=''),
        }],
    }


def material_update(data, context):
    fields = _changed_fields(data)
    return {
        'HEADDATA': {'MATERIAL': _key(data, context, 'code')},
        'CLIENTDATA': fields,
        'CLIENTDATAX': build_update_flags(fields),
    }


def material_read(data, context):
    params = {'MATERIAL': _key(data, context, 'code')}
    if context.plant:
        params['PLANT'] = context.plant
    return params


def material_search(data, context):
    return {
        'MAXROWS': first_present(data, 'limit', default=100),
        'MATNRSELECTION': [{
            'SIGN': 'I',
            'OPTION': 'CP',
            'MATNR_LOW': _search_pattern(data, 'material', 'id'),
        }],
    }


# --- Cliente ----------------------------------------------------------------

def customer_create(data, context):
    return {
        'PI_CUSTOMER': _key(data, context, 'customerNumber'),
        'PI_PERSONALDATA': {
            'FIRSTNAME': first_present(data, 'firstName', 'name', default=''),
            'LASTNAME': first_present(data, 'lastName', default=''),
            'CITY': first_present(data, 'city', default=''),
            'POSTL_COD1': first_present(data, 'postalCode', 'zipCode', default=''),
            'STREET': first_present(data, 'street', 'address', default=''),
            'COUNTRY': first_present(data, 'country', default='US'),
            'LANGU_P': context.language,
            'CURRENCY': first_present(data, 'currency', default='USD'),
            'TEL1_NUMBR': first_present(data, 'phone', default=''),
            'E_MAIL': first_present(data, 'email', default=''),
        },
        'PI_COPYREFERENCE': {
            'SALESORG': first_present(data, 'salesOrg', default='1000'),
            'DISTR_CHAN': first_present(data, 'distributionChannel', default='10'),
            'DIVISION': first_present(data, 'division', default='00'),
            'REF_CUSTMR': first_present(data, 'referenceCustomer', default=''),
        },
        'PI_COMPANYDATA': {
            'COMP_CODE': context.company_code,
            'PMNTTRMS': first_present(data, 'paymentTerms', default='0001'),
        },
    }


def customer_update(data, context):
    fields = _changed_fields(data)
    return {
        'CUSTOMERNO': _key(data, context, 'customerNumber'),
        'PI_PERSONALDATA': fields,
        'PI_PERSONALDATAX': build_update_flags(fields),
    }


def customer_read(data, context):
    return {
        'CUSTOMERNO': _key(data, context, 'customerNumber'),
        'PI_COMPANYCODE': context.company_code,
    }


def customer_search(data, context):
    return {
        'MAXROWS': first_present(data, 'limit', default=100),
        'IDRANGE': [{'SIGN': 'I', 'OPTION': 'CP', 'LOW': _search_pattern(data, 'customer', 'id')}],
    }


# --- Proveedor --------------------------------------------------------------

def vendor_create(data, context):
    return {
        'VENDOR': _key(data, context, 'vendorNumber'),
        'GENERALDATA': {
            'NAME': first_present(data, 'name', 'companyName', default=''),
            'COUNTRY': first_present(data, 'country', default='US'),
            'CITY': first_present(data, 'city', default=''),
            'POSTL_CODE': first_present(data, 'postalCode', 'zipCode', default=''),
            'STREET': first_present(data, 'street', 'address', default=''),
            'TELEPHONE': first_present(data, 'phone', default=''),
            'E_MAIL': first_present(data, 'email', default=''),
            'LANGU': context.language,
        },
        'COMPANYDATA': {
            'COMP_CODE': context.company_code,
            'CURRENCY': first_present(data, 'currency', default='USD'),
            'PMNTTRMS': first_present(data, 'paymentTerms', default='0001'),
        },
    }


def vendor_update(data, context):
    fields = _changed_fields(data)
    return {
        'VENDOR': _key(data, context, 'vendorNumber'),
        'GENERALDATA': fields,
        'GENERALDATAX': build_update_flags(fields),
    }


def vendor_read(data, context):
    return {
        'VENDORNO': _key(data, context, 'vendorNumber'),
        'COMPANYCODE': context.company_code,
    }


def vendor_search(data, context):
    return {
        'MAXROWS': first_present(data, 'limit', default=100),
        'IDRANGE': [{'SIGN': 'I', 'OPTION': 'CP', 'LOW': _search_pattern(data, 'vendor', 'id')}],
    }


# --- Pedido de venta --------------------------------------------------------

def sales_order_create(data, context):
    items = _items(data)
    order_items = []
    schedules = []
    for index, item in enumerate(items, start=1):
        item_number = f"{index * 10:06d}"
        order_items.append({
            'ITM_NUMBER': item_number,
            'MATERIAL': str(first_present(item, 'material', 'materialId', 'productId', default='')),
            'TARGET_QTY': first_present(item, 'quantity', default=0),
            'TARGET_QU': first_present(item, 'unit', default='EA'),
            'PLANT': first_present(item, 'plant', default=context.plant or ''),
        })
        schedules.append({
            'ITM_NUMBER': item_number,
            'REQ_QTY': first_present(item, 'quantity', default=0),
        })
    return {
        'SALESDOCUMENTIN': _key(data, context, 'salesDocument'),
        'ORDER_HEADER_IN': {
            'DOC_TYPE': first_present(data, 'orderType', default='OR'),
            'SALES_ORG': first_present(data, 'salesOrg', default='1000'),
            'DISTR_CHAN': first_present(data, 'distributionChannel', default='10'),
            'DIVISION': first_present(data, 'division', default='00'),
            'DOC_DATE': _date_or_today(data.get('orderDate')),
            'REQ_DATE_H': format_sap_date(data.get('requestedDeliveryDate')),
            'CURRENCY': first_present(data, 'currency', default='USD'),
            'PURCH_NO_C': first_present(data, 'customerReference', default=''),
        },
        'ORDER_PARTNERS': [{
            'PARTN_ROLE': 'AG',
            'PARTN_NUMB': first_present(data, 'customerId', 'soldToParty', default=''),
        }],
        'ORDER_ITEMS_IN': order_items,
        'ORDER_SCHEDULES_IN': schedules,
    }


def sales_order_update(data, context):
    fields = _changed_fields(data)
    flags = build_update_flags(fields)
    flags['UPDATEFLAG'] = 'U'
    return {
        'SALESDOCUMENT': _key(data, context, 'salesDocument'),
        'ORDER_HEADER_IN': fields,
        'ORDER_HEADER_INX': flags,
    }


def sales_order_read(data, context):
    return {'SALESDOCUMENT': _key(data, context, 'salesDocument')}


def sales_order_search(data, context):
    return {
        'CUSTOMER_NUMBER': first_present(data, 'customerId', 'soldToParty', default=''),
        'SALES_ORGANIZATION': first_present(data, 'salesOrg', default='1000'),
        'MATERIAL': first_present(data, 'material', default=''),
    }


# --- Pedido de compra -------------------------------------------------------

def purchase_order_create(data, context):
    header = {
        'PO_NUMBER': _key(data, context, 'purchaseOrder'),
        'COMP_CODE': context.company_code,
        'DOC_TYPE': first_present(data, 'documentType', default='NB'),
        'VENDOR': first_present(data, 'vendorId', 'supplier', default=''),
        'PURCH_ORG': first_present(data, 'purchasingOrg', default='1000'),
        'PUR_GROUP': first_present(data, 'purchasingGroup', default='001'),
        'CURRENCY': first_present(data, 'currency', default='USD'),
        'DOC_DATE': _date_or_today(data.get('documentDate')),
    }
    po_items = []
    po_items_x = []
    for index, item in enumerate(_items(data), start=1):
        line = {
            'PO_ITEM': f"{index * 10:05d}",
            'MATERIAL': str(first_present(item, 'material', 'materialId', 'productId', default='')),
            'PLANT': first_present(item, 'plant', default=context.plant or ''),
            'QUANTITY': first_present(item, 'quantity', default=0),
            'NET_PRICE': first_present(item, 'netPrice', 'price', default=0),
        }
        po_items.append(line)
        flags = build_update_flags(line)
        flags['PO_ITEM'] = line['PO_ITEM']
        flags['PO_ITEMX'] = 'X'
        po_items_x.append(flags)
    return {
        'POHEADER': header,
        'POHEADERX': build_update_flags(header),
        'POITEM': po_items,
        'POITEMX': po_items_x,
    }


def purchase_order_update(data, context):
    fields = _changed_fields(data)
    return {
        'PURCHASEORDER': _key(data, context, 'purchaseOrder'),
        'POHEADER': fields,
        'POHEADERX': build_update_flags(fields),
    }


def purchase_order_read(data, context):
    return {'PURCHASEORDER': _key(data, context, 'purchaseOrder'), 'ITEMS': 'X'}


# --- Movimientos de mercancía -----------------------------------------------

_GOODS_MOVEMENT_DEFAULTS = {
    # entidad: (GM_CODE, clase de movimiento)
    'GOODS_RECEIPT': ('01', '101'),
    'GOODS_ISSUE': ('03', '201'),
}


def goods_movement_create(data, context):
    gm_code, move_type = _GOODS_MOVEMENT_DEFAULTS.get(context.sap_entity_type, ('01', '101'))
    lines = _items(data) or [data]
    return {
        'GOODSMVT_HEADER': {
            'PSTNG_DATE': _date_or_today(data.get('postingDate')),
            'DOC_DATE': _date_or_today(data.get('documentDate')),
            'REF_DOC_NO': _key(data, context, 'reference'),
            'HEADER_TXT': first_present(data, 'text', 'description', default=''),
        },
        'GOODSMVT_CODE': {'GM_CODE': first_present(data, 'movementCode', default=gm_code)},
        'GOODSMVT_ITEM': [
            {
                'MATERIAL': str(first_present(line, 'material', 'materialId', 'productId', default='')),
                'PLANT': first_present(line, 'plant', default=context.plant or ''),
                'STGE_LOC': first_present(line, 'storageLocation', default=context.warehouse or ''),
                'MOVE_TYPE': first_present(line, 'movementType', default=move_type),
                'ENTRY_QNT': first_present(line, 'quantity', default=0),
                'ENTRY_UOM': first_present(line, 'unit', default='EA'),
                'PO_NUMBER': first_present(line, 'purchaseOrder', default=''),
            }
            for line in lines
        ],
    }


def generic(data, context):
    """Mapeo genérico: claves a MAYUSCULAS_CON_GUION y valores a texto"""
    return {to_sap_field_name(key): stringify_sap_value(value) for key, value in data.items()}


BUILDERS: Dict[str, Builder] = {
    'material_create': material_create,
    'material_update': material_update,
    'material_read': material_read,
    'material_search': material_search,
    'customer_create': customer_create,
    'customer_update': customer_update,
    'customer_read': customer_read,
    'customer_search': customer_search,
    'vendor_create': vendor_create,
    'vendor_update': vendor_update,
    'vendor_read': vendor_read,
    'vendor_search': vendor_search,
    'sales_order_create': sales_order_create,
    'sales_order_update': sales_order_update,
    'sales_order_read': sales_order_read,
    'sales_order_search': sales_order_search,
    'purchase_order_create': purchase_order_create,
    'purchase_order_update': purchase_order_update,
    'purchase_order_read': purchase_order_read,
    'goods_movement_create': goods_movement_create,
    GENERIC_BUILDER: generic,
}


class SAPTransformer:
    """Selecciona y aplica el constructor de parámetros de cada BAPI."""

    def __init__(self, overrides: Optional[Dict[str, str]] = None):
        self.overrides = dict(overrides or {})
        self._cache: Dict[str, Builder] = {}

    def get_builder(self, builder_id: str) -> Builder:
        if builder_id not in self._cache:
            default = BUILDERS.get(builder_id, generic)
            self._cache[builder_id] = load_builder(self.overrides.get(builder_id), default)
        return self._cache[builder_id]

    def build_parameters(self, resolved: ResolvedOperation, data: Mapping[str, Any],
                         context: BuildContext) -> Dict[str, Any]:
        """
        Construye los parámetros de la BAPI resuelta

        El borrado lógico solo envía la clave y las marcas de borrado; el resto
        de campos del evento no se modifica en SAP.
        """
        if resolved.kind == OperationKind.DELETE and resolved.extra_fields:
            payload = {'id': context.sap_key, **resolved.extra_fields}
        else:
            payload = {**data, **resolved.extra_fields}
        builder = self.get_builder(resolved.builder_id)
        return builder(payload, context)
