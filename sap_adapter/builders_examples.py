"""Ejemplos de constructores SAP personalizados (sap.builders en la configuración)."""

from typing import Any, Dict, Mapping

from sap_adapter.sap_transformers import BuildContext, material_create
from sap_adapter.transform_utils import build_update_flags, first_present


def material_with_plant_view(data: Mapping[str, Any], context: BuildContext) -> Dict[str, Any]:
    """Alta de material con vista de centro (MRP) además de la vista básica."""
    params = material_create(data, context)
    plant = first_present(data, 'plant', default=context.plant)
    if plant:
        plant_data = {
            'PLANT': plant,
            'MRP_TYPE': first_present(data, 'mrpType', default='PD'),
            'MRP_CTRLER': first_present(data, 'mrpController', default='001'),
        }
        params['HEADDATA']['MRP_VIEW'] = 'X'
        params['PLANTDATA'] = plant_data
        params['PLANTDATAX'] = build_update_flags(plant_data)
    return params


def production_order_release(data: Mapping[str, Any], context: BuildContext) -> Dict[str, Any]:
    """Ejemplo para una entidad registrada con register_entity()."""
    return {
        'ORDERS': [{'ORDER_NUMBER': first_present(data, 'order', 'id', default=context.sap_key)}],
        'WORK_PROCESS_GROUP': 'COWORK_BAPI',
    }
