"""
Normalización de respuestas BAPI

Convierte la respuesta cruda de una llamada RFC (o la excepción que produjo)
en un ProcessingResult. Los campos que se inspeccionan están centralizados
aquí:

- MESSAGE_LIST_FIELDS: nombres posibles de la tabla de mensajes; el primero
  presente se toma como la lista de mensajes. Un mensaje suelto (dict) cuenta
  como una lista de un elemento.
- OBJECT_KEY_FIELDS: campos que pueden traer la clave del objeto de negocio;
  gana el primero no vacío.

Severidades: E (error) y A (abort) marcan la respuesta como fallida; W
(warning) nunca falla y se adjunta aparte; cualquier otro código se ignora.
"""

from typing import Any, Dict, List, Mapping, Optional

from sap_adapter.processing_result import ProcessingResult

MESSAGE_LIST_FIELDS = ("RETURN", "ET_RETURN", "T_RETURN")
OBJECT_KEY_FIELDS = (
    "MATERIAL",
    "CUSTOMER",
    "VENDOR",
    "SALESDOCUMENT",
    "PURCHASEORDER",
    "DOCUMENT_NUMBER",
    "MATERIALDOCUMENT",
)

ERROR_SEVERITIES = frozenset({"E", "A"})
WARNING_SEVERITY = "W"


def _first(message: Mapping[str, Any], *keys: str) -> str:
    for key in keys:
        value = message.get(key)
        if value not in (None, ""):
            return str(value)
    return ""


def message_severity(message: Mapping[str, Any]) -> str:
    return _first(message, "TYPE", "MESSAGE_TYPE").upper()


def format_message(message: Mapping[str, Any]) -> str:
    """'{ID}{NUMBER}: {MESSAGE}'"""
    message_id = _first(message, "ID", "MESSAGE_ID")
    number = _first(message, "NUMBER", "MESSAGE_NUMBER")
    return f"{message_id}{number}: {_first(message, 'MESSAGE')}"


def extract_messages(response: Optional[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Lista de mensajes BAPI de una respuesta (vacía si no hay)"""
    if not isinstance(response, Mapping):
        return []
    for field_name in MESSAGE_LIST_FIELDS:
        value = response.get(field_name)
        if value is None:
            continue
        if isinstance(value, Mapping):
            return [dict(value)]
        if isinstance(value, (list, tuple)):
            return [dict(item) for item in value if isinstance(item, Mapping)]
        return []
    return []


def error_messages(messages: List[Mapping[str, Any]]) -> List[Mapping[str, Any]]:
    return [message for message in messages if message_severity(message) in ERROR_SEVERITIES]


def has_errors(messages: List[Mapping[str, Any]]) -> bool:
    return bool(error_messages(messages))


def extract_object_key(response: Mapping[str, Any]) -> Optional[str]:
    for field_name in OBJECT_KEY_FIELDS:
        value = response.get(field_name)
        if value not in (None, "") and not isinstance(value, (Mapping, list, tuple)):
            return str(value)
    return None


def normalize_result(event_id: str, entity_type: str, operation: Any,
                     response_or_error: Any, default_key: Optional[str] = None) -> ProcessingResult:
    """
    Clasifica una respuesta RFC o una excepción en un ProcessingResult

    Args:
        event_id: id del evento de integración
        entity_type: tipo de entidad canónico
        operation: SAPOperation ejecutada
        response_or_error: respuesta decodificada o excepción del transporte
        default_key: clave a usar como object_key si la respuesta no trae ninguna
    """
    if isinstance(response_or_error, BaseException):
        return ProcessingResult.failed(
            event_id,
            entity_type,
            operation,
            str(response_or_error),
            retryable=getattr(response_or_error, "retryable", True),
            metadata={"error_kind": getattr(response_or_error, "kind", "transport")},
        )

    response = response_or_error if isinstance(response_or_error, Mapping) else {}
    messages = extract_messages(response)
    function_name = response.get("FUNCTION_NAME")

    errors = error_messages(messages)
    if errors:
        error_text = "SAP BAPI Error: " + "; ".join(format_message(message) for message in errors)
        failure = ProcessingResult.failed(
            event_id,
            entity_type,
            operation,
            error_text,
            retryable=True,
            metadata={
                "bapi_messages": messages,
                "bapi_function": function_name,
                "error_kind": "business",
            },
        )
        failure.sap_result = dict(response)
        return failure

    return ProcessingResult.succeeded(
        event_id,
        entity_type,
        operation,
        sap_result=dict(response),
        metadata={
            "object_key": extract_object_key(response) or default_key,
            "warnings": [m for m in messages if message_severity(m) == WARNING_SEVERITY],
            "bapi_messages": messages,
            "bapi_function": function_name,
        },
    )
