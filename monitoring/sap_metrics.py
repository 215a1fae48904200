"""Métricas Prometheus del adaptador SAP."""

from prometheus_client import Counter, Histogram

SAP_EVENTS_PROCESSED = Counter(
    "sap_adapter_events_total",
    "Eventos de integración procesados",
    ["entity_type", "outcome"],
)
SAP_RFC_CALLS = Counter(
    "sap_adapter_rfc_calls_total",
    "Llamadas RFC/BAPI ejecutadas",
    ["function", "status"],
)
SAP_RFC_LATENCY = Histogram("sap_adapter_rfc_latency_seconds", "Latencia de llamadas RFC")
SAP_EVENT_LATENCY = Histogram("sap_adapter_event_seconds", "Tiempo de procesamiento de eventos")


def record_event(entity_type: str, success: bool):
    SAP_EVENTS_PROCESSED.labels(
        entity_type=entity_type or "unknown",
        outcome="success" if success else "failure",
    ).inc()


def record_rfc_call(function_name: str, success: bool):
    SAP_RFC_CALLS.labels(function=function_name, status="ok" if success else "error").inc()


def observe_rfc_latency(seconds: float):
    SAP_RFC_LATENCY.observe(seconds)


def observe_event_latency(seconds: float):
    SAP_EVENT_LATENCY.observe(seconds)
