"""
Orquestador del adaptador SAP

Recibe payloads crudos desde el canal push o el webhook, los valida como
IntegrationEvent, resuelve la BAPI, construye parámetros, invoca SAP y
normaliza la respuesta en un ProcessingResult. process_event nunca lanza.
"""

import asyncio
import functools
import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from config import AdapterConfig
from monitoring.sap_metrics import observe_event_latency, record_event
from sap_adapter.entity_mapping import (
    OperationKind,
    ResolvedOperation,
    get_sap_table_name,
    resolve_operation,
    resolve_sap_entity_type,
)
from sap_adapter.exceptions import SAPAdapterError, UnsupportedOperationError, ValidationError
from sap_adapter.integration_event import EventType, IntegrationEvent
from sap_adapter.processing_result import PROCESS_OPERATION, ProcessingResult, SAPOperation
from sap_adapter.push_channel import PushChannelClient
from sap_adapter.result_normalizer import normalize_result
from sap_adapter.rfc_service import SAPRFCService
from sap_adapter.sap_connector import SAPConnector
from sap_adapter.sap_record import SAPRecord
from sap_adapter.sap_transformers import BuildContext, SAPTransformer
from sap_adapter.transform_utils import to_sap_field_name
from sap_adapter.webhook_server import WebhookServer

EVENT_PROCESSED = "event-processed"

EventObserver = Callable[[str, Dict[str, Any]], None]


def _raw_field(raw: Any, name: str) -> Optional[str]:
    if not isinstance(raw, Mapping):
        return None
    value = raw.get(name)
    if value is None:
        value = raw.get(name[0].upper() + name[1:])
    return value


class SAPAdapter:
    """Adaptador entre eventos de integración y BAPIs SAP."""

    def __init__(self, config: AdapterConfig, transport=None, logger: Optional[logging.Logger] = None):
        self.config = config
        base_logger = logger or logging.getLogger("sap_adapter")
        self._base_logger = base_logger
        self.logger = base_logger.getChild("sap.adapter")
        if transport is None:
            transport = SAPConnector(config.sap, base_logger)
        self.rfc = SAPRFCService(transport, base_logger)
        self.transformer = SAPTransformer(config.sap.builders)

        self._stats_lock = threading.Lock()
        self.stats: Dict[str, Any] = {
            "events_processed": 0,
            "events_successful": 0,
            "events_failed": 0,
            "total_processing_time_ms": 0.0,
            "average_processing_time_ms": 0.0,
            "start_time": None,
        }
        self._observers: List[EventObserver] = []

        self.push_channel = None
        self.webhook = None
        self._queue: Optional[asyncio.Queue] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._tasks: List[asyncio.Task] = []
        self._running = False

    # ------------------------------------------------------------------
    # Ciclo de vida
    # ------------------------------------------------------------------

    async def start(self):
        if self._running:
            return
        self._loop = asyncio.get_running_loop()
        self.rfc.connect()
        self._running = True
        with self._stats_lock:
            self.stats["start_time"] = time.time()

        self._queue = asyncio.Queue(maxsize=self.config.queue_size)
        self._tasks = [
            self._loop.create_task(self._consume_events(), name="sap-event-consumer"),
        ]

        if self.config.push_channel.enabled:
            self.push_channel = PushChannelClient(
                self.config.push_channel, self._base_logger, on_event=self.submit_event
            )
            self.push_channel.start()

        if self.config.webhook.enabled:
            self.webhook = WebhookServer(
                self.config.webhook,
                self._base_logger,
                event_handler=self.process_event_threadsafe,
                health_provider=self.get_health_threadsafe,
                status_provider=self.get_status,
            )
            self.webhook.start()

        self.logger.info("Adaptador SAP iniciado (%s %s)", self.config.name, self.config.version)

    async def stop(self):
        if not self._running:
            return
        self._running = False
        if self.webhook:
            self.webhook.stop()
        if self.push_channel:
            self.push_channel.stop()
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        self.rfc.disconnect()
        self.logger.info("Adaptador SAP detenido")

    def submit_event(self, raw_payload: Any):
        """Encola un payload desde otro hilo (callback del canal push)"""
        if self._loop is None or self._queue is None:
            self.logger.warning("Evento recibido con el adaptador detenido; descartado")
            return
        self._loop.call_soon_threadsafe(self._enqueue, raw_payload)

    def _enqueue(self, raw_payload: Any):
        try:
            self._queue.put_nowait(raw_payload)
        except asyncio.QueueFull:
            self.logger.error("Cola de eventos llena (%s); evento descartado", self._queue.maxsize)

    async def _consume_events(self):
        while self._running:
            raw_payload = await self._queue.get()
            try:
                result = await self.process_event(raw_payload)
                self._publish_result(result)
            finally:
                self._queue.task_done()

    def _publish_result(self, result: ProcessingResult):
        if self.push_channel is None:
            return
        try:
            self.push_channel.publish_result(result)
        except Exception as exc:  # noqa: BLE001
            self.logger.error("Error publicando resultado del evento %s: %s", result.event_id, exc)

    def process_event_threadsafe(self, raw_payload: Any) -> ProcessingResult:
        """Ejecuta process_event en el loop del adaptador desde otro hilo"""
        future = asyncio.run_coroutine_threadsafe(self.process_event(raw_payload), self._loop)
        return future.result(timeout=self.config.webhook.request_timeout)

    def get_health_threadsafe(self) -> Dict[str, Any]:
        future = asyncio.run_coroutine_threadsafe(self.get_health(), self._loop)
        return future.result(timeout=self.config.webhook.request_timeout)

    # ------------------------------------------------------------------
    # Procesamiento de eventos
    # ------------------------------------------------------------------

    async def process_event(self, raw_payload: Any) -> ProcessingResult:
        """
        Procesa un payload crudo y devuelve siempre un ProcessingResult

        Los errores de validación y de operación no soportada no llegan a
        SAP ni tocan las estadísticas RFC.
        """
        start = time.monotonic()
        try:
            event = IntegrationEvent.from_raw_payload(raw_payload)
        except ValidationError as exc:
            self.logger.warning("Evento inválido %s: %s", _raw_field(raw_payload, "eventId"), exc)
            result = ProcessingResult.failed(
                _raw_field(raw_payload, "eventId"),
                _raw_field(raw_payload, "entityType"),
                PROCESS_OPERATION,
                exc,
                retryable=False,
                metadata={"error_kind": exc.kind, "validation_errors": exc.errors},
            )
            return self._finish(result, start)

        self.logger.info(
            "Procesando evento %s %s/%s", event.event_id, event.event_type, event.entity_type
        )
        event.mark_processing()
        record = None
        try:
            record = SAPRecord.from_integration_event(event, self.config.sap)
            result = await self._dispatch(event, record)
        except (ValidationError, UnsupportedOperationError) as exc:
            self.logger.warning("Evento %s rechazado: %s", event.event_id, exc)
            result = ProcessingResult.failed(
                event.event_id,
                event.entity_type,
                PROCESS_OPERATION,
                exc,
                retryable=False,
                metadata={"error_kind": exc.kind},
            )
        except Exception as exc:  # noqa: BLE001
            self.logger.exception("Error inesperado procesando evento %s", event.event_id)
            result = ProcessingResult.failed(
                event.event_id,
                event.entity_type,
                PROCESS_OPERATION,
                exc,
                metadata={"error_kind": "internal"},
            )

        event.mark_as_processed(result)
        if not result.success:
            result.metadata["can_retry"] = result.retryable and event.can_retry(self.config.max_retries)
        return self._finish(result, start, event, record)

    async def _dispatch(self, event: IntegrationEvent, record: SAPRecord) -> ProcessingResult:
        if event.event_type == EventType.CREATE.value:
            return await self._write(event, record, OperationKind.CREATE)
        if event.event_type == EventType.UPDATE.value:
            return await self._write(event, record, OperationKind.UPDATE)
        if event.event_type == EventType.DELETE.value:
            return await self._write(event, record, OperationKind.DELETE)
        if event.event_type == EventType.SYNC.value:
            return await self._sync(event, record)
        raise UnsupportedOperationError(f"Unsupported event type: {event.event_type}")

    async def _write(self, event: IntegrationEvent, record: SAPRecord, kind: OperationKind) -> ProcessingResult:
        resolved = resolve_operation(record.sap_entity_type, kind, self.config.sap.physical_delete)
        params = self._build(resolved, record, event)
        try:
            response = await self._run(
                self.rfc.execute_bapi, resolved.function_name, params, resolved.commit
            )
        except SAPAdapterError as exc:
            response = exc
        return self._normalize(event, record, resolved, response)

    async def _sync(self, event: IntegrationEvent, record: SAPRecord) -> ProcessingResult:
        """Lectura y después alta (si no existe) o modificación incondicional"""
        try:
            resolved = resolve_operation(record.sap_entity_type, OperationKind.READ)
            params = self._build(resolved, record, event)
            response = await self._run(self.rfc.execute_rfc, resolved.function_name, params)
            found = normalize_result(event.event_id, event.entity_type, resolved.operation, response).success
        except SAPAdapterError as exc:
            self.logger.info("Sync %s: lectura fallida (%s), se crea el registro", event.event_id, exc)
            found = False

        kind = OperationKind.UPDATE if found else OperationKind.CREATE
        result = await self._write(event, record, kind)
        result.metadata["sync_action"] = kind.value
        return result

    def _build(self, resolved: ResolvedOperation, record: SAPRecord, event: IntegrationEvent) -> Dict[str, Any]:
        context = BuildContext.from_record(record, event.event_type)
        return self.transformer.build_parameters(resolved, record.data, context)

    def _normalize(self, event, record, resolved: ResolvedOperation, response) -> ProcessingResult:
        result = normalize_result(
            event.event_id,
            event.entity_type,
            resolved.operation,
            response,
            default_key=record.sap_key,
        )
        result.add_sap_metadata({
            "function": resolved.function_name,
            "sap_entity_type": record.sap_entity_type,
            "sap_key": record.sap_key,
            "client": record.sap_client,
            "company_code": record.company_code,
        })
        return result

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args))

    def _finish(self, result: ProcessingResult, start: float, event: Optional[IntegrationEvent] = None,
                record: Optional[SAPRecord] = None) -> ProcessingResult:
        elapsed_ms = result.set_processing_time(start)
        self._update_stats(elapsed_ms, result.success)
        record_event(result.entity_type, result.success)
        observe_event_latency(elapsed_ms / 1000)

        if event is not None:
            self._notify(EVENT_PROCESSED, {
                "integration_event": event,
                "sap_record": record,
                "result": result,
            })

        log = self.logger.info if result.success else self.logger.warning
        log("%s", result.summary())
        return result

    def _update_stats(self, elapsed_ms: float, success: bool):
        with self._stats_lock:
            self.stats["events_processed"] += 1
            if success:
                self.stats["events_successful"] += 1
            else:
                self.stats["events_failed"] += 1
            self.stats["total_processing_time_ms"] += elapsed_ms
            self.stats["average_processing_time_ms"] = (
                self.stats["total_processing_time_ms"] / self.stats["events_processed"]
            )

    # ------------------------------------------------------------------
    # Observadores
    # ------------------------------------------------------------------

    def on_event(self, handler: EventObserver):
        if handler not in self._observers:
            self._observers.append(handler)

    def off_event(self, handler: EventObserver):
        if handler in self._observers:
            self._observers.remove(handler)

    def _notify(self, event_name: str, payload: Dict[str, Any]):
        for handler in list(self._observers):
            try:
                handler(event_name, payload)
            except Exception as exc:  # noqa: BLE001
                self.logger.error("Error en observador de eventos %r: %s", handler, exc)

    # ------------------------------------------------------------------
    # Búsqueda, estado y salud
    # ------------------------------------------------------------------

    async def search_records(self, entity_type: str, criteria: Optional[Dict[str, Any]] = None,
                             limit: int = 100, offset: int = 0) -> ProcessingResult:
        """
        Busca registros en SAP

        Usa la BAPI de búsqueda de la entidad si está registrada; si no,
        una lectura genérica con RFC_READ_TABLE sobre su tabla base.
        """
        criteria = dict(criteria or {})
        sap_entity_type = resolve_sap_entity_type(entity_type)
        try:
            resolved = resolve_operation(sap_entity_type, OperationKind.SEARCH)
        except UnsupportedOperationError:
            resolved = None

        try:
            if resolved is not None:
                context = BuildContext(sap_key="", sap_entity_type=sap_entity_type,
                                       client=self.config.sap.client,
                                       company_code=self.config.sap.company_code,
                                       plant=self.config.sap.plant,
                                       warehouse=self.config.sap.warehouse,
                                       language=self.config.sap.language)
                params = self.transformer.build_parameters(resolved, {**criteria, "limit": limit}, context)
                response = await self._run(self.rfc.execute_rfc, resolved.function_name, params)
            else:
                response = await self._run(self.rfc.execute_rfc, "RFC_READ_TABLE",
                                           self._read_table_params(sap_entity_type, criteria, limit, offset))
        except SAPAdapterError as exc:
            response = exc
        return normalize_result("", entity_type, SAPOperation.READ, response)

    @staticmethod
    def _read_table_params(sap_entity_type: str, criteria: Dict[str, Any], limit: int, offset: int) -> Dict[str, Any]:
        params = {
            "QUERY_TABLE": get_sap_table_name(sap_entity_type),
            "DELIMITER": "|",
            "ROWCOUNT": limit,
            "ROWSKIPS": offset,
        }
        if criteria:
            # comillas simples duplicadas dentro del literal ABAP
            params["OPTIONS"] = [
                {"TEXT": "{} EQ '{}'".format(to_sap_field_name(field), str(value).replace("'", "''"))}
                for field, value in criteria.items()
            ]
        return params

    def get_status(self) -> Dict[str, Any]:
        with self._stats_lock:
            stats = dict(self.stats)
        uptime = time.time() - stats["start_time"] if stats["start_time"] else 0
        return {
            "name": self.config.name,
            "version": self.config.version,
            "running": self._running,
            "max_retries": self.config.max_retries,
            "uptime_seconds": round(uptime, 3),
            "stats": stats,
            "services": {
                "sap": {
                    "connected": self.rfc.is_connected(),
                    "stats": self.rfc.get_connection_stats(),
                },
                "push_channel": {
                    "connected": self.push_channel.is_connected() if self.push_channel else False,
                    "stats": self.push_channel.get_stats() if self.push_channel else None,
                },
                "webhook": {
                    "running": self.webhook.is_running() if self.webhook else False,
                    "stats": self.webhook.get_stats() if self.webhook else None,
                },
            },
        }

    async def get_health(self) -> Dict[str, Any]:
        """healthy / degraded / unhealthy con la lista de incidencias"""
        status = self.get_status()
        health = "healthy"
        issues = []

        if self.config.sap.enabled:
            if not status["services"]["sap"]["connected"]:
                health = "degraded"
                issues.append("SAP connection not established")
            elif not await self._run(self.rfc.test_connection):
                health = "degraded"
                issues.append("SAP connection test failed")

        if self.config.push_channel.enabled and not status["services"]["push_channel"]["connected"]:
            health = "degraded"
            issues.append("Push channel not connected")

        if self.config.webhook.enabled and not status["services"]["webhook"]["running"]:
            health = "unhealthy"
            issues.append("Webhook server not running")

        return {
            "status": health,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": status["uptime_seconds"],
            "issues": issues,
            "services": status["services"],
        }
