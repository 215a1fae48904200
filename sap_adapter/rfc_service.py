"""Servicio de invocación RFC/BAPI sobre un transporte compartido."""

import threading
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from monitoring.sap_metrics import observe_rfc_latency, record_rfc_call
from sap_adapter.entity_mapping import COMMIT_FUNCTION
from sap_adapter.exceptions import SAPTransportError
from sap_adapter.result_normalizer import extract_messages, has_errors


class SAPRFCService:
    """
    Ejecuta funciones RFC y BAPIs a través de un transporte con método call()

    El transporte es una única sesión compartida: las llamadas se serializan
    con un lock reentrante que execute_bapi mantiene entre la escritura y su
    commit. Las estadísticas de conexión tienen su propio lock.
    """

    def __init__(self, transport, logger):
        self.transport = transport
        self.logger = logger.getChild("sap.rfc")
        self._connected = False
        self._call_lock = threading.RLock()
        self._stats_lock = threading.Lock()
        self.connection_stats: Dict[str, Any] = {
            "calls_executed": 0,
            "errors_count": 0,
            "total_response_time_ms": 0.0,
            "average_response_time_ms": 0.0,
            "last_activity": None,
            "connected_at": None,
        }

    def connect(self):
        if self.transport is None:
            raise SAPTransportError("No hay transporte RFC configurado")
        self._connected = True
        with self._stats_lock:
            self.connection_stats["connected_at"] = datetime.now(timezone.utc).isoformat()
        self.logger.info("Conexión RFC establecida")

    def disconnect(self):
        if not self._connected:
            return
        self._connected = False
        close = getattr(self.transport, "close", None)
        if callable(close):
            close()
        self.logger.info("Conexión RFC cerrada")

    def is_connected(self) -> bool:
        return self._connected

    def execute_rfc(self, function_name: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Llamada directa a una función remota

        Returns:
            la respuesta con FUNCTION_NAME, EXECUTION_TIME y SUCCESS añadidos

        Raises:
            SAPTransportError: sin conexión o fallo del transporte
        """
        if not self._connected:
            raise SAPTransportError("Not connected to SAP system")

        start = time.monotonic()
        try:
            with self._call_lock:
                response = self.transport.call(function_name, dict(params or {}))
        except Exception as exc:
            elapsed_ms = (time.monotonic() - start) * 1000
            self._update_stats(elapsed_ms, error=True)
            record_rfc_call(function_name, False)
            self.logger.error("Error en RFC %s: %s", function_name, exc)
            if isinstance(exc, SAPTransportError):
                raise
            raise SAPTransportError(f"RFC {function_name} falló: {exc}") from exc

        elapsed_ms = (time.monotonic() - start) * 1000
        self._update_stats(elapsed_ms, error=False)
        record_rfc_call(function_name, True)
        observe_rfc_latency(elapsed_ms / 1000)
        self.logger.debug("RFC %s ejecutada en %.1fms", function_name, elapsed_ms)

        result = dict(response or {})
        result["FUNCTION_NAME"] = function_name
        result["EXECUTION_TIME"] = round(elapsed_ms, 3)
        result["SUCCESS"] = True
        return result

    def execute_bapi(self, function_name: str, params: Optional[Dict[str, Any]] = None,
                     commit_work: bool = True) -> Dict[str, Any]:
        """
        Llamada de escritura con commit opcional

        El commit solo se emite si la respuesta no trae mensajes E/A. Un fallo
        del commit se registra como warning y no altera la respuesta.
        """
        with self._call_lock:
            response = self.execute_rfc(function_name, params)
            if commit_work and not has_errors(extract_messages(response)):
                try:
                    self.execute_rfc(COMMIT_FUNCTION, {"WAIT": "X"})
                except SAPTransportError as exc:
                    self.logger.warning("Commit tras %s falló: %s", function_name, exc)
        return response

    def _update_stats(self, elapsed_ms: float, error: bool):
        with self._stats_lock:
            stats = self.connection_stats
            stats["calls_executed"] += 1
            if error:
                stats["errors_count"] += 1
            stats["total_response_time_ms"] += elapsed_ms
            stats["average_response_time_ms"] = stats["total_response_time_ms"] / stats["calls_executed"]
            stats["last_activity"] = datetime.now(timezone.utc).isoformat()

    def get_connection_stats(self) -> Dict[str, Any]:
        with self._stats_lock:
            stats = dict(self.connection_stats)
        stats["connected"] = self._connected
        return stats

    def test_connection(self) -> bool:
        try:
            self.execute_rfc("RFC_SYSTEM_INFO", {})
            return True
        except SAPTransportError as exc:
            self.logger.warning("Prueba de conexión SAP fallida: %s", exc)
            return False

    def get_system_info(self) -> Dict[str, Any]:
        """Datos del sistema SAP (RFC_SYSTEM_INFO / RFCSI_EXPORT)"""
        response = self.execute_rfc("RFC_SYSTEM_INFO", {})
        info = response.get("RFCSI_EXPORT") or {}
        return {
            "system_id": info.get("RFCSYSID"),
            "host": info.get("RFCHOST"),
            "database": info.get("RFCDBSYS"),
            "release": info.get("RFCSAPRL"),
            "client": info.get("RFCMANDT"),
            "execution_time_ms": response.get("EXECUTION_TIME"),
        }
