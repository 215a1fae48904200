"""
Servidor HTTP de webhooks

Rutas:
    POST /webhook/events   evento de integración (firma HMAC opcional)
    GET  /health           200 si el adaptador está sano, 503 si no
    GET  /status           estado del adaptador
    GET  /                 descripción del servicio
"""

import hashlib
import hmac
import json
import threading
from datetime import datetime, timezone
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable, Dict, Optional, Tuple

from config import WebhookConfig

SIGNATURE_HEADERS = ("X-Hub-Signature-256", "X-Signature")
EVENTS_PATH = "/webhook/events"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def compute_signature(secret: str, body: bytes, algorithm: str = "sha256") -> str:
    return hmac.new(secret.encode(), body, getattr(hashlib, algorithm)).hexdigest()


def verify_signature(secret: str, body: bytes, header_value: Optional[str], algorithm: str = "sha256") -> bool:
    """Acepta '<algoritmo>=<hex>' o el hex sin prefijo"""
    if not header_value:
        return False
    _, _, received = header_value.rpartition("=")
    return hmac.compare_digest(compute_signature(secret, body, algorithm), received.strip())


class WebhookRequestHandler(BaseHTTPRequestHandler):
    protocol_version = "HTTP/1.1"

    @property
    def webhook(self) -> "WebhookServer":
        return self.server.webhook

    def _send_json(self, status: int, payload: Dict[str, Any]):
        body = json.dumps(payload, default=str).encode()
        self.webhook.record_response(status)
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def do_GET(self):  # noqa: N802
        self.webhook.record_request()
        path = self.path.split('?', 1)[0]
        if path == "/health":
            health = self.webhook.get_health()
            self._send_json(200 if health.get("status") == "healthy" else 503, health)
        elif path == "/status":
            self._send_json(200, self.webhook.get_status())
        elif path == "/":
            self._send_json(200, {
                "service": "SAP Event Adapter",
                "endpoints": ["POST " + EVENTS_PATH, "GET /health", "GET /status"],
                "timestamp": _now_iso(),
            })
        else:
            self._send_json(404, {"success": False, "message": f"Ruta no encontrada: {path}"})

    def do_POST(self):  # noqa: N802
        self.webhook.record_request()
        path = self.path.split('?', 1)[0]
        if path != EVENTS_PATH:
            self._send_json(404, {"success": False, "message": f"Ruta no encontrada: {path}"})
            return

        try:
            length = int(self.headers.get("Content-Length", 0))
        except ValueError:
            length = -1
        if length < 0:
            self._reject(400, "Invalid Content-Length")
            return
        if length > self.webhook.config.max_body_size:
            self._reject(413, "Payload too large")
            return

        body = self.rfile.read(length) if length else b""
        status, payload = self.webhook.handle_event(body, self._signature_header())
        self._send_json(status, payload)

    def _reject(self, status: int, message: str):
        # el cuerpo no se ha leído: la conexión no puede reutilizarse
        self.close_connection = True
        self._send_json(status, {"success": False, "message": message, "timestamp": _now_iso()})

    def _signature_header(self) -> Optional[str]:
        for name in SIGNATURE_HEADERS:
            value = self.headers.get(name)
            if value:
                return value
        return None

    def log_message(self, format, *args):  # noqa: A003
        self.webhook.logger.debug("%s - %s", self.address_string(), format % args)


class WebhookServer:
    """Recibe eventos por HTTP y los entrega al manejador del adaptador"""

    def __init__(self, config: WebhookConfig, logger, event_handler: Callable[[Any], Any],
                 health_provider: Optional[Callable[[], Dict[str, Any]]] = None,
                 status_provider: Optional[Callable[[], Dict[str, Any]]] = None):
        self.config = config
        self.logger = logger.getChild("webhook")
        self.event_handler = event_handler
        self.health_provider = health_provider
        self.status_provider = status_provider
        self._server: Optional[ThreadingHTTPServer] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self.stats: Dict[str, Any] = {
            "requests_received": 0,
            "requests_processed": 0,
            "requests_failed": 0,
            "events_received": 0,
            "started_at": None,
        }

    @property
    def server_address(self) -> Tuple[str, int]:
        return self._server.server_address if self._server else (self.config.host, self.config.port)

    def start(self):
        if self._server is not None:
            return
        self._server = ThreadingHTTPServer((self.config.host, self.config.port), WebhookRequestHandler)
        self._server.daemon_threads = True
        self._server.webhook = self
        self._thread = threading.Thread(target=self._server.serve_forever, name="webhook-server", daemon=True)
        self._thread.start()
        with self._lock:
            self.stats["started_at"] = _now_iso()
        host, port = self.server_address[:2]
        self.logger.info("Webhook escuchando en http://%s:%s%s", host, port, EVENTS_PATH)

    def stop(self):
        if self._server is None:
            return
        self._server.shutdown()
        self._server.server_close()
        if self._thread:
            self._thread.join(timeout=5)
        self._server = None
        self._thread = None
        self.logger.info("Webhook detenido")

    def is_running(self) -> bool:
        return self._server is not None

    def handle_event(self, body: bytes, signature: Optional[str]) -> Tuple[int, Dict[str, Any]]:
        """Valida firma y JSON, invoca el manejador y devuelve (status, cuerpo)"""
        if self.config.secret and not verify_signature(
            self.config.secret, body, signature, self.config.signature_algorithm
        ):
            self.logger.warning("Firma de webhook inválida")
            return 401, {"success": False, "message": "Invalid signature", "timestamp": _now_iso()}

        try:
            payload = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            return 400, {
                "success": False,
                "message": "Invalid JSON payload",
                "error": str(exc),
                "timestamp": _now_iso(),
            }

        with self._lock:
            self.stats["events_received"] += 1
        try:
            result = self.event_handler(payload)
        except Exception as exc:  # noqa: BLE001
            self.logger.error("Error procesando evento del webhook: %s", exc)
            return 500, {
                "success": False,
                "message": "Event processing failed",
                "error": str(exc),
                "timestamp": _now_iso(),
            }

        wire = result.to_wire() if hasattr(result, "to_wire") else dict(result)
        wire.setdefault("timestamp", _now_iso())
        return (200 if wire.get("success") else 400), wire

    def record_request(self):
        with self._lock:
            self.stats["requests_received"] += 1

    def record_response(self, status: int):
        with self._lock:
            if status < 400:
                self.stats["requests_processed"] += 1
            else:
                self.stats["requests_failed"] += 1

    def get_health(self) -> Dict[str, Any]:
        if self.health_provider is None:
            return {"status": "healthy", "timestamp": _now_iso()}
        try:
            return self.health_provider()
        except Exception as exc:  # noqa: BLE001
            self.logger.error("Error obteniendo salud del adaptador: %s", exc)
            return {"status": "unhealthy", "error": str(exc), "timestamp": _now_iso()}

    def get_status(self) -> Dict[str, Any]:
        if self.status_provider is None:
            return {"webhook": self.get_stats()}
        return self.status_provider()

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            stats = dict(self.stats)
        stats["running"] = self.is_running()
        return stats
